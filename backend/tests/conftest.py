# Overview: Pytest fixtures and shared setup for backend tests.

import itertools

import pytest

from meato import create_app
from meato.extensions import db
from meato.models import DeliveryZone, Product, ShopProduct
from meato.permissions import Role
from meato.services.auth_service import create_user
from meato.services.notification_service import Notifier
from meato.services.shop_service import create_shop


PASSWORD = "Password123!"

ADDRESS = {
    "street": "12 Market Road",
    "city": "Chennai",
    "state": "TN",
    "pincode": "600001",
    "name": "Test Customer",
    "phone": "9000000001",
}


class RecordingNotifier(Notifier):
    """Keeps every event in memory instead of sending it."""

    def __init__(self):
        self.sent = []

    def notify(self, event, payload):
        self.sent.append((event, payload))

    @property
    def events(self):
        return [event for event, _ in self.sent]


@pytest.fixture(scope="session")
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "BCRYPT_ROUNDS": 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    """Empty every table before the test runs."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    app.config["REQUIRE_DELIVERY_ZONE"] = False
    app.config["DELIVERY_FEE_STANDARD_CENTS"] = 0
    app.config["DELIVERY_FEE_FAST_CENTS"] = 0
    app.config["HANDLING_FEE_CENTS"] = 0
    yield db.session
    db.session.rollback()


@pytest.fixture(autouse=True)
def notifier(app):
    original = app.extensions["notifier"]
    recorder = RecordingNotifier()
    app.extensions["notifier"] = recorder
    yield recorder
    app.extensions["notifier"] = original


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_user(db_session):
    counter = itertools.count(1)

    def _make(role=Role.USER, shop=None, name=None, phone=None):
        n = next(counter)
        return create_user(
            name=name or f"{role.value} {n}",
            email=f"{role.value}{n}@test.local",
            password=PASSWORD,
            role=role,
            phone=phone,
            shop_id=shop.id if shop is not None else None,
        )

    return _make


@pytest.fixture
def make_shop(db_session):
    counter = itertools.count(1)

    def _make(lat=13.0827, lng=80.2707, radius_km=5.0, name=None):
        n = next(counter)
        return create_shop(name or f"Shop {n}", f"{n} Shop Street", lat, lng, delivery_radius_km=radius_km)

    return _make


@pytest.fixture
def make_product(db_session):
    counter = itertools.count(1)

    def _make(price_cents=10000, stock=50, gst_percentage=0, name=None, is_approved=True):
        product = Product(
            name=name or f"Product {next(counter)}",
            price_cents=price_cents,
            mrp_cents=price_cents,
            stock=stock,
            gst_percentage=gst_percentage,
            is_approved=is_approved,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def make_zone(db_session):
    def _make(pincode, name=None, lat=None, lng=None, radius_km=5.0, fast_delivery=False,
              shop=None, active=True, is_approved=True):
        zone = DeliveryZone(
            name=name or f"Zone {pincode}",
            pincode=pincode,
            lat=lat,
            lng=lng,
            radius_km=radius_km,
            fast_delivery=fast_delivery,
            franchise_id=shop.id if shop is not None else None,
            active=active,
            is_approved=is_approved,
        )
        db_session.add(zone)
        db_session.commit()
        return zone

    return _make


@pytest.fixture
def stock_in_shop(db_session):
    def _set(shop, product, stock, price_override_cents=None, is_enabled=True):
        row = ShopProduct(
            franchise_id=shop.id,
            product_id=product.id,
            stock=stock,
            price_override_cents=price_override_cents,
            is_enabled=is_enabled,
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _set


@pytest.fixture
def shop(make_shop):
    return make_shop()


@pytest.fixture
def customer(make_user):
    return make_user(Role.USER, name="Test Customer")


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def super_admin(make_user):
    return make_user(Role.SUPER_ADMIN)


@pytest.fixture
def shop_admin(make_user, shop):
    return make_user(Role.SHOP_ADMIN, shop=shop)


@pytest.fixture
def courier(make_user, shop):
    return make_user(Role.DELIVERY_PERSON, shop=shop, phone="9000000007")


@pytest.fixture
def other_courier(make_user, shop):
    return make_user(Role.DELIVERY_PERSON, shop=shop, phone="9000000008")


# =============================================================================
# HELPERS
# =============================================================================

def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def address():
    return dict(ADDRESS)


@pytest.fixture
def login(client):
    def _login(user):
        return auth_headers(get_auth_token(client, user.email))

    return _login


@pytest.fixture
def customer_headers(login, customer):
    return login(customer)


@pytest.fixture
def admin_headers(login, admin):
    return login(admin)


@pytest.fixture
def shop_admin_headers(login, shop_admin):
    return login(shop_admin)


@pytest.fixture
def courier_headers(login, courier):
    return login(courier)


@pytest.fixture
def other_courier_headers(login, other_courier):
    return login(other_courier)
