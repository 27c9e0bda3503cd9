"""
Concurrency tests against a file-backed SQLite database.

Each worker thread runs in its own app context and therefore its own
session and connection, the way concurrent requests would.
"""

import threading

import pytest
from sqlalchemy import update

from meato import create_app
from meato.errors import Conflict, OutOfStock
from meato.extensions import db
from meato.models import Cart, CartItem, Order, Product
from meato.permissions import Role
from meato.services import cart_service, catalog_service, order_service
from meato.services.auth_service import create_user
from meato.services.session_service import actor_for

ADDRESS = {"street": "1 Race Street", "city": "Chennai", "pincode": "600001"}


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
        "BCRYPT_ROUNDS": 4,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()


def _run_all(app, works):
    """Start every callable in its own thread at the same moment; collect results or exceptions."""
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(works))

    def worker(work):
        with app.app_context():
            try:
                barrier.wait()
                outcome = work()
            except Exception as exc:
                outcome = exc
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=worker, args=(work,)) for work in works]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def _run_threads(app, count, work):
    return _run_all(app, [work] * count)


def test_last_unit_is_sold_once(file_app):
    with file_app.app_context():
        product = Product(name="Last Mutton Pack", price_cents=50000, stock=1)
        db.session.add(product)
        db.session.commit()
        product_id = product.id

    def place():
        order = order_service.create_order(None, dict(ADDRESS), items=[{"product_id": product_id, "quantity": 1}])
        return order.id

    results = _run_threads(file_app, 8, place)

    created = [r for r in results if isinstance(r, int)]
    failures = [r for r in results if not isinstance(r, int)]
    assert len(created) == 1
    assert all(isinstance(f, OutOfStock) for f in failures), failures

    with file_app.app_context():
        assert db.session.get(Product, product_id).stock == 0
        assert db.session.query(Order).count() == 1


def test_stock_never_goes_negative(file_app):
    with file_app.app_context():
        product = Product(name="Chicken Breast", price_cents=20000, stock=5)
        db.session.add(product)
        db.session.commit()
        product_id = product.id

    def place():
        order = order_service.create_order(None, dict(ADDRESS), items=[{"product_id": product_id, "quantity": 2}])
        return order.id

    results = _run_threads(file_app, 6, place)

    created = [r for r in results if isinstance(r, int)]
    assert len(created) == 2
    assert all(isinstance(r, OutOfStock) for r in results if not isinstance(r, int))

    with file_app.app_context():
        assert db.session.get(Product, product_id).stock == 1


def test_racing_accepts_succeed_once(file_app):
    with file_app.app_context():
        product = Product(name="Fish Fillet", price_cents=30000, stock=10)
        db.session.add(product)
        db.session.commit()
        admin = create_user("Admin", "admin@race.local", "Password123!", role=Role.ADMIN)
        courier = create_user("Courier", "courier@race.local", "Password123!", role=Role.DELIVERY_PERSON)
        order = order_service.create_order(None, dict(ADDRESS), items=[{"product_id": product.id, "quantity": 1}])
        order_service.assign(actor_for(admin), order.id, courier.id)
        order_id = order.id
        courier_actor = actor_for(courier)

    def accept():
        return order_service.accept(courier_actor, order_id).status

    results = _run_threads(file_app, 4, accept)

    assert results.count("accepted") == 1
    assert all(isinstance(r, Conflict) for r in results if r != "accepted"), results


def test_one_cart_checks_out_once(file_app, monkeypatch):
    with file_app.app_context():
        product = Product(name="Chicken Drumsticks", price_cents=18000, stock=50)
        db.session.add(product)
        db.session.commit()
        customer = create_user("Asha", "asha@race.local", "Password123!")
        cart_service.add_item(customer.id, product.id, 3)
        product_id = product.id
        actor = actor_for(customer)

    # Both checkouts price the same cart before either one writes
    priced = threading.Barrier(2)
    list_items = cart_service.list_items

    def list_and_wait(user_id):
        items = list_items(user_id)
        priced.wait(timeout=10)
        return items

    monkeypatch.setattr(cart_service, "list_items", list_and_wait)

    def checkout():
        return order_service.create_order(actor, dict(ADDRESS)).id

    results = _run_threads(file_app, 2, checkout)

    created = [r for r in results if isinstance(r, int)]
    assert len(created) == 1, results
    assert all(isinstance(r, Conflict) for r in results if not isinstance(r, int)), results

    with file_app.app_context():
        assert db.session.get(Product, product_id).stock == 47
        assert db.session.query(Order).count() == 1
        assert db.session.query(CartItem).count() == 0


def test_concurrent_adds_of_one_key_leave_one_row(file_app):
    with file_app.app_context():
        product = Product(name="Prawns 500g", price_cents=45000, stock=20)
        db.session.add(product)
        db.session.commit()
        customer = create_user("Ravi", "ravi@race.local", "Password123!")
        product_id = product.id
        user_id = customer.id

    quantities = [1, 2, 3, 4]
    works = [
        lambda q=q: cart_service.add_item(user_id, product_id, q)["count"]
        for q in quantities
    ]
    results = _run_all(file_app, works)

    assert results == [1, 1, 1, 1]
    with file_app.app_context():
        rows = db.session.query(CartItem).all()
        assert len(rows) == 1
        assert rows[0].quantity in quantities
        assert db.session.query(Cart).count() == 1


def test_accept_racing_reject_applies_once(file_app):
    with file_app.app_context():
        product = Product(name="Seer Fish Steaks", price_cents=60000, stock=10)
        db.session.add(product)
        db.session.commit()
        admin = create_user("Admin", "admin@race.local", "Password123!", role=Role.ADMIN)
        courier = create_user("Courier", "courier@race.local", "Password123!", role=Role.DELIVERY_PERSON)
        order = order_service.create_order(None, dict(ADDRESS), items=[{"product_id": product.id, "quantity": 2}])
        order_service.assign(actor_for(admin), order.id, courier.id)
        order_id = order.id
        product_id = product.id
        courier_actor = actor_for(courier)

    results = _run_all(file_app, [
        lambda: order_service.accept(courier_actor, order_id).status,
        lambda: order_service.reject(courier_actor, order_id, "Vehicle breakdown").status,
    ])

    winners = [r for r in results if r in ("accepted", "rejected")]
    assert len(winners) == 1, results
    assert all(isinstance(r, Conflict) for r in results if r not in winners), results

    with file_app.app_context():
        assert db.session.get(Order, order_id).status == winners[0]
        expected_stock = 10 if winners[0] == "rejected" else 8
        assert db.session.get(Product, product_id).stock == expected_stock


def test_product_edit_survives_overlapping_stock_take(file_app, monkeypatch):
    with file_app.app_context():
        product = Product(name="Goat Liver", price_cents=30000, stock=10)
        db.session.add(product)
        db.session.commit()
        admin = create_user("Admin", "admin@race.local", "Password123!", role=Role.ADMIN)
        product_id = product.id
        admin_actor = actor_for(admin)

    get_product = catalog_service.get_product
    loads = []

    def load_then_take_stock(pid):
        loaded = get_product(pid)
        if not loads:
            # An order commits on another connection after the edit read the row
            with db.engine.begin() as conn:
                conn.execute(
                    update(Product)
                    .where(Product.id == pid)
                    .values(stock=Product.stock - 3, version_id=Product.version_id + 1)
                )
        loads.append(pid)
        return loaded

    monkeypatch.setattr(catalog_service, "get_product", load_then_take_stock)

    with file_app.app_context():
        updated = catalog_service.update_product(
            product_id=product_id, payload={"name": "Goat Liver 250g"}, actor=admin_actor,
        )

        assert len(loads) == 2
        assert updated.name == "Goat Liver 250g"
        assert updated.stock == 7
        assert updated.version_id == 3
