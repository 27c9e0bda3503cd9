"""Flask CLI commands."""

from meato.extensions import db
from meato.models import Shop, User


def test_init_db(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "init-db"])
    assert result.exit_code == 0
    assert "Database tables created" in result.output


def test_create_and_list_shops(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "shops", "create", "--name", "Anna Nagar", "--address", "2nd Avenue",
        "--lat", "13.085", "--lng", "80.21", "--radius", "4",
    ])
    assert result.exit_code == 0
    assert "Created shop: Anna Nagar" in result.output

    db.session.expire_all()
    shop = db.session.query(Shop).one()
    assert shop.delivery_radius_km == 4.0

    listing = runner.invoke(args=["shops", "list"])
    assert "Anna Nagar" in listing.output


def test_create_user(app, shop):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "users", "create", "--name", "Ravi", "--email", "ravi@meato.local",
        "--password", "Password123!", "--role", "delivery_person", "--shop-id", str(shop.id),
    ])
    assert result.exit_code == 0
    assert "Created user: Ravi" in result.output

    db.session.expire_all()
    user = db.session.query(User).filter_by(email="ravi@meato.local").one()
    assert user.shop_id == shop.id

    listing = runner.invoke(args=["users", "list", "--role", "delivery_person"])
    assert "ravi@meato.local" in listing.output


def test_create_user_weak_password(app, db_session):
    result = app.test_cli_runner().invoke(args=[
        "users", "create", "--name", "Weak", "--email", "weak@meato.local",
        "--password", "weak", "--role", "user",
    ])
    assert "Password validation failed" in result.output
    assert db.session.query(User).count() == 0
