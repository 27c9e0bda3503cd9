# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/meato/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Shops:
# - python -m flask shops create --name "Anna Nagar" --address "2nd Ave" --lat 13.085 --lng 80.21 --radius 5
# - python -m flask shops list
#
# Users:
# - python -m flask users create --name Admin --email admin@meato.local --password "Password123!" --role super_admin
#   Create a user of any role (prompts if options are omitted).
# - python -m flask users list

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import Shop, User
from .permissions import Role
from .services.auth_service import PasswordValidationError, create_user
from .services.shop_service import create_shop


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('shops')
def shops_group():
    """Shop management commands."""


@shops_group.command('create')
@click.option('--name', required=True, help='Shop name')
@click.option('--address', required=True, help='Street address')
@click.option('--lat', type=float, required=True, help='Latitude')
@click.option('--lng', type=float, required=True, help='Longitude')
@click.option('--radius', 'radius_km', type=float, default=5.0, show_default=True, help='Delivery radius (km)')
@click.option('--owner-id', type=int, help='Shop admin user id')
@with_appcontext
def create_shop_cli(name, address, lat, lng, radius_km, owner_id):
    try:
        shop = create_shop(name, address, lat, lng, delivery_radius_km=radius_km, owner_id=owner_id)
        click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id})")
    except ServiceError as e:
        click.echo(f"FAIL {e.message} {e.details}")


@shops_group.command('list')
@with_appcontext
def list_shops_cli():
    shops = db.session.query(Shop).order_by(Shop.id).all()
    if not shops:
        click.echo("No shops found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<25} {'Lat':<12} {'Lng':<12} {'Radius km':<10} {'Active'}")
    click.echo("="*90)
    for shop in shops:
        active_str = "Yes" if shop.is_active else "No"
        click.echo(f"{shop.id:<5} {shop.name:<25} {shop.lat:<12} {shop.lng:<12} {shop.delivery_radius_km:<10} {active_str}")
    click.echo("="*90 + "\n")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([r.value for r in Role]), prompt=True, help='Role')
@click.option('--phone', help='Phone number')
@click.option('--shop-id', type=int, help='Shop for shop admins and delivery persons')
@with_appcontext
def create_user_cli(name, email, password, role, phone, shop_id):
    """
    Create a user of any role.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            name=name,
            email=email,
            password=password,
            role=Role.parse(role),
            phone=phone,
            shop_id=shop_id,
        )
        click.echo(f"PASS Created user: {user.name} ({user.email}) with role '{user.role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")

    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except ServiceError as e:
        click.echo(f"FAIL Failed to create user: {e.message} {e.details}")


@users_group.command('list')
@click.option('--role', type=click.Choice([r.value for r in Role]), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their roles."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)

    users = query.order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Name':<20} {'Email':<30} {'Role':<16} {'Shop':<6} {'Active'}")
    click.echo("="*100)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        shop_str = str(user.shop_id) if user.shop_id else "-"
        click.echo(f"{user.id:<5} {user.name:<20} {user.email:<30} {user.role:<16} {shop_str:<6} {active_str}")

    click.echo("="*100 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shops_group)
    app.cli.add_command(users_group)
