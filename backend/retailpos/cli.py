# Overview: Flask CLI command groups for bootstrap, user management and stock movements.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, a default location, a default
#   product type and owner/manager/staff users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --email a@b.c --first-name Ada --last-name Obi --role manager
#   Create a user (prompts for the password).
# - python -m flask users list
#
# Stock:
# - python -m flask stock apply --product-id 1 --location-id 1 --type received --amount 40 --actor-email owner@retailpos.local
#   Record a received/adjusted/broken/initial movement.

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Location, ProductType, User
from .models.auth import ROLE_MANAGER, ROLE_OWNER, ROLE_STAFF, ROLES
from .services import catalog_service, stock_ledger_service
from .services.auth_service import create_user
from .services.stock_ledger_service import MANUAL_MOVEMENTS


DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--location', 'location_name', default='Main Store', help='Default location name')
@click.option('--address', default='Head office', help='Default location address')
@with_appcontext
def init_system(location_name, address):
    """
    Initialize the system: tables, default location, product type and users.

    Creates:
    - Location "Main Store" (if no location exists)
    - Product type "Piece" (unit: pcs)
    - Users: owner@retailpos.local, manager@retailpos.local, staff@retailpos.local
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing retailpos...")
    db.create_all()

    location = db.session.query(Location).order_by(Location.id.asc()).first()
    if not location:
        location = catalog_service.create_location(location_name, address)
        click.echo(f"PASS Created default location: {location.name} (ID: {location.id})")
    else:
        click.echo(f"PASS Using existing location: {location.name} (ID: {location.id})")

    if not db.session.query(ProductType).filter_by(name="Piece").first():
        product_type = catalog_service.create_product_type("Piece", "pcs")
        click.echo(f"PASS Created product type: {product_type.name} ({product_type.unit_of_measure})")

    default_users = [
        ("owner@retailpos.local", "Default", "Owner", ROLE_OWNER),
        ("manager@retailpos.local", "Default", "Manager", ROLE_MANAGER),
        ("staff@retailpos.local", "Default", "Staff", ROLE_STAFF),
    ]
    for email, first_name, last_name, role in default_users:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        try:
            create_user(
                email=email,
                password=DEFAULT_PASSWORD,
                first_name=first_name,
                last_name=last_name,
                role=role,
                location_id=location.id,
            )
            click.echo(f"PASS Created user: {email} with role '{role}'")
        except DomainError as e:
            click.echo(f"FAIL Failed to create user '{email}': {e}")

    click.echo("\nDONE retailpos initialized")
    click.echo(f"Default password for all users: {DEFAULT_PASSWORD} (CHANGE IN PRODUCTION!)")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--last-name', prompt=True, help='Last name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), default=ROLE_STAFF, show_default=True, help='Role')
@click.option('--location-id', type=int, help='Home location')
@with_appcontext
def create_user_cli(email, first_name, last_name, password, role, location_id):
    """
    Create a new user.

    Password must meet strength requirements: 8+ chars, uppercase,
    lowercase, digit, special char.
    """
    try:
        user = create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=role,
            location_id=location_id,
        )
        click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")
    except DomainError as e:
        click.echo(f"FAIL Failed to create user: {e}")
        raise SystemExit(1)


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<32} {user.role:<8} {status}")


@click.group('stock')
def stock_group():
    """Manual stock movements."""


@stock_group.command('apply')
@click.option('--product-id', type=int, required=True)
@click.option('--location-id', type=int, required=True)
@click.option('--type', 'change_type', type=click.Choice(MANUAL_MOVEMENTS), required=True)
@click.option('--amount', required=True, help='Signed quantity (e.g. 40 or -2.5)')
@click.option('--actor-email', required=True, help='User the movement is attributed to')
@click.option('--notes', default=None)
@with_appcontext
def apply_stock(product_id, location_id, change_type, amount, actor_email, notes):
    """Record a manual stock movement."""
    actor = db.session.query(User).filter_by(email=actor_email.strip().lower()).first()
    if actor is None:
        click.echo(f"FAIL No user with email {actor_email}")
        raise SystemExit(1)

    try:
        movement = stock_ledger_service.apply_movement(
            product_id=product_id,
            location_id=location_id,
            change_type=change_type,
            change_amount=amount,
            actor_id=actor.id,
            notes=notes,
        )
    except DomainError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(
        f"PASS {movement.change_type}: product {movement.product_id} at location {movement.location_id} "
        f"{movement.previous_quantity} -> {movement.new_quantity}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
