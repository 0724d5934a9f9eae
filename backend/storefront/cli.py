# Overview: Flask CLI command groups for bootstrap, inspection, and reconciliation.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@storefront.local]
#   Idempotent bootstrap: creates tables and an ADMIN account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --email a@b.c --name "Ann" --password "Password123!"
#
# Permissions:
# - python -m flask perms list [--category ITEMS]
# - python -m flask perms grant a@b.c ITEMUPDATE
#   Adds one code to the user's current set.
#
# Reconciliation (charges without an order):
# - python -m flask reconcile list [--status PENDING]
# - python -m flask reconcile run [--limit 50] [--charge-id ch_...]

import click
from flask.cli import with_appcontext

from .errors import StorefrontError
from .extensions import db
from .models import User, UserPermission
from .permissions import ADMIN, PERMISSION_DEFINITIONS, get_permissions_by_category, validate_permission_code
from .services import auth_service, reconciliation_service
from .services.auth_service import PasswordValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@storefront.local', show_default=True, help='Admin account email')
@click.option('--admin-name', default='Admin', show_default=True)
@click.option('--admin-password', default='Password123!', show_default=True, help='Admin account password')
@with_appcontext
def init_system(admin_email, admin_name, admin_password):
    """
    Initialize the storefront: schema and an administrator account.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing storefront...")
    db.create_all()
    click.echo("PASS Tables created")

    user = db.session.query(User).filter_by(email=admin_email.strip().lower()).first()
    if user is None:
        try:
            user = auth_service.signup(admin_email, admin_name, admin_password)
        except StorefrontError as e:
            click.echo(f"FAIL Could not create admin: {e.message}")
            return
        click.echo(f"PASS Created admin user: {user.email} (ID: {user.id})")
    else:
        click.echo(f"PASS Using existing admin user: {user.email} (ID: {user.id})")

    if ADMIN not in user.permissions:
        user.permission_rows.append(UserPermission(code=ADMIN))
        db.session.commit()
    click.echo(f"     Permissions: {', '.join(sorted(user.permissions))}")


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
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(email, name, password):
    """
    Create a customer account (permissions: USER).

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = auth_service.signup(email, name, password)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except StorefrontError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        return

    click.echo(f"PASS Created user: {user.email} (ID: {user.id})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their permissions."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Permissions'}")
    click.echo("="*100)

    for user in users:
        perms_str = ", ".join(sorted(user.permissions)) or "none"
        click.echo(f"{user.id:<5} {user.email:<35} {user.name:<25} {perms_str}")

    click.echo("="*100 + "\n")


@click.group('perms')
def perms_group():
    """Permission inspection and repair commands."""


@perms_group.command('list')
@click.option('--category', help='Filter by category')
@with_appcontext
def list_permissions_cli(category):
    """List permission codes, optionally filtered by category."""
    perms = get_permissions_by_category(category.upper()) if category else PERMISSION_DEFINITIONS

    click.echo(f"\n{'='*80}")
    click.echo(f"Permissions in category: {category.upper()}" if category else "All Permissions")
    click.echo(f"{'='*80}\n")

    click.echo(f"{'Code':<20} {'Name':<25} {'Category':<10} {'Description'}")
    click.echo("-"*80)
    for code, name, description, cat in perms:
        click.echo(f"{code:<20} {name:<25} {cat:<10} {description}")

    click.echo(f"\n Total: {len(perms)} permissions\n")


@perms_group.command('grant')
@click.argument('email')
@click.argument('permission_code')
@with_appcontext
def grant_permission_cli(email, permission_code):
    """Grant a permission to a user (operator bootstrap; bypasses the API guard)."""
    permission_code = permission_code.upper()
    if not validate_permission_code(permission_code):
        click.echo(f"FAIL Unknown permission: {permission_code}")
        return

    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if user is None:
        click.echo(f"FAIL User '{email}' not found")
        return

    if permission_code in user.permissions:
        click.echo(f"PASS '{email}' already has '{permission_code}'")
        return

    user.permission_rows.append(UserPermission(code=permission_code))
    db.session.commit()
    click.echo(f"PASS Granted '{permission_code}' to '{email}'")


@click.group('reconcile')
def reconcile_group():
    """Charges that succeeded at the gateway without an order."""


@reconcile_group.command('list')
@click.option('--status', type=click.Choice(['PENDING', 'RESOLVED'], case_sensitive=False), help='Filter by status')
@with_appcontext
def list_reconciliations_cli(status):
    records = reconciliation_service.list_records(status)

    if not records:
        click.echo("No reconciliation records found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'Charge':<32} {'User':<6} {'Amount':<10} {'Status':<9} {'Tries':<6} {'Order':<7} {'Last error'}")
    click.echo("="*110)
    for r in records:
        order_str = str(r.order_id) if r.order_id else "-"
        click.echo(
            f"{r.charge_id:<32} {r.user_id:<6} {r.amount:<10} {r.status:<9} {r.attempts:<6} {order_str:<7} {r.last_error or ''}"
        )
    click.echo("="*110 + "\n")


@reconcile_group.command('run')
@click.option('--limit', type=int, default=50, show_default=True)
@click.option('--charge-id', help='Retry a single charge')
@with_appcontext
def run_reconciliation_cli(limit, charge_id):
    """Materialize orders for pending charges."""
    if charge_id:
        try:
            order = reconciliation_service.retry(charge_id)
        except StorefrontError as e:
            click.echo(f"FAIL {charge_id}: {e.message}")
            return
        click.echo(f"PASS {charge_id} -> order {order.id}")
        return

    result = reconciliation_service.retry_pending(limit=limit)
    for entry in result["resolved"]:
        click.echo(f"PASS {entry['charge_id']} -> order {entry['order_id']}")
    for failed_id in result["failed"]:
        click.echo(f"FAIL {failed_id}: still pending")
    click.echo(f"\n Resolved: {len(result['resolved'])}, still pending: {len(result['failed'])}\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(reconcile_group)
