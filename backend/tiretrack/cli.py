# Overview: Flask CLI command groups for bootstrap, user capabilities, reconciliation and inspection.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to tiretrack (PowerShell: $env:FLASK_APP="tiretrack").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (dev/test; use `flask db upgrade` for managed schemas) and seed accounts.
# - python -m flask system seed-accounts
#   Insert any missing default chart-of-accounts rows.
#
# Users and capabilities:
# - python -m flask users create --username jdoe --full-name "Jane Doe"
# - python -m flask users grant jdoe APPROVE_PURCHASE_ORDERS
# - python -m flask users revoke jdoe APPROVE_PURCHASE_ORDERS
#
# Reconciliation:
# - python -m flask integrity check [--fix]
#   Evaluate every invariant; --fix repairs stock counters and supplier balances only.
# - python -m flask stock reconcile [--fix]
# - python -m flask stock reorder
#   List catalog rows at or below their reorder point.
# - python -m flask suppliers reconcile [--fix]
#
# Inspection:
# - python -m flask tires history SERIAL

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import TireTrackError
from .extensions import db
from .models import User
from .permissions import PERMISSION_CODES
from .services import accounting_service, integrity_service, stock_service
from .services import permission_service
from .services.movement_service import get_asset_movement_history
from .services.tire_service import get_tire_by_serial
from .time_utils import to_utc_z


def _find_user(username):
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
    return user


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables and seed the default chart of accounts."""
    click.echo("START Initializing tiretrack database...")
    db.create_all()
    created = accounting_service.seed_chart_of_accounts()
    click.echo(f"PASS Tables created; {created} account(s) seeded")


@system_group.command('seed-accounts')
@with_appcontext
def seed_accounts():
    """Insert missing default chart-of-accounts rows."""
    created = accounting_service.seed_chart_of_accounts()
    click.echo(f"PASS {created} account(s) seeded")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User and capability commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--full-name', default=None, help='Full name')
@click.option('--email', default=None, help='Email address')
@with_appcontext
def create_user_cli(username, full_name, email):
    """Create an active user."""
    try:
        user = permission_service.create_user(username=username, full_name=full_name, email=email)
    except TireTrackError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created user: {user.username} (ID: {user.id})")


@users_group.command('grant')
@click.argument('username')
@click.argument('permission_code', type=click.Choice(sorted(PERMISSION_CODES)))
@with_appcontext
def grant_cli(username, permission_code):
    """Grant a capability to a user."""
    user = _find_user(username)
    if not user:
        return
    permission_service.grant_permission(user.id, permission_code)
    click.echo(f"PASS Granted {permission_code} to {username}")


@users_group.command('revoke')
@click.argument('username')
@click.argument('permission_code', type=click.Choice(sorted(PERMISSION_CODES)))
@with_appcontext
def revoke_cli(username, permission_code):
    """Revoke a capability from a user."""
    user = _find_user(username)
    if not user:
        return
    if permission_service.revoke_permission(user.id, permission_code):
        click.echo(f"PASS Revoked {permission_code} from {username}")
    else:
        click.echo(f"WARN  {username} did not hold {permission_code}")


# =============================================================================
# RECONCILIATION COMMANDS
# =============================================================================

@click.group('integrity')
def integrity_group():
    """Whole-database invariant checks."""


@integrity_group.command('check')
@click.option('--fix', is_flag=True, help='Repair stock counters and supplier balances')
@with_appcontext
def integrity_check(fix):
    """Run every integrity check; exits 1 when violations are found."""
    try:
        report = integrity_service.run_integrity_checks(fix=fix)
    except Exception:
        current_app.logger.exception("Integrity check failed")
        click.echo("FAIL Integrity check aborted (see log)")
        raise SystemExit(2)

    failed = False
    for name, violations in report.items():
        if violations:
            failed = True
            click.echo(f"FAIL {name}: {len(violations)} violation(s)")
            for violation in violations:
                click.echo(f"     {violation}")
        else:
            click.echo(f"PASS {name}")
    if failed and not fix:
        raise SystemExit(1)


@click.group('stock')
def stock_group():
    """Stock counter commands."""


@stock_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Overwrite drifted counters with recomputed values')
@with_appcontext
def stock_reconcile(fix):
    """Compare cached stock counters with tire rows."""
    drifts = stock_service.reconcile_stock(fix=fix)
    if not drifts:
        click.echo("PASS Stock counters match tire rows")
        return
    for drift in drifts:
        size, brand, model, kind = drift.key
        click.echo(f"WARN  {size} {brand} {model} {kind.value}: cached={drift.cached} actual={drift.actual}")
    click.echo(f"{'PASS Fixed' if fix else 'FAIL Found'} {len(drifts)} drifted counter(s)")


@stock_group.command('reorder')
@with_appcontext
def stock_reorder():
    """List catalog rows at or below their reorder threshold."""
    items = stock_service.list_reorder_candidates()
    if not items:
        click.echo("No catalog rows need reordering.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Size':<16} {'Brand':<14} {'Model':<14} {'Kind':<10} {'Stock':<7} {'Reorder'}")
    click.echo("="*80)
    for item in items:
        click.echo(
            f"{item.size:<16} {item.brand or '-':<14} {item.model or '-':<14} "
            f"{item.kind.value:<10} {item.current_stock:<7} {max(item.reorder_point or 0, item.min_stock or 0)}"
        )
    click.echo("="*80 + "\n")


@click.group('suppliers')
def suppliers_group():
    """Supplier ledger commands."""


@suppliers_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Reset drifted balances to the ledger total')
@with_appcontext
def suppliers_reconcile(fix):
    """Compare supplier balances with their ledgers."""
    drifts = accounting_service.reconcile_supplier_balances(fix=fix)
    if not drifts:
        click.echo("PASS Supplier balances match their ledgers")
        return
    for drift in drifts:
        click.echo(
            f"WARN  {drift['name']} (ID: {drift['supplier_id']}): "
            f"balance={drift['balance_cents']} ledger={drift['ledger_balance_cents']}"
        )
    click.echo(f"{'PASS Fixed' if fix else 'FAIL Found'} {len(drifts)} drifted balance(s)")


# =============================================================================
# INSPECTION COMMANDS
# =============================================================================

@click.group('tires')
def tires_group():
    """Tire inspection commands."""


@tires_group.command('history')
@click.argument('serial_number')
@with_appcontext
def tire_history(serial_number):
    """Print a tire's movement history, oldest first."""
    try:
        tire = get_tire_by_serial(serial_number)
    except TireTrackError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"{tire.serial_number} {tire.size} {tire.brand} {tire.model} [{tire.kind.value}] status={tire.status.value}")
    for movement in get_asset_movement_history(tire.id):
        from_status = movement.from_status.value if movement.from_status else "-"
        click.echo(
            f"  {to_utc_z(movement.occurred_at)} {movement.movement_type.value:<18} "
            f"{from_status} -> {movement.to_status.value} (user {movement.actor_user_id})"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(integrity_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(suppliers_group)
    app.cli.add_command(tires_group)
