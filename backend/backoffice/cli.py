# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create missing tables and the series counters (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Series numbers:
# - python -m flask series list
#   Show every series with its next number and next formatted id.
# - python -m flask series set invoice 1200
#   Move a series counter (ids already in use are skipped on allocation).
#
# Stock inspection:
# - python -m flask stock show SKU-001 [--limit 20]
#   Show current quantity and the latest movements for a product.
#
# Demand notices:
# - python -m flask notices reconcile [--product-id 4]
#   Re-derive availability statuses from current stock.

import click
from flask.cli import with_appcontext

from .errors import BackofficeError
from .extensions import db
from .models import Product, SeriesNumberSetting
from .services import demand_notice_service, series_service, stock_ledger
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables and series counters that do not exist yet."""
    click.echo("START Initializing back-office store...")
    db.create_all()

    created = 0
    for series_id in sorted(series_service.SERIES_PREFIXES):
        if db.session.get(SeriesNumberSetting, series_id) is None:
            db.session.add(SeriesNumberSetting(id=series_id, next_number=1))
            created += 1
    db.session.commit()
    click.echo(f"PASS Series counters ready ({created} created)")


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

    click.echo("PASS Database reset complete")


@click.group('series')
def series_group():
    """Series number inspection and repair."""


@series_group.command('list')
@with_appcontext
def list_series():
    for row in series_service.list_series():
        click.echo(f"{row['id']:<14} next={row['next_number']:<8} next_id={row['next_id']}")


@series_group.command('set')
@click.argument('series_id')
@click.argument('next_number', type=int)
@with_appcontext
def set_series(series_id, next_number):
    try:
        row = series_service.set_next_number(series_id, next_number)
    except BackofficeError as e:
        raise click.ClickException(e.message) from e
    click.echo(f"PASS {row.id} next number is now {row.next_number}")


@click.group('stock')
def stock_group():
    """Stock inspection."""


@stock_group.command('show')
@click.argument('sku')
@click.option('--limit', default=20, show_default=True, help='Number of movements to show')
@with_appcontext
def show_stock(sku, limit):
    product = db.session.query(Product).filter_by(sku=sku).first()
    if product is None:
        raise click.ClickException(f"No product with SKU {sku}")

    click.echo(f"{product.sku}  {product.name}")
    click.echo(f"  in stock: {product.quantity_in_stock}")
    for movement in stock_ledger.recent_movements(product.id, limit=limit):
        click.echo(
            f"  {to_utc_z(movement.occurred_at)}  {movement.movement_type:<20} "
            f"{movement.quantity_delta:+d} -> {movement.quantity_after}  "
            f"{movement.reference_type or '-'}:{movement.reference_id or '-'}"
        )


@click.group('notices')
def notices_group():
    """Demand notice maintenance."""


@notices_group.command('reconcile')
@click.option('--product-id', type=int, default=None, help='Limit to one product')
@with_appcontext
def reconcile_notices(product_id):
    try:
        if product_id is not None:
            changed = {product_id: len(demand_notice_service.reconcile(product_id))}
        else:
            changed = demand_notice_service.reconcile_all()
    except BackofficeError as e:
        raise click.ClickException(e.message) from e

    total = sum(changed.values())
    for pid, count in sorted(changed.items()):
        if count:
            click.echo(f"  product {pid}: {count} notice(s) updated")
    click.echo(f"PASS Reconciled {len(changed)} product(s), {total} notice(s) updated")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(series_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(notices_group)
