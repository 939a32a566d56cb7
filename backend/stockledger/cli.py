# Overview: Flask CLI command groups for bootstrap, master-data seeding, periods and stock inspection.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Master data seeding (maintained outside the ledger; no update/delete here):
# - python -m flask master add-location --code K1 --name "Main Kitchen" --type KITCHEN
# - python -m flask master add-item --code RICE-25 --name "Rice 25kg" --unit BAG
# - python -m flask master add-supplier --code SUP1 --name "Gulf Foods"
#
# Periods:
# - python -m flask periods list
# - python -m flask periods create --name "March 2026" --start 2026-03-01 --end 2026-03-31
# - python -m flask periods open 1
# - python -m flask periods roll-forward 1 [--no-copy-prices]
#
# Stock:
# - python -m flask stock show --location 1

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import StockLedgerError
from .models import Item, Location, Supplier
from .models.enums import LocationType, enum_values
from .services import period_service, stock_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Tables created.")


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


# =============================================================================
# MASTER DATA SEEDING
# =============================================================================

@click.group('master')
def master_group():
    """Seed locations, items and suppliers."""


@master_group.command('add-location')
@click.option('--code', required=True)
@click.option('--name', required=True)
@click.option('--type', 'location_type', type=click.Choice(enum_values(LocationType)), required=True)
@with_appcontext
def add_location_cli(code, name, location_type):
    if db.session.query(Location).filter_by(code=code).first():
        click.echo(f"FAIL Location with code '{code}' already exists")
        return

    location = Location(code=code, name=name, location_type=location_type, is_active=True)
    db.session.add(location)
    db.session.commit()
    click.echo(f"PASS Created location: {location.name} (ID: {location.id}, Code: {location.code})")


@master_group.command('add-item')
@click.option('--code', required=True)
@click.option('--name', required=True)
@click.option('--unit', required=True, help='KG, EA, LTR, BOX, ...')
@click.option('--category', default=None)
@with_appcontext
def add_item_cli(code, name, unit, category):
    if db.session.query(Item).filter_by(code=code).first():
        click.echo(f"FAIL Item with code '{code}' already exists")
        return

    item = Item(code=code, name=name, unit=unit.upper(), category=category, is_active=True)
    db.session.add(item)
    db.session.commit()
    click.echo(f"PASS Created item: {item.name} (ID: {item.id}, Code: {item.code})")


@master_group.command('add-supplier')
@click.option('--code', required=True)
@click.option('--name', required=True)
@with_appcontext
def add_supplier_cli(code, name):
    if db.session.query(Supplier).filter_by(code=code).first():
        click.echo(f"FAIL Supplier with code '{code}' already exists")
        return

    supplier = Supplier(code=code, name=name, is_active=True)
    db.session.add(supplier)
    db.session.commit()
    click.echo(f"PASS Created supplier: {supplier.name} (ID: {supplier.id}, Code: {supplier.code})")


# =============================================================================
# PERIODS
# =============================================================================

@click.group('periods')
def periods_group():
    """Period lifecycle commands."""


@periods_group.command('list')
@with_appcontext
def list_periods_cli():
    periods = period_service.list_periods()
    if not periods:
        click.echo("No periods found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<24} {'Start':<12} {'End':<12} {'Status':<15} {'Locations'}")
    click.echo("="*80)
    for period in periods:
        click.echo(
            f"{period.id:<5} {period.name:<24} {period.start_date.isoformat():<12} "
            f"{period.end_date.isoformat():<12} {period.status:<15} {len(period.period_locations)}"
        )
    click.echo("="*80 + "\n")


@periods_group.command('create')
@click.option('--name', required=True)
@click.option('--start', 'start_date', required=True, help='YYYY-MM-DD')
@click.option('--end', 'end_date', required=True, help='YYYY-MM-DD')
@with_appcontext
def create_period_cli(name, start_date, end_date):
    try:
        period = period_service.create_period(name=name, start_date=start_date, end_date=end_date)
    except StockLedgerError as e:
        click.echo(f"FAIL {e.code}: {e.message}")
        return
    click.echo(f"PASS Created period: {period.name} (ID: {period.id}, {period.status})")


@periods_group.command('open')
@click.argument('period_id', type=int)
@with_appcontext
def open_period_cli(period_id):
    try:
        period = period_service.open_period(period_id)
    except StockLedgerError as e:
        click.echo(f"FAIL {e.code}: {e.message}")
        return
    click.echo(f"PASS Opened period: {period.name} (ID: {period.id})")


@periods_group.command('roll-forward')
@click.argument('period_id', type=int)
@click.option('--end', 'end_date', default=None, help='YYYY-MM-DD, default end of month')
@click.option('--copy-prices/--no-copy-prices', default=True, show_default=True)
@with_appcontext
def roll_forward_cli(period_id, end_date, copy_prices):
    try:
        period = period_service.roll_forward_period(period_id, end_date=end_date, copy_prices=copy_prices)
    except StockLedgerError as e:
        click.echo(f"FAIL {e.code}: {e.message}")
        return
    click.echo(
        f"PASS Created {period.name} (ID: {period.id}) "
        f"{period.start_date.isoformat()} to {period.end_date.isoformat()}"
    )


# =============================================================================
# STOCK
# =============================================================================

@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('show')
@click.option('--location', 'location_id', type=int, required=True)
@click.option('--all', 'include_zero', is_flag=True, help='Include zero on-hand rows')
@with_appcontext
def show_stock_cli(location_id, include_zero):
    try:
        rows = stock_service.get_location_stock(location_id, include_zero=include_zero)
    except StockLedgerError as e:
        click.echo(f"FAIL {e.code}: {e.message}")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Code':<14} {'Name':<30} {'On hand':>12} {'WAC':>10} {'Value':>12}")
    click.echo("="*80)
    for row in rows:
        click.echo(
            f"{row['item_code'] or '-':<14} {(row['item_name'] or '-')[:30]:<30} "
            f"{row['on_hand']:>12} {row['wac']:>10} {row['value']:>12}"
        )
    click.echo("="*80)
    click.echo(f"Total value: {stock_service.get_stock_value(location_id)}\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(master_group)
    app.cli.add_command(periods_group)
    app.cli.add_command(stock_group)
