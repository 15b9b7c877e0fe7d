# Overview: Flask CLI command groups for bootstrap and stock inspection.

# backend/market/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to market (PowerShell: $env:FLASK_APP="market").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Demo data:
# - python -m flask seed demo
#   Create a branch, a category, two products and stock for both.
#
# Stock inspection/administration:
# - python -m flask stock show 1 1
#   Print on-hand, reserved and available counts for product 1 at branch 1.
# - python -m flask stock set 1 1 25 --note "Delivery"
#   Set on-hand count (creates the record on first use).
# - python -m flask stock movements 1 1
#   Print the stock movement log for product 1 at branch 1.

import click
from flask.cli import with_appcontext

from .errors import InventoryError
from .extensions import db
from .services import catalog_service, stock_ledger


@click.group('system')
def system_group():
    """System bootstrap and repair."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("Database reset complete")


@click.group('seed')
def seed_group():
    """Demo data."""


@seed_group.command('demo')
@with_appcontext
def seed_demo():
    """Create a demo branch with two stocked products."""
    branch = catalog_service.create_branch("Main Branch", address="1 Market Street")
    category = catalog_service.create_category("Groceries")
    milk = catalog_service.create_product("Milk 1L", 129, barcode="4000000000017", category_id=category.id)
    bread = catalog_service.create_product("Bread", 249, barcode="4000000000024", category_id=category.id)
    stock_ledger.create_stock_record(milk.id, branch.id, 50)
    stock_ledger.create_stock_record(bread.id, branch.id, 20)
    click.echo(f"Seeded branch {branch.id} with products {milk.id}, {bread.id}")


@click.group('stock')
def stock_group():
    """Stock inspection and administration."""


@stock_group.command('show')
@click.argument('product_id', type=int)
@click.argument('branch_id', type=int)
@with_appcontext
def show_stock(product_id, branch_id):
    try:
        record = stock_ledger.get_stock_record(product_id, branch_id)
    except InventoryError as e:
        raise click.ClickException(e.message)
    click.echo(
        f"product={record.product_id} branch={record.branch_id} "
        f"on_hand={record.quantity} reserved={record.reserved_quantity} "
        f"available={record.available_quantity}"
    )


@stock_group.command('set')
@click.argument('product_id', type=int)
@click.argument('branch_id', type=int)
@click.argument('quantity', type=int)
@click.option('--note', default=None, help='Reason recorded on the movement')
@with_appcontext
def set_stock(product_id, branch_id, quantity, note):
    try:
        record, _ = stock_ledger.set_stock(product_id, branch_id, quantity, note=note)
    except InventoryError as e:
        raise click.ClickException(e.message)
    click.echo(f"on_hand={record.quantity} reserved={record.reserved_quantity}")


@stock_group.command('movements')
@click.argument('product_id', type=int)
@click.argument('branch_id', type=int)
@with_appcontext
def list_movements(product_id, branch_id):
    for movement in stock_ledger.list_movements(product_id, branch_id):
        click.echo(
            f"{movement.id}\t{movement.movement_type}\t{movement.quantity}\t"
            f"sale={movement.sale_id or '-'}\t{movement.note or ''}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(seed_group)
    app.cli.add_command(stock_group)
