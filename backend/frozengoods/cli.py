# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/frozengoods/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use "flask db upgrade" for migrated deployments.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Product inspection:
# - python -m flask products list [--category "Ice Cream"]
#   List active products with price and on-hand quantity.
# - python -m flask products low-stock [--threshold 5]
#   List reorder candidates, lowest stock first.
#
# Ledger audit:
# - python -m flask ledger reconcile [--product-id 3]
#   Compare each product's quantity with the sum of its ledger deltas. Exits 1 on mismatch.
#
# Reorder planner:
# - python -m flask reorder status
#   Show the active cap, draft total, remaining budget and saved snapshots.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import NotFoundError
from .services import ledger_service, products_service, reorder_service


def _cents(value) -> str:
    if value is None:
        return "-"
    return f"{value / 100:,.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    reorder_service.get_settings()
    click.echo("PASS Database initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the audit ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


# =============================================================================
# PRODUCT COMMANDS
# =============================================================================

@click.group('products')
def products_group():
    """Product inspection commands."""


@products_group.command('list')
@click.option('--category', help='Filter by category')
@with_appcontext
def list_products_cli(category):
    """List active products."""
    result = products_service.list_products(category=category)
    items = result["items"]

    if not items:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Category':<18} {'Price':>10} {'Cost':>10} {'Qty':>5}")
    click.echo("="*80)

    for p in items:
        click.echo(
            f"{p['id']:<5} {p['name'][:30]:<30} {p['category'][:18]:<18} "
            f"{_cents(p['price_cents']):>10} {_cents(p['distributor_price_cents']):>10} {p['quantity']:>5}"
        )

    click.echo("="*80 + "\n")


@products_group.command('low-stock')
@click.option('--threshold', type=int, help='Override LOW_STOCK_THRESHOLD')
@with_appcontext
def low_stock_cli(threshold):
    """List reorder candidates."""
    products = products_service.list_low_stock(threshold)

    if not products:
        click.echo("PASS No products at or below the low-stock threshold.")
        return

    for p in products:
        click.echo(f"WARN  {p.id:<5} {p.name:<30} qty={p.quantity}")


# =============================================================================
# LEDGER COMMANDS
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Ledger audit commands."""


@ledger_group.command('reconcile')
@click.option('--product-id', type=int, help='Only check this product')
@with_appcontext
@click.pass_context
def reconcile_cli(ctx, product_id):
    """Check SUM(quantity_delta) == quantity for every product."""
    if product_id is not None:
        try:
            results = [ledger_service.reconcile_product(product_id)]
        except NotFoundError as e:
            click.echo(f"FAIL {e.message}")
            ctx.exit(1)
    else:
        results = ledger_service.reconcile_all()

    mismatches = 0
    for r in results:
        if r["consistent"]:
            click.echo(f"PASS {r['product_id']:<5} {r['product_name']:<30} qty={r['quantity']}")
        else:
            mismatches += 1
            click.echo(
                f"FAIL {r['product_id']:<5} {r['product_name']:<30} "
                f"qty={r['quantity']} ledger={r['ledger_total']} diff={r['difference']}"
            )

    click.echo(f"\nChecked {len(results)} product(s), {mismatches} mismatch(es).")
    if mismatches:
        ctx.exit(1)


# =============================================================================
# REORDER COMMANDS
# =============================================================================

@click.group('reorder')
def reorder_group():
    """Reorder planner inspection commands."""


@reorder_group.command('status')
@with_appcontext
def reorder_status_cli():
    """Show the active draft and saved snapshots."""
    draft = reorder_service.get_draft()

    click.echo(f"Cap:       {_cents(draft['max_total_amount_cents'])}")
    click.echo(f"Draft:     {_cents(draft['total_amount_cents'])} ({draft['item_count']} items)")
    click.echo(f"Remaining: {_cents(draft['remaining_cents'])}")
    if draft["has_undo"]:
        click.echo("Undo:      a deleted snapshot can be restored")

    snapshots = reorder_service.list_snapshots()
    click.echo(f"\nSnapshots: {len(snapshots)}")
    for s in snapshots:
        click.echo(f"  {s.id:<5} {s.name:<30} {_cents(s.total_amount_cents):>12} ({len(s.items)} items)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(reorder_group)
