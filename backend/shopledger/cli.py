# Overview: Flask CLI command groups for shop bootstrap and stock maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Shop (tenant) management:
# - python -m flask shops create --name "Corner Shop" --timezone Africa/Mbabane --currency SZL
#   Create a new shop.
# - python -m flask shops list
#   List all shops with their usage counters.
# - python -m flask shops reset-usage --shop-id 1
#   Zero the monthly usage counters (billing cycle rollover).
#
# Stock maintenance:
# - python -m flask stock reconcile --shop-id 1
#   Compare every stock-tracked product against its ledger; exits 1 on drift.

import sys
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Shop, SHOP_TIERS
from .services import ledger_service, usage_service


@click.group('shops')
def shops_group():
    """Shop (tenant) management commands."""


@shops_group.command('create')
@click.option('--name', required=True, help='Shop name')
@click.option('--timezone', 'tz_name', default=None, help='IANA time zone (default: DEFAULT_SHOP_TIMEZONE)')
@click.option('--currency', default='SZL', show_default=True, help='ISO currency code')
@click.option('--tier', type=click.Choice(SHOP_TIERS), default='FREE', show_default=True)
@with_appcontext
def create_shop(name, tz_name, currency, tier):
    """Create a new shop."""
    tz_name = tz_name or current_app.config["DEFAULT_SHOP_TIMEZONE"]
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise click.BadParameter(f"Unknown time zone {tz_name!r}", param_hint="--timezone")

    shop = Shop(name=name, timezone=tz_name, currency=currency.upper(), tier=tier, is_active=True)
    db.session.add(shop)
    db.session.commit()
    click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id}, TZ: {shop.timezone}, {shop.currency})")


@shops_group.command('list')
@with_appcontext
def list_shops():
    """List all shops."""
    shops = db.session.query(Shop).order_by(Shop.id.asc()).all()
    if not shops:
        click.echo("No shops found.")
        return

    click.echo(f"{'ID':<5} {'Name':<30} {'TZ':<20} {'Tier':<9} {'Txns':<7} {'Moves':<7} {'Active':<6}")
    click.echo("-" * 90)
    for shop in shops:
        click.echo(
            f"{shop.id:<5} {shop.name[:29]:<30} {shop.timezone:<20} {shop.tier:<9} "
            f"{shop.monthly_transactions:<7} {shop.monthly_stock_moves:<7} {'yes' if shop.is_active else 'no':<6}"
        )


@shops_group.command('reset-usage')
@click.option('--shop-id', type=int, required=True)
@with_appcontext
def reset_usage(shop_id):
    """Zero a shop's monthly usage counters."""
    try:
        shop = usage_service.reset_monthly_usage(shop_id)
    except usage_service.UsageError as e:
        click.echo(f"FAIL {e}")
        sys.exit(1)
    click.echo(f"PASS Usage counters reset for shop {shop.id} ({shop.name})")


@click.group('stock')
def stock_group():
    """Stock ledger maintenance commands."""


@stock_group.command('reconcile')
@click.option('--shop-id', type=int, required=True)
@with_appcontext
def reconcile_stock(shop_id):
    """Check Product.quantity against the stock ledger for one shop."""
    report = ledger_service.reconcile_shop(shop_id)
    click.echo(f"Checked {report['checked']} stock-tracked product(s) in shop {shop_id}")

    if not report["drifted"]:
        click.echo("PASS Ledger and quantities agree")
        return

    for row in report["products"]:
        click.echo(
            f"FAIL Product {row['product_id']} ({row['name']}): quantity={row['quantity']} "
            f"ledger_sum={row['ledger_sum']} broken_links={row['broken_links']}"
        )
    sys.exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(shops_group)
    app.cli.add_command(stock_group)
