# Overview: Flask CLI commands for opening the store and inspecting stock.

# pos_store/cli.py
# Commands Legend:
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (e.g. FLASK_APP="pos_store:create_app").
# - Use: python -m flask store <command> [options]
#
# - python -m flask store init
#   Create or upgrade the record stores (idempotent) and list them.
# - python -m flask store low-stock [--threshold 10]
#   List products at or below the low-stock threshold.

import click
from flask.cli import with_appcontext

from .database import open_database
from .services.reporting_service import get_low_stock_alerts
from .services.schema_service import describe_schema


@click.group('store')
def store_group():
    """Local store bootstrap and inspection commands."""


@store_group.command('init')
@with_appcontext
def init_store():
    """Create missing record stores and indexes, then print the schema."""
    with open_database() as handle:
        click.echo(f"PASS Schema version {handle.schema_version}")
        for table, indexes in describe_schema().items():
            click.echo(f"  {table}: {', '.join(indexes) or '-'}")


@store_group.command('low-stock')
@click.option('--threshold', type=int, default=None, help='Override LOW_STOCK_THRESHOLD')
@with_appcontext
def low_stock(threshold):
    """List products at or below the low-stock threshold."""
    with open_database():
        alerts = get_low_stock_alerts(threshold)
    if not alerts:
        click.echo("PASS No low-stock products")
        return
    for alert in alerts:
        label = "OUT" if alert["type"] == "out_of_stock" else "LOW"
        click.echo(f"{label} #{alert['product_id']} {alert['name']}: {alert['current_stock']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(store_group)
