# Overview: Flask CLI command groups for bootstrap, orders, and inventory maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to storefront (PowerShell: $env:FLASK_APP="storefront").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
#
# Users:
# - python -m flask users create --email admin@shop.local --password "Password123" --admin
#   Create a profile (prompts if options are omitted).
#
# Orders:
# - python -m flask orders sweep-timeouts [--timeout-minutes 30]
#   Cancel pending_payment orders older than the payment timeout and restore stock.
#   Intended for cron.
# - python -m flask orders cancel 42 --reason "Customer request"
#   Cancel one order and restore its stock.
#
# Inventory:
# - python -m flask inventory notify 7
#   Mark pending restock subscriptions for variant 7 as notified.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services.auth_service import create_profile, PasswordValidationError
from .services import inventory_service
from .services import order_service
from .services.order_service import OrderError
from .time_utils import minutes_ago


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for the current models."""
    db.create_all()
    click.echo("PASS Database tables created")


@click.group('users')
def users_group():
    """Profile management commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--full-name', default=None, help='Display name')
@click.option('--admin', 'is_admin', is_flag=True, help='Grant back-office access')
@with_appcontext
def create_user_cli(email, password, full_name, is_admin):
    """
    Create a profile.

    Password must be 8+ characters with uppercase, lowercase and a digit.
    """
    try:
        profile = create_profile(email, password, full_name=full_name, is_admin=is_admin)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except ValueError as e:
        raise click.ClickException(str(e))

    role = "admin" if profile.is_admin else "customer"
    click.echo(f"PASS Created {role} {profile.email} (ID: {profile.id})")


@click.group('orders')
def orders_group():
    """Order lifecycle commands."""


@orders_group.command('sweep-timeouts')
@click.option('--timeout-minutes', type=int, default=None,
              help='Override ORDER_PAYMENT_TIMEOUT_MINUTES')
@with_appcontext
def sweep_timeouts_cli(timeout_minutes):
    """Cancel unpaid orders past the payment timeout and restore their stock."""
    if timeout_minutes is None:
        timeout_minutes = current_app.config["ORDER_PAYMENT_TIMEOUT_MINUTES"]

    report = order_service.sweep_timed_out_orders(minutes_ago(timeout_minutes))

    click.echo(f"Found {report.total} pending orders older than {timeout_minutes} minutes.")
    for order_id in report.cancelled:
        click.echo(f"PASS Order {order_id} cancelled and stock restored")
    for order_id, message in report.failed:
        click.echo(f"FAIL Order {order_id}: {message}")
    click.echo(f"Cleanup finished: {len(report.cancelled)} cancelled, {len(report.failed)} failed.")

    if report.failed:
        raise SystemExit(1)


@orders_group.command('cancel')
@click.argument('order_id', type=int)
@click.option('--reason', default=None, help='Cancellation reason')
@with_appcontext
def cancel_order_cli(order_id, reason):
    """Cancel a single order and restore its stock."""
    try:
        order = order_service.cancel_order(order_id, reason=reason)
    except OrderError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Order {order.id} cancelled ({order.cancel_reason})")


@click.group('inventory')
def inventory_group():
    """Inventory commands."""


@inventory_group.command('notify')
@click.argument('variant_id', type=int)
@with_appcontext
def notify_cli(variant_id):
    """Notify restock subscribers for a variant."""
    result = inventory_service.notify_restock_subscribers(variant_id)
    click.echo(result.message)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(inventory_group)
