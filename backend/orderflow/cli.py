# Overview: Flask CLI command groups for bootstrap, demo data, and installment maintenance.

# backend/orderflow/cli.py
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
# Demo data:
# - python -m flask seed demo
#   Customers, products, one fixed and one flexible installment plan.
#
# Installments:
# - python -m flask installments mark-overdue [--today 2026-05-01]
#   Flag pending installments past due date + grace period as late.

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .extensions import db
from .models import Customer, InstallmentPlan, Product
from .services import installment_service, plan_service
from .validation import ValidationError, to_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing data is kept."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask seed demo' for sample data.")


@click.group('seed')
def seed_group():
    """Sample data for local development."""


@seed_group.command('demo')
@with_appcontext
def seed_demo():
    """Insert demo customers, products and plans (idempotent by name/email)."""
    customers = [
        ("Mona", "Adel", "mona.adel@example.com", "29001011234567"),
        ("Karim", "Fathy", "karim.fathy@example.com", "28805052345678"),
    ]
    for first, last, email, identity in customers:
        if not db.session.query(Customer).filter_by(email=email).first():
            db.session.add(Customer(first_name=first, last_name=last, email=email, identity_number=identity))
            click.echo(f"PASS Created customer {email}")

    products = [
        ("Refrigerator 18ft", "1000.00", "750.00", 10),
        ("Washing Machine 8kg", "500.00", "380.00", 15),
        ("Microwave 25L", "150.00", "100.00", 30),
    ]
    for name, price, cost, qty in products:
        if not db.session.query(Product).filter_by(name=name).first():
            db.session.add(Product(name=name, price=Decimal(price), cost=Decimal(cost), quantity=qty))
            click.echo(f"PASS Created product {name}")
    db.session.commit()

    plans = [
        {"name": "Fixed 6 months", "plan_type": "fixed", "duration": 6, "interest_rate": "0.10"},
        {
            "name": "Flexible 6 months",
            "plan_type": "flexible",
            "duration": 6,
            "interest_rate": "0.05",
            "advance_payment_amount": "500.00",
        },
    ]
    for data in plans:
        if db.session.query(InstallmentPlan).filter_by(name=data["name"]).first():
            continue
        try:
            plan = plan_service.create_plan(data)
        except ValidationError as e:
            raise click.ClickException(str(e))
        click.echo(f"PASS Created plan {plan.name} (ID: {plan.id})")


@click.group('installments')
def installments_group():
    """Installment maintenance."""


@installments_group.command('mark-overdue')
@click.option('--today', 'today_value', default=None, help='Business date (YYYY-MM-DD), defaults to today')
@with_appcontext
def mark_overdue(today_value):
    """Flag pending installments past due date + grace as late."""
    try:
        today = to_date(today_value, "today") if today_value else None
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="--today")

    changed = installment_service.mark_overdue_installments(today)
    click.echo(f"PASS Marked {len(changed)} installment(s) late.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(seed_group)
    app.cli.add_command(installments_group)
