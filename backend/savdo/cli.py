# Overview: Flask CLI command groups for bootstrap, tenant management and ledger audits.

# backend/savdo/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
#   List all tenants.
# - python -m flask tenants create --name "Baraka Savdo" --owner "Aziz" --phone "+998901234567"
#   Create a new tenant.
#
# Ledger audit:
# - python -m flask audit check --tenant-id 1
#   Run the invariant audit; exits with status 1 when violations are found.
# - python -m flask audit reconcile --tenant-id 1 --type dealer --id 3
#   Reconcile one debtor's balance against its debt journal.

import json

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Tenant
from .services import audit_service, debt_service


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

    click.echo("PASS Database reset complete. Run 'python -m flask tenants create' to add a tenant.")


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id.asc()).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Owner':<20} {'Phone':<16} {'Active'}")
    click.echo("="*80)

    for tenant in tenants:
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.owner_name:<20} {tenant.phone:<16} {active_str}")

    click.echo("="*80 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Business name')
@click.option('--owner', 'owner_name', required=True, help='Owner full name')
@click.option('--phone', required=True, help='Owner phone (unique)')
@click.option('--plan', default='free', help='Subscription plan')
@with_appcontext
def create_tenant_cli(name, owner_name, phone, plan):
    """Create a new tenant."""
    existing = db.session.query(Tenant).filter_by(phone=phone).first()
    if existing:
        click.echo(f"FAIL Tenant with phone '{phone}' already exists (ID: {existing.id})")
        raise SystemExit(1)

    tenant = Tenant(name=name, owner_name=owner_name, phone=phone, plan=plan, is_active=True)
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id})")


@click.group('audit')
def audit_group():
    """Ledger invariant audits."""


@audit_group.command('check')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def audit_check(tenant_id):
    """Run every ledger invariant check for a tenant."""
    try:
        report = audit_service.check_invariants(tenant_id)
    except LedgerError as e:
        raise click.ClickException(e.message)

    summary = report["summary"]
    click.echo(
        f"Central stock: {summary['central_stock']}  Dealer stock: {summary['dealer_stock']}  "
        f"Customer debt: {summary['customer_debt']}  Dealer debt: {summary['dealer_debt']}"
    )
    if report["ok"]:
        click.echo("PASS No invariant violations.")
        return

    for violation in report["violations"]:
        click.echo(f"FAIL {json.dumps(violation, sort_keys=True)}")
    raise SystemExit(1)


@audit_group.command('reconcile')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--type', 'debtor_type', type=click.Choice(debt_service.DEBTOR_TYPES), required=True)
@click.option('--id', 'debtor_id', type=int, required=True, help='Debtor ID')
@with_appcontext
def audit_reconcile(tenant_id, debtor_type, debtor_id):
    """Reconcile one debtor against its debt journal."""
    try:
        report = debt_service.reconcile_debtor(tenant_id, debtor_type, debtor_id)
    except LedgerError as e:
        raise click.ClickException(e.message)

    click.echo(json.dumps(report, indent=2, sort_keys=True))
    if not report["balanced"]:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(audit_group)
