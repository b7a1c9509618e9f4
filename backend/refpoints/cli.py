# Overview: Flask CLI command groups for bootstrap, tenants, and coupons.

# backend/refpoints/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: flask --app refpoints <group> <command> [options]
#
# System bootstrap/repair:
# - flask --app refpoints system init-db
#   Create all tables that do not exist yet.
# - flask --app refpoints system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - flask --app refpoints tenants list
# - flask --app refpoints tenants create --name "Corner Cafe" --code "CAFE"
#
# Coupons:
# - flask --app refpoints coupons issue --tenant CAFE --value 25 --usage-limit 50 [--campaign-id 3]
# - flask --app refpoints coupons list --tenant CAFE [--active-only]

import click
from flask.cli import with_appcontext

from .errors import RewardsError
from .extensions import db
from .models import Coupon, Customer, Organization
from .services import coupon_ledger, tenant_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (idempotent)."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'flask --app refpoints tenants create' to add a shop.")


# =============================================================================
# TENANT COMMANDS
# =============================================================================

@click.group('tenants')
def tenants_group():
    """Organization (tenant) management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all organizations."""
    orgs = tenant_service.list_organizations()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Customers':<10} {'Coupons'}")
    click.echo("="*80)

    for org in orgs:
        customer_count = db.session.query(Customer).filter_by(org_id=org.id).count()
        coupon_count = db.session.query(Coupon).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"

        click.echo(f"{org.id:<5} {org.name:<30} {org.code:<15} {active_str:<8} {customer_count:<10} {coupon_count}")

    click.echo("="*80 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code sent in the X-Tenant header (unique)')
@with_appcontext
def create_tenant(name, code):
    """Create a new organization (tenant)."""
    try:
        org = tenant_service.create_organization(name, code)
    except RewardsError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


# =============================================================================
# COUPON COMMANDS
# =============================================================================

@click.group('coupons')
def coupons_group():
    """Coupon issuing and inspection."""


def _org_by_code(code: str) -> Organization:
    org = db.session.query(Organization).filter_by(code=code.strip().upper()).first()
    if not org:
        raise click.ClickException(f"Organization '{code}' not found")
    return org


@coupons_group.command('issue')
@click.option('--tenant', 'tenant_code', required=True, help='Organization code')
@click.option('--value', type=int, required=True, help='Points awarded per redemption')
@click.option('--usage-limit', type=int, required=True, help='Maximum number of redemptions')
@click.option('--campaign-id', type=int, default=None, help='Link to a campaign')
@with_appcontext
def issue_coupon(tenant_code, value, usage_limit, campaign_id):
    """Issue a new coupon with a generated code."""
    org = _org_by_code(tenant_code)
    try:
        coupon = coupon_ledger.issue(org.id, value=value, usage_limit=usage_limit, campaign_id=campaign_id)
    except RewardsError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Issued coupon {coupon.code} (value {coupon.value}, limit {coupon.usage_limit})")


@coupons_group.command('list')
@click.option('--tenant', 'tenant_code', required=True, help='Organization code')
@click.option('--active-only', is_flag=True, help='Only redeemable coupons')
@with_appcontext
def list_coupons(tenant_code, active_only):
    """List coupons for an organization."""
    org = _org_by_code(tenant_code)
    coupons = coupon_ledger.list_coupons(org.id, active_only=active_only)

    if not coupons:
        click.echo("No coupons found.")
        return

    click.echo(f"{'Code':<12} {'Value':<8} {'Used':<12} {'Active':<8} {'Owner'}")
    for c in coupons:
        used = f"{c['usage_count']}/{c['usage_limit']}"
        active_str = "Yes" if c['is_active'] else "No"
        click.echo(f"{c['code']:<12} {c['value']:<8} {used:<12} {active_str:<8} {c['customer_id'] or '-'}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(coupons_group)
