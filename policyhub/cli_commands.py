"""
Flask CLI commands for account setup, maintenance and demo data.
"""

import click
from flask.cli import with_appcontext

from policyhub.models import PolicyProduct
from policyhub.services import accounts, catalog, subscriptions
from policyhub.utils.dates import utc_today


def _fail(result):
    """Print a failed OperationResult and exit non-zero."""
    error = result.error
    click.echo(f"✗ {error.kind}: {error.message}", err=True)
    for detail in error.details or []:
        click.echo(f"  - {detail}", err=True)
    raise SystemExit(1)


@click.command('create-admin')
@click.argument('name')
@click.argument('email')
@click.password_option()
@with_appcontext
def create_admin_command(name, email, password):
    """Create an admin account."""
    result = accounts.create_admin(name, email, password)
    if not result.success:
        _fail(result)
    click.echo(f"✓ Admin {result.value.email} created ({result.value.id})")


@click.command('create-agent')
@click.argument('name')
@click.argument('email')
@click.password_option()
@with_appcontext
def create_agent_command(name, email, password):
    """Create an agent account with the next agent code."""
    result = accounts.create_agent(name, email, password)
    if not result.success:
        _fail(result)
    agent = result.value
    click.echo(f"✓ Agent {agent.agent_code} {agent.email} created ({agent.id})")
    for warning in result.warnings:
        click.echo(f"! {warning}")


@click.command('expire-policies')
@with_appcontext
def expire_policies_command():
    """Move approved policies past their end date to Expired."""
    result = subscriptions.expire_lapsed_policies()
    if not result.success:
        _fail(result)
    click.echo(f"✓ Expired {result.value} policies")
    for warning in result.warnings:
        click.echo(f"! {warning}")


DEMO_PRODUCTS = [
    {'code': 'HEALTH1', 'title': 'Health Basic', 'description': 'Individual health cover',
     'premium': 500, 'term_months': 12, 'min_sum_insured': 100000, 'max_sum_insured': 500000},
    {'code': 'LIFE10', 'title': 'Term Life 10', 'description': 'Ten year term life cover',
     'premium': 1200, 'term_months': 120, 'min_sum_insured': 1000000, 'max_sum_insured': 5000000},
    {'code': 'MOTOR1', 'title': 'Motor Comprehensive', 'description': 'Private car cover',
     'premium': 800, 'term_months': 12, 'min_sum_insured': 0, 'max_sum_insured': 1500000},
]


@click.command('seed-demo')
@click.option('--password', default='demo1234', show_default=True, help='Password for the demo accounts.')
@with_appcontext
def seed_demo_command(password):
    """Create a small demo catalog with one agent and one customer."""
    agent_result = accounts.create_agent('Demo Agent', 'agent@demo.local', password)
    if not agent_result.success:
        _fail(agent_result)
    agent = agent_result.value
    click.echo(f"✓ Agent {agent.agent_code} agent@demo.local")

    customer_result = accounts.register_customer('Demo Customer', 'customer@demo.local', password)
    if not customer_result.success:
        _fail(customer_result)
    customer = customer_result.value
    click.echo("✓ Customer customer@demo.local")

    for data in DEMO_PRODUCTS:
        if PolicyProduct.query.filter_by(code=data['code']).first():
            click.echo(f"- Product {data['code']} already exists, skipping")
            continue
        product_result = catalog.create_product(dict(data))
        if not product_result.success:
            _fail(product_result)
        product = product_result.value
        assigned = catalog.assign_agent(product.id, agent.id)
        if not assigned.success:
            _fail(assigned)
        click.echo(f"✓ Product {product.code} assigned to {agent.agent_code}")

    first = PolicyProduct.query.filter_by(code=DEMO_PRODUCTS[0]['code']).first()
    purchase = subscriptions.purchase(customer.id, first.id, utc_today())
    if not purchase.success:
        _fail(purchase)
    click.echo(f"✓ Pending purchase {purchase.value.id} of {first.code}")


def init_app(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(create_admin_command)
    app.cli.add_command(create_agent_command)
    app.cli.add_command(expire_policies_command)
    app.cli.add_command(seed_demo_command)
