"""
Flask CLI commands for storefront management.

Commands:
- flask init-db: Create database tables
- flask create-tenant: Create a tenant with the next business number
- flask list-tenants: Print all tenants
"""

import click
from pydantic import ValidationError as PydanticValidationError

from storefront.database import create_all, get_session
from storefront.exceptions import StorefrontError
from storefront.schemas import TenantCreate
from storefront.services import tenant_service


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        create_all()
        click.echo(click.style('✅ Database tables created', fg='green'))

    @app.cli.command('create-tenant')
    @click.option('--name', prompt=True, help='Business display name')
    @click.option('--email', prompt=True, help='Owner email address')
    @click.option('--mobile', prompt=True, help='Owner mobile number')
    @click.option('--created-by', default=None, help='Admin email recorded as creator')
    def create_tenant(name, email, mobile, created_by):
        """Create a tenant and print its business number."""
        try:
            data = TenantCreate(name=name, email=email, mobile_number=mobile)
        except PydanticValidationError as e:
            for error in e.errors(include_url=False):
                field = '.'.join(str(part) for part in error.get('loc', ()))
                click.echo(click.style(f'❌ {field}: {error.get("msg")}', fg='red'))
            raise SystemExit(1)

        db_session = get_session()
        try:
            tenant = tenant_service.create_tenant(db_session, data, created_by=created_by)
        except StorefrontError as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error creating tenant: {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style('\n✅ Tenant created', fg='green', bold=True))
        click.echo(f'   Business number: {tenant.business_number}')
        click.echo(f'   Name: {tenant.name}')
        click.echo(f'   Email: {tenant.email}')
        click.echo(f'\n💡 Review page: /?BIS={tenant.business_number}')

    @app.cli.command('list-tenants')
    def list_tenants():
        """Print business number, status, email and name of every tenant."""
        tenants = tenant_service.list_tenants(get_session())
        if not tenants:
            click.echo('No tenants yet.')
            return
        for tenant in tenants:
            click.echo(f'{tenant.business_number}  {tenant.status:<8}  {tenant.email:<40}  {tenant.name}')
