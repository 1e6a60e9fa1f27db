#!/usr/bin/env python
"""
Management Script

CLI commands for database setup and the request-less sync jobs.

Usage:
    # Create tables directly (development)
    flask --app manage.py init-db

    # Insert / refresh the toll provider catalog
    flask --app manage.py seed-providers

    # Drain the outbound sync queue (e.g. from cron)
    flask --app manage.py process-sync-queue

    # Reset accounts stuck in 'syncing'
    flask --app manage.py cleanup-stale --timeout 600

    # Flask-Migrate
    python manage.py db upgrade
"""
import os
import sys

# Add the backend directory to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask.cli import with_appcontext
import click

from app import create_app
from app.extensions import db

# Create app instance
app = create_app()


@app.cli.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo(click.style('✓ Database tables created', fg='green'))


@app.cli.command('seed-providers')
@with_appcontext
def seed_providers():
    """Insert or refresh the toll provider catalog."""
    from app.services.provider_catalog import seed_default_providers
    from app.services.toll.registry import get_provider_registry

    providers = seed_default_providers(get_provider_registry())
    for provider in providers:
        click.echo(f'  - {provider.code}: {provider.name} ({provider.api_endpoint})')
    click.echo(click.style(f'✓ {len(providers)} providers in catalog', fg='green'))


@app.cli.command('process-sync-queue')
@with_appcontext
def process_sync_queue():
    """Apply every pending sync queue item."""
    from app.services.sync_queue_service import SyncQueueService

    result = SyncQueueService.process_queue()
    if not result['success']:
        click.echo(click.style('✗ Could not read the sync queue', fg='red'))
        sys.exit(1)

    color = 'green' if result['failed'] == 0 else 'yellow'
    click.echo(click.style(
        f"✓ Processed {result['processed']} items, {result['failed']} failed", fg=color
    ))


@app.cli.command('cleanup-stale')
@click.option('--timeout', type=int, default=None, help='Seconds after which a sync is stale')
@with_appcontext
def cleanup_stale(timeout):
    """Clean up syncs stuck in 'syncing'."""
    from app.services.toll_account_service import TollAccountService

    cleaned = TollAccountService.cleanup_stale_syncs(timeout)
    if cleaned > 0:
        click.echo(click.style(f'✓ Cleaned {cleaned} stale syncs', fg='green'))
    else:
        click.echo('No stale syncs found')


if __name__ == '__main__':
    # Support running with flask CLI
    import subprocess

    if len(sys.argv) > 1 and sys.argv[1] == 'db':
        # Use flask db commands
        os.environ['FLASK_APP'] = 'manage.py'
        subprocess.run(['flask'] + sys.argv[1:])
    else:
        # Run custom commands
        app.cli()
