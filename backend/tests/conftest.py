"""
Pytest Configuration and Fixtures

This module provides shared fixtures for all tests.
"""
import os
import sys
import pytest

# Add app to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from app.extensions import db
from app.config import TestingConfig
from app.models import CompanyTollAccount, TollProvider
from app.services.provider_catalog import seed_default_providers
from app.services.toll.registry import get_provider_registry

COMPANY_ID = 1
OTHER_COMPANY_ID = 2


@pytest.fixture(scope='function')
def app():
    """Create application with a fresh in-memory database per test."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        seed_default_providers(get_provider_registry())
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def registry(app):
    return get_provider_registry()


@pytest.fixture
def company_headers():
    return {'X-Company-ID': str(COMPANY_ID)}


@pytest.fixture
def other_company_headers():
    return {'X-Company-ID': str(OTHER_COMPANY_ID)}


@pytest.fixture
def providers(app):
    """Catalog rows keyed by provider code."""
    return {provider.code: provider for provider in TollProvider.query.all()}


@pytest.fixture
def make_account(app, providers):
    """Factory inserting a toll account directly, bypassing provider validation."""
    def _make(
        company_id=COMPANY_ID,
        provider_code='pcmiler',
        account_number='ACC-1001',
        credentials=None,
        **fields
    ):
        account = CompanyTollAccount(
            company_id=company_id,
            toll_provider_id=providers[provider_code].id,
            account_number=account_number,
            account_name=fields.pop('account_name', 'Main account'),
            **fields
        )
        account.set_credentials(credentials if credentials is not None else {'api_key': 'test-key'})
        db.session.add(account)
        db.session.commit()
        return account
    return _make


@pytest.fixture
def sample_account_data(providers):
    """Request body for creating a PC Miler account."""
    return {
        'toll_provider_id': providers['pcmiler'].id,
        'account_number': 'PCM-42',
        'account_name': 'Dispatch routing',
        'credentials': {'api_key': 'secret-api-key'},
        'account_settings': {'units': 'Miles'},
    }


@pytest.fixture
def sample_route_data():
    """Route request body crossing Illinois."""
    return {
        'origin': {'address': 'Chicago, IL', 'latitude': 41.88, 'longitude': -87.63, 'state': 'IL'},
        'destination': {'address': 'Milwaukee, WI', 'latitude': 43.04, 'longitude': -87.91, 'state': 'WI'},
        'vehicle_class': 'truck',
    }
