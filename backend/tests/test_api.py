"""
API Endpoint Tests

Tests for all REST API endpoints.
"""
import json
from datetime import datetime
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from app.extensions import db
from app.models import CompanyTollAccount, SyncQueueItem, TollTransaction
from app.services.exceptions import ProviderTimeoutError
from app.services.sync_queue_service import SyncQueueService
from app.services.toll import IPassService, PCMilerService, PrePassService
from app.services.toll.types import SyncResult, TollCalculation, Transaction


class TestHealthCheck:
    """Test health check endpoint."""

    def test_health_check(self, client):
        response = client.get('/api/health')
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'healthy'
        assert data['service'] == 'toll-sync-backend'


class TestAuthentication:

    def test_company_header_required(self, client):
        response = client.get('/api/accounts')
        assert response.status_code == 401
        data = response.get_json()
        assert data['success'] is False
        assert data['error'] == 'UNAUTHORIZED'

    def test_invalid_company_header(self, client):
        response = client.get('/api/accounts', headers={'X-Company-ID': 'abc'})
        assert response.status_code == 401

    def test_api_key_enforced_when_configured(self, app, client, company_headers):
        app.config['API_KEY'] = 'client-key'

        missing = client.get('/api/accounts', headers=company_headers)
        wrong = client.get('/api/accounts', headers={**company_headers, 'X-API-Key': 'nope'})
        ok = client.get('/api/accounts', headers={**company_headers, 'X-API-Key': 'client-key'})

        assert missing.status_code == 401
        assert wrong.status_code == 401
        assert ok.status_code == 200


class TestProvidersAPI:

    def test_list_providers(self, client, company_headers):
        response = client.get('/api/providers', headers=company_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert {p['code'] for p in data['providers']} == {'pcmiler', 'ipass', 'bestpass', 'prepass'}

    def test_inactive_provider_hidden(self, client, company_headers, providers):
        providers['prepass'].is_active = False
        db.session.commit()

        data = client.get('/api/providers', headers=company_headers).get_json()

        assert 'prepass' not in {p['code'] for p in data['providers']}

    def test_get_provider(self, client, company_headers, providers):
        response = client.get(f"/api/providers/{providers['bestpass'].id}", headers=company_headers)

        assert response.status_code == 200
        provider = response.get_json()['provider']
        assert provider['code'] == 'bestpass'
        assert provider['required_credentials'] == ['client_id', 'client_secret']

    def test_get_provider_not_found(self, client, company_headers):
        response = client.get('/api/providers/9999', headers=company_headers)
        assert response.status_code == 404
        assert response.get_json()['error'] == 'NOT_FOUND'

    def test_provider_connection(self, client, company_headers, providers):
        with patch.object(IPassService, 'test_connection', return_value=True):
            response = client.post(
                f"/api/providers/{providers['ipass'].id}/test",
                json={'credentials': {'api_key': 'k'}},
                headers=company_headers
            )

        assert response.status_code == 200
        assert response.get_json() == {'success': True, 'message': 'Connection successful'}

    def test_validate_credentials(self, client, company_headers, providers):
        with patch.object(IPassService, 'validate_credentials', return_value=False):
            response = client.post(
                f"/api/providers/{providers['ipass'].id}/validate",
                json={'credentials': {'api_key': 'bad'}},
                headers=company_headers
            )

        data = response.get_json()
        assert response.status_code == 200
        assert data['valid'] is False

    def test_validate_requires_credentials(self, client, company_headers, providers):
        response = client.post(
            f"/api/providers/{providers['ipass'].id}/validate",
            json={},
            headers=company_headers
        )
        assert response.status_code == 400

    def test_test_all_providers(self, client, company_headers, make_account):
        make_account(provider_code='ipass', account_number='IP-1')

        with patch.object(IPassService, 'test_connection', return_value=True):
            response = client.post('/api/providers/test-all', headers=company_headers)

        assert response.status_code == 200
        assert response.get_json()['results'] == {
            'pcmiler': False, 'ipass': True, 'bestpass': False, 'prepass': False,
        }

    def test_repeated_connection_tests_do_not_grow_cache(self, client, company_headers, providers, registry):
        with patch.object(IPassService, 'test_connection', return_value=False):
            for n in range(50):
                client.post(
                    f"/api/providers/{providers['ipass'].id}/test",
                    json={'credentials': {'api_key': f'key-{n}'}},
                    headers=company_headers
                )

        assert registry.cache_size() == 0

    def test_credential_rate_limit_is_ignored(self, client, company_headers, providers):
        with patch.object(IPassService, 'test_connection', return_value=True):
            response = client.post(
                f"/api/providers/{providers['ipass'].id}/test",
                json={'credentials': {'api_key': 'k', 'rate_limit': 'fast', 'timeout': 'forever'}},
                headers=company_headers
            )

        assert response.status_code == 200
        assert response.get_json()['success'] is True

    def test_cache_clear_requires_admin_key(self, client):
        assert client.post('/api/providers/cache/clear').status_code == 401
        assert client.post('/api/providers/cache/clear', headers={'X-API-Key': 'wrong'}).status_code == 403

    def test_cache_clear(self, client, registry):
        registry.create('pcmiler', {'api_key': 'k'})

        response = client.post('/api/providers/cache/clear', headers={'X-API-Key': 'test-admin-key'})

        assert response.status_code == 200
        assert response.get_json()['cleared'] == 1
        assert registry.cache_size() == 0


class TestAccountsAPI:

    def test_create_account(self, client, company_headers, sample_account_data):
        with patch.object(PCMilerService, 'validate_credentials', return_value=True):
            response = client.post('/api/accounts', json=sample_account_data, headers=company_headers)

        assert response.status_code == 201
        data = response.get_json()
        assert data['success'] is True
        account = data['account']
        assert account['account_number'] == 'PCM-42'
        assert account['has_credentials'] is True
        assert account['sync_status'] == 'pending'
        assert 'credentials' not in account
        assert 'secret-api-key' not in response.get_data(as_text=True)

    def test_create_with_invalid_credentials(self, client, company_headers, sample_account_data):
        with patch.object(PCMilerService, 'validate_credentials', return_value=False):
            response = client.post('/api/accounts', json=sample_account_data, headers=company_headers)

        assert response.status_code == 400
        data = response.get_json()
        assert data['success'] is False
        assert data['message'] == 'Invalid credentials for toll provider'
        assert CompanyTollAccount.query.count() == 0

    def test_create_duplicate(self, client, company_headers, make_account, sample_account_data):
        make_account(account_number='PCM-42')

        with patch.object(PCMilerService, 'validate_credentials', return_value=True):
            response = client.post('/api/accounts', json=sample_account_data, headers=company_headers)

        assert response.status_code == 400
        assert response.get_json()['error'] == 'DUPLICATE_ACCOUNT'

    def test_create_requires_json_object(self, client, company_headers):
        response = client.post('/api/accounts', json=[1, 2], headers=company_headers)
        assert response.status_code == 400

    def test_list_accounts(self, client, company_headers, make_account):
        make_account(account_number='A-1')
        make_account(account_number='A-2')
        make_account(company_id=2, account_number='B-1')

        response = client.get('/api/accounts?limit=1', headers=company_headers)

        data = response.get_json()
        assert response.status_code == 200
        assert data['total'] == 2
        assert len(data['accounts']) == 1
        assert data['limit'] == 1

    def test_list_limit_too_large(self, client, company_headers):
        response = client.get('/api/accounts?limit=500', headers=company_headers)
        assert response.status_code == 400

    def test_other_company_gets_404(self, client, other_company_headers, make_account):
        account = make_account()

        assert client.get(f'/api/accounts/{account.id}', headers=other_company_headers).status_code == 404
        assert client.delete(f'/api/accounts/{account.id}', headers=other_company_headers).status_code == 404
        assert CompanyTollAccount.query.count() == 1

    def test_update_with_warning(self, client, company_headers, make_account):
        account = make_account()

        with patch.object(PCMilerService, 'validate_credentials', return_value=False):
            response = client.put(
                f'/api/accounts/{account.id}',
                json={'account_name': 'Renamed', 'credentials': {'api_key': 'rotated'}},
                headers=company_headers
            )

        data = response.get_json()
        assert response.status_code == 200
        assert data['account']['account_name'] == 'Renamed'
        assert data['warning'] == 'Credentials could not be validated with the toll provider'

    def test_delete_account(self, client, company_headers, make_account):
        account = make_account()

        response = client.delete(f'/api/accounts/{account.id}', headers=company_headers)

        assert response.status_code == 200
        assert CompanyTollAccount.query.count() == 0


class TestSyncAPI:

    def test_sync_success(self, client, company_headers, make_account):
        account = make_account()
        result = SyncResult(success=True, records_processed=3, records_updated=3, sync_duration_ms=9)

        with patch.object(PCMilerService, 'sync_account_data', return_value=result):
            response = client.post(f'/api/accounts/{account.id}/sync', headers=company_headers)

        data = response.get_json()
        assert response.status_code == 200
        assert data['success'] is True
        assert data['message'] == 'Sync completed successfully'
        assert data['syncResult']['records_processed'] == 3

        logs = client.get(f'/api/accounts/{account.id}/sync-logs', headers=company_headers).get_json()
        assert logs['total'] == 1
        assert logs['logs'][0]['sync_status'] == 'completed'

    def test_sync_with_errors(self, client, company_headers, make_account):
        account = make_account()
        result = SyncResult(success=False, errors=['transactions: HTTP 502'])

        with patch.object(PCMilerService, 'sync_account_data', return_value=result):
            response = client.post(f'/api/accounts/{account.id}/sync', headers=company_headers)

        data = response.get_json()
        assert response.status_code == 200
        assert data['success'] is False
        assert data['message'] == 'Sync completed with errors'

    def test_sync_provider_timeout(self, client, company_headers, make_account):
        account = make_account()

        with patch.object(PCMilerService, 'sync_account_data',
                          side_effect=ProviderTimeoutError('PC Miler', 5.0)):
            response = client.post(f'/api/accounts/{account.id}/sync', headers=company_headers)

        assert response.status_code == 500
        data = response.get_json()
        assert data['success'] is False
        assert data['error'] == 'PROVIDER_TIMEOUT'
        assert db.session.get(CompanyTollAccount, account.id).sync_status == 'error'

    def test_sync_without_credentials(self, client, company_headers, make_account):
        account = make_account(credentials={})

        response = client.post(f'/api/accounts/{account.id}/sync', headers=company_headers)

        assert response.status_code == 400
        assert response.get_json()['error'] == 'NO_CREDENTIALS'


class TestTransactionsAPI:

    def test_sync_and_list_transactions(self, client, company_headers, make_account):
        account = make_account()
        fetched = [
            Transaction(transaction_id='u1', facility_name='API usage', amount=0.25,
                        transaction_date=datetime(2024, 5, 2)),
            Transaction(transaction_id='u2', facility_name='API usage', amount=0.5,
                        transaction_date=datetime(2024, 5, 3)),
        ]

        with patch.object(PCMilerService, 'get_transactions', return_value=fetched) as fetch:
            response = client.post(
                f'/api/accounts/{account.id}/transactions/sync',
                json={'start_date': '2024-05-01', 'end_date': '2024-05-31T23:59:59Z'},
                headers=company_headers
            )

        assert response.status_code == 200
        data = response.get_json()
        assert data['syncResult']['records_created'] == 2
        assert data['message'] == '2 new transactions stored'
        _, start, end = fetch.call_args[0]
        assert start == datetime(2024, 5, 1)
        assert end == datetime(2024, 5, 31, 23, 59, 59)

        listed = client.get(f'/api/accounts/{account.id}/transactions?limit=1', headers=company_headers)
        body = listed.get_json()
        assert listed.status_code == 200
        assert body['total'] == 2
        assert [tx['transaction_id'] for tx in body['transactions']] == ['u2']
        assert body['transactions'][0]['amount'] == 0.5

    def test_full_sync_counts_only_new_rows(self, client, company_headers, make_account):
        account = make_account()
        result = SyncResult(success=True, transactions=[
            Transaction(transaction_id='t1', facility_name='Skyway', amount=7.0, transaction_date=None),
        ])

        with patch.object(PCMilerService, 'sync_account_data', side_effect=[result, result]):
            first = client.post(f'/api/accounts/{account.id}/sync', headers=company_headers).get_json()
            second = client.post(f'/api/accounts/{account.id}/sync', headers=company_headers).get_json()

        assert first['syncResult']['records_created'] == 1
        assert second['syncResult']['records_created'] == 0
        assert TollTransaction.query.count() == 1

    def test_bad_date(self, client, company_headers, make_account):
        account = make_account()

        response = client.post(f'/api/accounts/{account.id}/transactions/sync',
                               json={'start_date': 'last week'}, headers=company_headers)

        assert response.status_code == 400
        assert response.get_json()['error'] == 'VALIDATION_ERROR'

    def test_other_company(self, client, other_company_headers, make_account):
        account = make_account()

        assert client.get(f'/api/accounts/{account.id}/transactions',
                          headers=other_company_headers).status_code == 404
        assert client.post(f'/api/accounts/{account.id}/transactions/sync',
                           headers=other_company_headers).status_code == 404


class TestAccountResourcesAPI:

    def test_transponders(self, client, company_headers, make_account):
        account = make_account(provider_code='ipass', account_number='IP-1')

        with patch.object(IPassService, 'get_transponders', return_value=[{'id': 'TR-1'}]):
            response = client.get(f'/api/accounts/{account.id}/transponders', headers=company_headers)

        assert response.status_code == 200
        assert response.get_json() == {
            'success': True,
            'resource': 'transponders',
            'items': [{'id': 'TR-1'}],
            'total': 1,
        }

    def test_vehicles_not_offered_by_provider(self, client, company_headers, make_account):
        account = make_account(provider_code='ipass', account_number='IP-1')

        response = client.get(f'/api/accounts/{account.id}/vehicles', headers=company_headers)

        assert response.status_code == 400
        assert response.get_json()['error'] == 'UNSUPPORTED_RESOURCE'

    def test_unknown_resource_is_404(self, client, company_headers, make_account):
        account = make_account()
        assert client.get(f'/api/accounts/{account.id}/invoices', headers=company_headers).status_code == 404

    def test_weigh_stations(self, client, company_headers, make_account, sample_route_data):
        make_account(provider_code='prepass', account_number='PP-1')
        stations = [{'station_id': 'WS-1', 'bypass_eligible': True}]

        with patch.object(PrePassService, 'get_weigh_stations_on_route', return_value=stations):
            response = client.post('/api/routes/weigh-stations', json=sample_route_data, headers=company_headers)

        assert response.status_code == 200
        assert response.get_json()['weigh_stations'] == stations

    def test_weigh_stations_without_prepass(self, client, company_headers, sample_route_data):
        response = client.post('/api/routes/weigh-stations', json=sample_route_data, headers=company_headers)

        assert response.status_code == 404
        assert response.get_json()['error'] == 'NO_ACTIVE_ACCOUNT'


class TestRoutesAPI:

    def test_calculate_route(self, client, company_headers, make_account, sample_route_data):
        make_account(provider_code='ipass', account_number='IP-1')

        with patch.object(IPassService, 'calculate_tolls',
                          return_value=TollCalculation(total_cost=8.75, distance=92.0)):
            response = client.post('/api/routes/calculate', json=sample_route_data, headers=company_headers)

        data = response.get_json()
        assert response.status_code == 200
        assert data['provider']['code'] == 'ipass'
        assert data['calculation']['total_cost'] == 8.75

    def test_no_account(self, client, company_headers, sample_route_data):
        response = client.post('/api/routes/calculate', json=sample_route_data, headers=company_headers)

        assert response.status_code == 404
        assert response.get_json()['error'] == 'NO_ACTIVE_ACCOUNT'


class TestSyncQueueAPI:

    def test_enqueue_and_process(self, client, company_headers):
        response = client.post('/api/sync/queue', json={
            'table_name': 'vehicles',
            'action': 'create',
            'payload': {'unit_number': 'T-55'},
        }, headers=company_headers)

        assert response.status_code == 201
        assert response.get_json()['item']['status'] == 'pending'

        processed = client.post('/api/sync/process', headers=company_headers)
        assert processed.status_code == 200
        assert processed.get_json() == {'success': True, 'processed': 1, 'failed': 0}

        status = client.get('/api/sync/status', headers=company_headers).get_json()
        assert status['processed'] == 1
        assert status['pending'] == 0

    def test_enqueue_invalid(self, client, company_headers):
        response = client.post('/api/sync/queue', json={
            'table_name': 'toll_providers',
            'action': 'delete',
            'payload': {'id': 1},
        }, headers=company_headers)

        assert response.status_code == 400
        assert SyncQueueItem.query.count() == 0

    def test_process_fetch_failure(self, client, company_headers):
        with patch.object(SyncQueueService, '_pending_ids',
                          side_effect=OperationalError('SELECT', {}, Exception('locked'))):
            response = client.post('/api/sync/process', headers=company_headers)

        assert response.status_code == 500
        data = response.get_json()
        assert data['success'] is False
        assert data['error'] == 'QUEUE_FETCH_FAILED'
        assert data['message'] == 'Failed to read the sync queue'

    def test_requeue(self, client, company_headers):
        client.post('/api/sync/queue', json={
            'table_name': 'vehicles',
            'action': 'update',
            'payload': {'id': 404, 'make': 'Volvo'},
        }, headers=company_headers)
        client.post('/api/sync/process', headers=company_headers)
        failed = SyncQueueItem.query.filter_by(status='failed').one()

        response = client.post(f'/api/sync/queue/{failed.id}/requeue', headers=company_headers)

        assert response.status_code == 201
        assert response.get_json()['item']['status'] == 'pending'


class TestErrorHandling:

    def test_unknown_route(self, client):
        response = client.get('/api/nope')
        assert response.status_code == 404
        assert response.get_json()['success'] is False

    def test_method_not_allowed(self, client, company_headers):
        response = client.patch('/api/accounts', headers=company_headers)
        assert response.status_code == 405
        assert response.get_json() == {
            'success': False,
            'message': 'Method not allowed',
            'error': 'METHOD_NOT_ALLOWED',
        }
