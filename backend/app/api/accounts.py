"""
Toll account API
"""
from flask import Blueprint, current_app, g, request

from ..middleware.auth import require_company
from ..services.exceptions import ValidationError
from ..services.toll.types import parse_datetime
from ..services.toll_account_service import TollAccountService
from ..utils.logger import get_logger
from ..utils.responses import ApiResponse, success_response
from ..utils.validators import validate_account_status, validate_pagination, validate_positive_int

accounts_bp = Blueprint('accounts', __name__)
logger = get_logger('accounts')


def _json_body() -> dict:
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _pagination():
    is_valid, error_msg, limit, offset = validate_pagination(
        request.args.get('limit'),
        request.args.get('offset'),
        max_limit=current_app.config.get('MAX_PAGE_SIZE', 200)
    )
    if not is_valid:
        raise ValidationError(error_msg)
    return limit, offset


def _date_field(data: dict, name: str):
    value = data.get(name)
    if value in (None, ''):
        return None
    parsed = parse_datetime(value) if isinstance(value, str) else None
    if parsed is None:
        raise ValidationError(f'{name} must be an ISO 8601 date', field=name)
    return parsed


@accounts_bp.route('/accounts', methods=['GET'])
@require_company
def list_accounts():
    """
    Toll accounts of the caller's company

    Query Params:
        - limit: page size (default 50, max 200)
        - offset: rows to skip
        - provider_id: filter by provider
        - status: filter by account status
    """
    limit, offset = _pagination()

    provider_id = None
    if request.args.get('provider_id'):
        is_valid, error_msg, provider_id = validate_positive_int(request.args.get('provider_id'), 'provider_id')
        if not is_valid:
            return ApiResponse.validation_error(error_msg)

    status = None
    if request.args.get('status'):
        is_valid, error_msg, status = validate_account_status(request.args.get('status'))
        if not is_valid:
            return ApiResponse.validation_error(error_msg)

    service = TollAccountService(g.company_id)
    accounts, total = service.list_accounts(limit, offset, provider_id=provider_id, status=status)

    return success_response({
        'accounts': [account.to_dict() for account in accounts],
        'total': total,
        'limit': limit,
        'offset': offset,
    })


@accounts_bp.route('/accounts/<int:account_id>', methods=['GET'])
@require_company
def get_account(account_id):
    account = TollAccountService(g.company_id).get_account(account_id)
    return success_response({'account': account.to_dict()})


@accounts_bp.route('/accounts', methods=['POST'])
@require_company
def create_account():
    """
    Create a toll account

    Request Body:
        - toll_provider_id: provider id (required)
        - account_number: provider account number (required)
        - account_name: display name
        - credentials: provider credential fields
        - account_settings: free-form settings object
    """
    account = TollAccountService(g.company_id).create_account(_json_body())
    return ApiResponse.created({'account': account.to_dict()}, 'Toll account created successfully')


@accounts_bp.route('/accounts/<int:account_id>', methods=['PUT'])
@require_company
def update_account(account_id):
    """
    Update a toll account

    Request Body (all optional):
        - account_name
        - credentials: replaces the stored credentials, null clears them
        - account_settings
        - account_status: active, inactive or suspended
    """
    account, warning = TollAccountService(g.company_id).update_account(account_id, _json_body())

    data = {'account': account.to_dict()}
    if warning:
        data['warning'] = warning
    return success_response(data, 'Toll account updated successfully')


@accounts_bp.route('/accounts/<int:account_id>', methods=['DELETE'])
@require_company
def delete_account(account_id):
    TollAccountService(g.company_id).delete_account(account_id)
    return success_response(message='Toll account deleted successfully')


@accounts_bp.route('/accounts/<int:account_id>/sync', methods=['POST'])
@require_company
def sync_account(account_id):
    """
    Sync an account with its provider now

    Returns:
        {success, syncResult, message}; provider failures answer 500
    """
    result = TollAccountService(g.company_id).sync_account(account_id)

    return success_response({
        'success': result.success,
        'syncResult': result.to_dict(),
        'message': 'Sync completed successfully' if result.success else 'Sync completed with errors',
    })


@accounts_bp.route('/accounts/<int:account_id>/sync-logs', methods=['GET'])
@require_company
def get_sync_logs(account_id):
    limit, offset = _pagination()
    logs, total = TollAccountService(g.company_id).get_sync_logs(account_id, limit, offset)

    return success_response({
        'logs': [log.to_dict() for log in logs],
        'total': total,
    })


@accounts_bp.route('/routes/calculate', methods=['POST'])
@require_company
def calculate_route():
    """
    Quote tolls for a route

    Request Body:
        - origin / destination: {address?, latitude?, longitude?, state?}
        - vehicle_class, vehicle_type, avoid_tolls, route_options
        - provider_id: force a provider (optional)
    """
    data = _json_body()

    provider_id = None
    if data.get('provider_id') is not None:
        is_valid, error_msg, provider_id = validate_positive_int(data.get('provider_id'), 'provider_id')
        if not is_valid:
            return ApiResponse.validation_error(error_msg)

    calculation, provider = TollAccountService(g.company_id).calculate_route_tolls(data, provider_id)

    return success_response({
        'calculation': calculation.to_dict(),
        'provider': provider.to_summary(),
    })


@accounts_bp.route('/accounts/<int:account_id>/transactions', methods=['GET'])
@require_company
def list_transactions(account_id):
    """
    Stored transactions of an account, newest first

    Query Params:
        - limit / offset
    """
    limit, offset = _pagination()
    transactions, total = TollAccountService(g.company_id).list_transactions(account_id, limit, offset)

    return success_response({
        'transactions': [transaction.to_dict() for transaction in transactions],
        'total': total,
        'limit': limit,
        'offset': offset,
    })


@accounts_bp.route('/accounts/<int:account_id>/transactions/sync', methods=['POST'])
@require_company
def sync_transactions(account_id):
    """
    Pull and store the account's transactions only

    Request Body (optional):
        - start_date / end_date: ISO 8601, default the last 30 days
    """
    data = _json_body()
    start_date = _date_field(data, 'start_date')
    end_date = _date_field(data, 'end_date')

    result = TollAccountService(g.company_id).sync_transactions(account_id, start_date, end_date)

    return success_response({
        'success': result.success,
        'syncResult': result.to_dict(),
        'message': f'{result.records_created} new transactions stored',
    })


@accounts_bp.route('/accounts/<int:account_id>/<any(violations, transponders, vehicles):resource>',
                   methods=['GET'])
@require_company
def get_account_resource(account_id, resource):
    """
    Live listing read from the provider (what each provider offers varies)
    """
    items = TollAccountService(g.company_id).get_account_resource(account_id, resource)
    return success_response({'resource': resource, 'items': items, 'total': len(items)})


@accounts_bp.route('/routes/weigh-stations', methods=['POST'])
@require_company
def weigh_stations():
    """
    Weigh stations between two points, via the company's PrePass account

    Request Body:
        - origin / destination: {latitude, longitude, address?, state?}
    """
    stations = TollAccountService(g.company_id).get_weigh_stations(_json_body())
    return success_response({'weigh_stations': stations, 'total': len(stations)})
