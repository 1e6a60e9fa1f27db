"""
Toll provider API
"""
from flask import Blueprint, g, request

from ..middleware.auth import require_admin, require_company
from ..models import TollProvider
from ..services.exceptions import UnsupportedProviderError, ValidationError
from ..services.toll.registry import get_provider_registry
from ..services.toll_account_service import TollAccountService
from ..utils.logger import get_logger
from ..utils.responses import ApiResponse, success_response

providers_bp = Blueprint('providers', __name__)
logger = get_logger('providers')


def _credentials_from_body():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data.get('credentials')


@providers_bp.route('/providers', methods=['GET'])
@require_company
def list_providers():
    """
    Active toll providers

    Returns:
        {success, providers}
    """
    providers = TollProvider.query.filter_by(is_active=True).order_by(TollProvider.name).all()
    return success_response({'providers': [provider.to_dict() for provider in providers]})


@providers_bp.route('/providers/<int:provider_id>', methods=['GET'])
@require_company
def get_provider(provider_id):
    """
    One provider, catalog row merged with adapter metadata
    """
    provider = TollAccountService.get_provider(provider_id)
    data = provider.to_dict()

    try:
        info = get_provider_registry().get_provider_info(provider.code)
    except UnsupportedProviderError:
        logger.warning(f"Catalog provider {provider.code} has no adapter")
    else:
        data['required_credentials'] = info['required_credentials']
        data['supported_regions'] = data['supported_regions'] or info['supported_regions']
        data['features'] = data['features'] or info['features']

    return success_response({'provider': data})


@providers_bp.route('/providers/<int:provider_id>/test', methods=['POST'])
@require_company
def test_provider(provider_id):
    """
    Test connectivity with ad-hoc credentials

    Request Body:
        - credentials: provider credential fields
    """
    credentials = _credentials_from_body()
    service = TollAccountService(g.company_id)
    connected = service.test_provider_connection(provider_id, credentials)

    return success_response({
        'success': connected,
        'message': 'Connection successful' if connected else 'Connection failed',
    })


@providers_bp.route('/providers/<int:provider_id>/validate', methods=['POST'])
@require_company
def validate_provider_credentials(provider_id):
    """
    Check credentials with the provider without saving them

    Request Body:
        - credentials: provider credential fields
    """
    credentials = _credentials_from_body()
    service = TollAccountService(g.company_id)
    valid = service.validate_provider_credentials(provider_id, credentials)

    return success_response({
        'valid': valid,
        'message': 'Credentials are valid' if valid else 'Invalid credentials for toll provider',
    })


@providers_bp.route('/providers/cache/clear', methods=['POST'])
@require_admin
def clear_provider_cache():
    """
    Drop every cached provider adapter (admin)
    """
    cleared = get_provider_registry().clear_cache()
    logger.info(f"Provider adapter cache cleared by admin: {cleared} instances")
    return ApiResponse.success({'cleared': cleared}, 'Provider cache cleared')


@providers_bp.route('/providers/test-all', methods=['POST'])
@require_company
def test_all_providers():
    """
    Connectivity of every provider with the company's stored credentials

    Returns:
        {success, results: {provider code: bool}}
    """
    results = TollAccountService(g.company_id).test_account_connections()
    return success_response({'results': results})
