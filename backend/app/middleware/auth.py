"""
Authentication middleware
Client API key, admin API key and the caller's company context
"""
import hmac
from functools import wraps
from flask import current_app, g, request
from ..utils.responses import ApiResponse
from ..utils.validators import validate_positive_int


def get_current_api_key() -> str:
    """API key from the request headers"""
    return request.headers.get('X-API-Key', '')


def _keys_match(provided: str, expected: str) -> bool:
    return hmac.compare_digest(provided.encode('utf-8'), expected.encode('utf-8'))


def require_auth(f):
    """
    Client authentication decorator

    Checks X-API-Key against API_KEY. When API_KEY is not configured the
    check is skipped (development mode).
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        expected_key = current_app.config.get('API_KEY')

        if not expected_key:
            return f(*args, **kwargs)

        api_key = get_current_api_key()
        if not api_key:
            return ApiResponse.unauthorized('Missing API key, send it in the X-API-Key header')

        if not _keys_match(api_key, expected_key):
            return ApiResponse.unauthorized('Invalid API key')

        return f(*args, **kwargs)
    return decorated


def require_company(f):
    """
    Company context decorator

    Applies require_auth, then reads the authenticated company from the
    X-Company-ID header into g.company_id.
    """
    @wraps(f)
    @require_auth
    def decorated(*args, **kwargs):
        is_valid, error_msg, company_id = validate_positive_int(
            request.headers.get('X-Company-ID'), 'X-Company-ID'
        )
        if not is_valid:
            return ApiResponse.unauthorized(f'Company context required: {error_msg}')

        g.company_id = company_id
        return f(*args, **kwargs)
    return decorated


def require_admin(f):
    """
    Admin authentication decorator

    Protects operational endpoints such as clearing the adapter cache.
    Requires ADMIN_API_KEY to be configured.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        admin_key = current_app.config.get('ADMIN_API_KEY')

        # No admin key configured: refuse everything
        if not admin_key:
            return ApiResponse.forbidden('This operation requires ADMIN_API_KEY to be configured')

        api_key = get_current_api_key()
        if not api_key:
            return ApiResponse.unauthorized('Missing admin API key')

        if not _keys_match(api_key, admin_key):
            return ApiResponse.forbidden('Invalid admin API key')

        return f(*args, **kwargs)
    return decorated
