"""
Service layer exceptions

Every error the services raise on purpose derives from TollSyncError, which
carries the HTTP status and the stable error code used in API responses.
"""
from typing import Any, Dict, Optional


class TollSyncError(Exception):
    """Base exception for toll sync services"""
    http_status = 500
    default_code = 'INTERNAL_ERROR'

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'success': False,
            'message': self.message,
            'error': self.error_code,
        }
        if self.details:
            data['details'] = self.details
        return data


class ValidationError(TollSyncError):
    """Bad or missing request fields"""
    http_status = 400
    default_code = 'VALIDATION_ERROR'

    def __init__(self, message: str, field: Optional[str] = None, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)
        self.field = field


class UnsupportedProviderError(ValidationError):
    """Provider identifier unknown to the registry"""
    default_code = 'UNSUPPORTED_PROVIDER'

    def __init__(self, provider: str):
        super().__init__(f'Unsupported toll provider: {provider}', field='provider')
        self.provider = provider


class CredentialError(TollSyncError):
    """Provider rejected the supplied credentials"""
    http_status = 400
    default_code = 'INVALID_CREDENTIALS'


class NotFoundError(TollSyncError):
    """Resource missing or outside the caller's company"""
    http_status = 404
    default_code = 'NOT_FOUND'


class SyncInProgressError(TollSyncError):
    """Another sync attempt already holds the account"""
    http_status = 409
    default_code = 'SYNC_IN_PROGRESS'


class ProviderError(TollSyncError):
    """Transport level failure talking to a toll provider

    Raised for timeouts, connection errors, non-2xx responses and malformed
    bodies. Only a short excerpt of the response body is kept.
    """
    http_status = 500
    default_code = 'PROVIDER_ERROR'
    BODY_EXCERPT_LENGTH = 200

    def __init__(self, provider: str, message: str, status: Optional[int] = None, body: Optional[str] = None):
        excerpt = (body or '')[:self.BODY_EXCERPT_LENGTH]
        details = {'provider': provider}
        if status is not None:
            details['status'] = status
        super().__init__(f'{provider} API error: {message}', details=details)
        self.provider = provider
        self.status = status
        self.body_excerpt = excerpt


class ProviderTimeoutError(ProviderError):
    """Provider did not answer within the configured timeout"""
    default_code = 'PROVIDER_TIMEOUT'

    def __init__(self, provider: str, timeout: float):
        super().__init__(provider, f'request timed out after {timeout:g}s')
        self.timeout = timeout


class QueueItemError(TollSyncError):
    """A single sync queue item cannot be applied"""
    default_code = 'QUEUE_ITEM_ERROR'
