"""
Utility helpers
"""
from .responses import success_response, error_response, ApiResponse
from .validators import validate_positive_int, validate_pagination, sanitize_string
from .crypto import CredentialCrypto, encrypt_credentials, decrypt_credentials
from .logger import setup_logger, get_logger

__all__ = [
    'success_response',
    'error_response',
    'ApiResponse',
    'validate_positive_int',
    'validate_pagination',
    'sanitize_string',
    'CredentialCrypto',
    'encrypt_credentials',
    'decrypt_credentials',
    'setup_logger',
    'get_logger',
]
