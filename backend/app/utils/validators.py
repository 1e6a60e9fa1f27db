"""
Input validation helpers
"""
import re
from typing import Any, Optional, Tuple

ACCOUNT_STATUSES = ('active', 'inactive', 'suspended')
SYNC_ACTIONS = ('create', 'update', 'delete')

MAX_CREDENTIAL_FIELDS = 20
MAX_CREDENTIAL_VALUE_LENGTH = 4096


def validate_positive_int(value: Any, field_name: str = 'ID') -> Tuple[bool, Optional[str], Optional[int]]:
    """
    Validate a positive integer (ids, company ids)

    Returns:
        (is_valid, error_message, cleaned_value)
    """
    if value is None or value == '':
        return False, f'{field_name} is required', None

    if isinstance(value, bool):
        return False, f'{field_name} must be an integer', None

    try:
        cleaned = int(value)
    except (TypeError, ValueError):
        return False, f'{field_name} must be an integer', None

    if cleaned <= 0:
        return False, f'{field_name} must be a positive integer', None

    return True, None, cleaned


def validate_pagination(
    limit: Any,
    offset: Any,
    default_limit: int = 50,
    max_limit: int = 200
) -> Tuple[bool, Optional[str], int, int]:
    """
    Validate limit / offset query parameters

    Returns:
        (is_valid, error_message, limit, offset)
    """
    try:
        cleaned_limit = int(limit) if limit not in (None, '') else default_limit
        cleaned_offset = int(offset) if offset not in (None, '') else 0
    except (TypeError, ValueError):
        return False, 'limit and offset must be integers', default_limit, 0

    if cleaned_limit < 1 or cleaned_limit > max_limit:
        return False, f'limit must be between 1 and {max_limit}', default_limit, 0

    if cleaned_offset < 0:
        return False, 'offset must not be negative', default_limit, 0

    return True, None, cleaned_limit, cleaned_offset


def validate_account_number(account_number: Any) -> Tuple[bool, Optional[str], str]:
    """
    Validate a toll account number

    Returns:
        (is_valid, error_message, cleaned_value)
    """
    if account_number is None or (isinstance(account_number, str) and not account_number.strip()):
        return False, 'account_number is required', ''

    if not isinstance(account_number, (str, int)) or isinstance(account_number, bool):
        return False, 'account_number must be a string', ''

    cleaned = str(account_number).strip()

    if len(cleaned) > 64:
        return False, 'account_number must not exceed 64 characters', ''

    if not re.match(r'^[A-Za-z0-9_.\-]+$', cleaned):
        return False, 'account_number may only contain letters, digits, dots, underscores and hyphens', ''

    return True, None, cleaned


def validate_credentials_payload(credentials: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate a credentials object supplied by a client

    Only the shape is checked here; the provider decides whether the values work.

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(credentials, dict):
        return False, 'credentials must be an object'

    if not credentials:
        return False, 'credentials must not be empty'

    if len(credentials) > MAX_CREDENTIAL_FIELDS:
        return False, f'credentials may contain at most {MAX_CREDENTIAL_FIELDS} fields'

    for key, value in credentials.items():
        if not isinstance(key, str) or not key:
            return False, 'credential field names must be non-empty strings'
        if isinstance(value, str) and len(value) > MAX_CREDENTIAL_VALUE_LENGTH:
            return False, f"credential field '{key}' is too long"
        if isinstance(value, (dict, list)):
            return False, f"credential field '{key}' must be a scalar value"

    return True, None


def validate_account_status(status: Any) -> Tuple[bool, Optional[str], str]:
    """
    Validate a business account status

    Returns:
        (is_valid, error_message, cleaned_status)
    """
    if not isinstance(status, str):
        return False, 'account_status must be a string', ''

    cleaned = status.lower().strip()

    if cleaned not in ACCOUNT_STATUSES:
        return False, f'account_status must be one of {list(ACCOUNT_STATUSES)}', ''

    return True, None, cleaned


def validate_sync_action(action: Any) -> Tuple[bool, Optional[str], str]:
    """
    Validate a sync queue action

    Returns:
        (is_valid, error_message, cleaned_action)
    """
    if not isinstance(action, str):
        return False, 'action must be a string', ''

    cleaned = action.lower().strip()

    if cleaned not in SYNC_ACTIONS:
        return False, f'action must be one of {list(SYNC_ACTIONS)}', ''

    return True, None, cleaned


def sanitize_string(value: Any, max_length: int = 255, default: str = '') -> str:
    """
    Normalize a free text input

    Args:
        value: Raw input
        max_length: Truncate to this length
        default: Returned for empty input

    Returns:
        Stripped, truncated string
    """
    if not value:
        return default

    if not isinstance(value, str):
        value = str(value)

    value = value.strip()

    if len(value) > max_length:
        value = value[:max_length]

    return value
