"""
Toll provider adapter contract

Concrete adapters describe themselves through class attributes (so the
registry can report metadata without building an instance) and implement
the network operations on top of ProviderHttpClient.
"""
import abc
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

import requests

from ..exceptions import ProviderError, ValidationError
from .http_client import ProviderHttpClient
from .rate_limiter import RateLimiter
from .types import AccountInfo, RouteRequest, SyncResult, TollCalculation, Transaction
from ...utils.logger import get_logger

logger = get_logger('toll_provider')

DEFAULT_TIMEOUT = 30.0
SYNC_LOOKBACK_DAYS = 30
DEFAULT_TRANSACTION_LIMIT = 100


class TollProviderService(abc.ABC):
    """Base class for toll network adapters"""

    PROVIDER_CODE: str = ''
    DISPLAY_NAME: str = ''
    PROVIDER_TYPE: str = ''
    DESCRIPTION: str = ''
    AUTH_TYPE: str = 'api_key'
    WEBSITE: str = ''
    SUPPORTED_REGIONS: Tuple[str, ...] = ()
    FEATURES: Dict[str, bool] = {}
    DEFAULT_BASE_URL: str = ''
    # (requests, period_ms)
    DEFAULT_RATE_LIMIT: Tuple[int, int] = (100, 60000)
    REQUIRED_CREDENTIALS: Tuple[str, ...] = ('api_key',)
    # Non-secret settings an account may carry next to its credentials
    OPTIONAL_CREDENTIALS: Tuple[str, ...] = ()
    # Read-only account listings: resource name -> method(account_number)
    ACCOUNT_RESOURCES: Dict[str, str] = {}

    def __init__(self, config: Dict[str, Any], session: Optional[requests.Session] = None):
        """
        Args:
            config: Credentials plus optional base_url, timeout and
                rate_limit ({'requests': n, 'period_ms': ms})
            session: Pre-built requests session (tests)
        """
        self.config = dict(config or {})
        self.base_url = self.config.get('base_url') or self.DEFAULT_BASE_URL
        self.timeout = float(self.config.get('timeout') or DEFAULT_TIMEOUT)
        self.rate_limiter = RateLimiter.from_config(self.config.get('rate_limit'), self.DEFAULT_RATE_LIMIT)
        self.http = ProviderHttpClient(
            self.DISPLAY_NAME,
            self.base_url,
            self.timeout,
            self.rate_limiter,
            self.get_auth_headers,
            session=session
        )

    # ==================== Metadata ====================

    @classmethod
    def missing_credentials(cls, config: Dict[str, Any]) -> List[str]:
        """Required credential fields absent from config"""
        config = config or {}
        return [key for key in cls.REQUIRED_CREDENTIALS if not config.get(key)]

    @classmethod
    def credential_fields(cls) -> Tuple[str, ...]:
        """Every config key an account's stored credentials may supply"""
        return cls.REQUIRED_CREDENTIALS + cls.OPTIONAL_CREDENTIALS

    @classmethod
    def describe(cls) -> Dict[str, Any]:
        """Static provider description, no instance needed"""
        return {
            'code': cls.PROVIDER_CODE,
            'name': cls.DISPLAY_NAME,
            'type': cls.PROVIDER_TYPE,
            'description': cls.DESCRIPTION,
            'supported_regions': sorted(cls.SUPPORTED_REGIONS),
            'features': dict(cls.FEATURES),
            'auth_type': cls.AUTH_TYPE,
            'website': cls.WEBSITE,
            'required_credentials': list(cls.REQUIRED_CREDENTIALS),
            'account_resources': sorted(cls.ACCOUNT_RESOURCES),
        }

    def get_supported_regions(self) -> FrozenSet[str]:
        return frozenset(self.SUPPORTED_REGIONS)

    def get_features(self) -> Dict[str, bool]:
        return dict(self.FEATURES)

    # ==================== Contract ====================

    @abc.abstractmethod
    def get_auth_headers(self) -> Dict[str, str]:
        """Headers that authenticate a request. Must not perform I/O."""

    @abc.abstractmethod
    def test_connection(self) -> bool:
        """Lightweight read-only connectivity check"""

    @abc.abstractmethod
    def calculate_tolls(self, request: RouteRequest) -> TollCalculation:
        pass

    @abc.abstractmethod
    def get_account_info(self, account_number: str) -> AccountInfo:
        pass

    @abc.abstractmethod
    def get_transactions(
        self,
        account_number: str,
        start_date: datetime,
        end_date: datetime,
        limit: int = DEFAULT_TRANSACTION_LIMIT
    ) -> List[Transaction]:
        pass

    def validate_credentials(self) -> bool:
        """Check the configured credentials against the provider.

        Returns False without any request when required fields are missing.
        """
        missing = self.missing_credentials(self.config)
        if missing:
            logger.info(f"[{self.DISPLAY_NAME}] Missing credential fields: {', '.join(missing)}")
            return False
        return self.test_connection()

    def get_account_resource(self, account_number: str, resource: str) -> List[Dict[str, Any]]:
        """One of the account listings named in ACCOUNT_RESOURCES

        Raises:
            ValidationError: The provider has no such listing
        """
        method = self.ACCOUNT_RESOURCES.get(resource)
        if method is None:
            raise ValidationError(
                f'{self.DISPLAY_NAME} does not provide {resource}',
                error_code='UNSUPPORTED_RESOURCE'
            )
        return getattr(self, method)(account_number)

    def sync_account_data(self, account_number: str) -> SyncResult:
        """Pull account info and recent activity for one account.

        The account info fetch is essential and its ProviderError propagates.
        Failures of the secondary fetches are collected in ``errors`` and make
        the result unsuccessful. Fetched transactions are handed back on
        ``result.transactions``; storing them is up to the caller, so
        ``records_created`` stays 0 here.
        """
        started = time.monotonic()
        result = SyncResult(success=True)

        self.get_account_info(account_number)
        result.records_processed += 1
        result.records_updated += 1

        end_date = datetime.utcnow()
        start_date = end_date - timedelta(days=SYNC_LOOKBACK_DAYS)

        for label, fetch in self._sync_fetches(account_number, start_date, end_date):
            try:
                records = fetch()
            except ProviderError as e:
                logger.warning(f"[{self.DISPLAY_NAME}] {label} sync failed for account: {e.message}")
                result.errors.append(f'{label}: {e.message}')
                continue
            result.records_processed += len(records)
            result.transactions.extend(record for record in records if isinstance(record, Transaction))

        result.success = not result.errors
        result.sync_duration_ms = int((time.monotonic() - started) * 1000)
        return result

    def _sync_fetches(
        self,
        account_number: str,
        start_date: datetime,
        end_date: datetime
    ) -> List[Tuple[str, Callable[[], list]]]:
        """Secondary fetches run by sync_account_data, in order"""
        return [
            ('transactions', lambda: self.get_transactions(account_number, start_date, end_date)),
        ]

    # ==================== Helpers ====================

    def _check_status(self, path: str, healthy_statuses: Tuple[str, ...]) -> bool:
        """GET a status endpoint and compare its ``status`` field"""
        try:
            response = self.http.get(path)
        except ProviderError as e:
            logger.warning(f"[{self.DISPLAY_NAME}] Connection test failed: {e.message}")
            return False
        return isinstance(response, dict) and response.get('status') in healthy_statuses

    def _malformed(self, what: str) -> ProviderError:
        return ProviderError(self.DISPLAY_NAME, f'malformed response ({what})')

    def _records(self, data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
        """The list of objects under ``key``; absent or null means empty.

        Raises:
            ProviderError: The value is not a list of objects
        """
        records = data.get(key)
        if records is None:
            return []
        if not isinstance(records, list) or not all(isinstance(record, dict) for record in records):
            raise self._malformed(f'{key} must be a list of objects')
        return records

    def _object(self, value: Any, what: str) -> Dict[str, Any]:
        """A nested object; absent or null means empty"""
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise self._malformed(f'{what} must be an object')
        return value

    def _number(self, value: Any, what: str) -> float:
        """A money or quantity field; absent, null or empty means 0"""
        if value is None or value == '':
            return 0
        if isinstance(value, bool):
            raise self._malformed(f'{what} must be a number')
        try:
            return float(value)
        except (TypeError, ValueError):
            raise self._malformed(f'{what} must be a number')

    def _record_id(self, record: Dict[str, Any], *keys: str) -> str:
        """First non-empty id field of a record, as a string"""
        for key in keys:
            value = record.get(key)
            if value is not None and value != '':
                return str(value)
        raise self._malformed(f'record without {keys[0]}')

    @staticmethod
    def _date_range_params(start_date: datetime, end_date: datetime, limit: Optional[int] = None) -> Dict[str, Any]:
        params = {
            'startDate': start_date.strftime('%Y-%m-%d'),
            'endDate': end_date.strftime('%Y-%m-%d'),
        }
        if limit is not None:
            params['limit'] = str(limit)
        return params

    @staticmethod
    def _map(mapping: Dict[str, str], value: Optional[str], default_key: str, fallback: str) -> str:
        return mapping.get((value or default_key).lower(), fallback)

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.base_url}>'
