"""
Provider Registry - builds and caches toll adapters

One registry lives on each Flask app (``app.extensions['toll_registry']``).
Adapters are cached per (provider code, serialized config) so callers using
the same credentials share one adapter and therefore one rate limiter.
"""
import json
import threading
from typing import Any, Dict, Iterable, List, Optional, Type

from flask import current_app

from ..exceptions import ProviderError, UnsupportedProviderError
from .base import TollProviderService
from .bestpass import BestPassService
from .ipass import IPassService
from .pcmiler import PCMilerService
from .prepass import PrePassService
from ...utils.logger import get_logger

logger = get_logger('toll_registry')

DEFAULT_ADAPTERS = (PCMilerService, IPassService, BestPassService, PrePassService)


class ProviderRegistry:
    """Factory and cache for TollProviderService instances.

    Example:
        >>> registry = ProviderRegistry()
        >>> service = registry.create('ipass', {'api_key': 'k'})
        >>> registry.create('ipass', {'api_key': 'k'}) is service
        True
    """

    def __init__(self, adapters: Iterable[Type[TollProviderService]] = DEFAULT_ADAPTERS):
        self._adapters: Dict[str, Type[TollProviderService]] = {
            adapter.PROVIDER_CODE: adapter for adapter in adapters
        }
        self._instances: Dict[tuple, TollProviderService] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _cache_key(provider_code: str, config: Dict[str, Any]) -> tuple:
        return provider_code, json.dumps(config or {}, sort_keys=True, default=str)

    def adapter_class(self, provider_code: str) -> Type[TollProviderService]:
        try:
            return self._adapters[provider_code]
        except KeyError:
            raise UnsupportedProviderError(provider_code)

    def create(self, provider_code: str, config: Dict[str, Any], cache: bool = True) -> TollProviderService:
        """Return the cached adapter for (code, config), building it if needed.

        With ``cache=False`` a fresh adapter is built and not remembered; the
        caller owns it and should close its ``http`` client when done.

        Raises:
            UnsupportedProviderError: Unknown provider code
        """
        adapter_class = self.adapter_class(provider_code)
        if not cache:
            return adapter_class(config)

        key = self._cache_key(provider_code, config)

        with self._lock:
            service = self._instances.get(key)
            if service is None:
                service = adapter_class(config)
                self._instances[key] = service
                logger.info(f"Created toll service instance for provider: {provider_code}")
            return service

    def list_providers(self) -> List[str]:
        return list(self._adapters)

    def get_provider_info(self, provider_code: str) -> Dict[str, Any]:
        """Static metadata, no adapter instance involved"""
        return self.adapter_class(provider_code).describe()

    def validate_config(self, provider_code: str, config: Dict[str, Any]) -> bool:
        """True when every required credential field is present"""
        return not self.adapter_class(provider_code).missing_credentials(config)

    def test_all_connections(self, credentials_by_code: Dict[str, Dict[str, Any]]) -> Dict[str, bool]:
        """Test every known provider; providers without credentials report False"""
        results = {}
        for code in self._adapters:
            config = credentials_by_code.get(code)
            if not config:
                results[code] = False
                continue
            service = None
            try:
                service = self.create(code, config, cache=False)
                results[code] = service.test_connection()
            except (ProviderError, ValueError) as e:
                logger.error(f"Error testing connection for {code}: {e}")
                results[code] = False
            finally:
                if service is not None:
                    service.http.close()
        return results

    @staticmethod
    def get_best_provider_for_route(
        origin_state: Optional[str],
        destination_state: Optional[str],
        available: Iterable[str]
    ) -> Optional[str]:
        """Pick a provider for a route from the ones the caller can use"""
        available = list(available)
        states = {state.upper() for state in (origin_state, destination_state) if state}

        if 'IL' in states and 'ipass' in available:
            return 'ipass'
        if len(states) > 1 and 'bestpass' in available:
            return 'bestpass'
        if 'prepass' in available:
            return 'prepass'
        if 'pcmiler' in available:
            return 'pcmiler'
        return available[0] if available else None

    def clear_cache(self) -> int:
        """Drop every cached adapter, returning how many were dropped"""
        with self._lock:
            count = len(self._instances)
            for service in self._instances.values():
                service.http.close()
            self._instances.clear()
        logger.info(f"Cleared {count} toll service instances from cache")
        return count

    def cache_size(self) -> int:
        with self._lock:
            return len(self._instances)


def init_registry(app, registry: Optional[ProviderRegistry] = None) -> ProviderRegistry:
    registry = registry or ProviderRegistry()
    app.extensions['toll_registry'] = registry
    return registry


def get_provider_registry() -> ProviderRegistry:
    """Registry of the current Flask app"""
    return current_app.extensions['toll_registry']
