"""
Service Layer

This module exports the toll account, provider catalog and sync queue services.
"""
from .exceptions import (
    TollSyncError,
    ValidationError,
    UnsupportedProviderError,
    CredentialError,
    NotFoundError,
    SyncInProgressError,
    ProviderError,
    ProviderTimeoutError,
    QueueItemError,
)
from .provider_catalog import seed_default_providers
from .sync_queue_service import SyncQueueService
from .toll_account_service import TollAccountService
from .toll import ProviderRegistry, get_provider_registry, init_registry

__all__ = [
    'TollSyncError',
    'ValidationError',
    'UnsupportedProviderError',
    'CredentialError',
    'NotFoundError',
    'SyncInProgressError',
    'ProviderError',
    'ProviderTimeoutError',
    'QueueItemError',
    'seed_default_providers',
    'SyncQueueService',
    'TollAccountService',
    'ProviderRegistry',
    'get_provider_registry',
    'init_registry',
]
