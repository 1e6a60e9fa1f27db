"""
Database models
"""
from .provider import TollProvider
from .toll_account import CompanyTollAccount, SYNC_STATUSES
from .sync_log import TollSyncLog
from .toll_transaction import TollTransaction
from .sync_queue import SyncQueueItem
from .fleet import Vehicle, Driver

__all__ = [
    'TollProvider',
    'CompanyTollAccount',
    'SYNC_STATUSES',
    'TollSyncLog',
    'TollTransaction',
    'SyncQueueItem',
    'Vehicle',
    'Driver',
]
