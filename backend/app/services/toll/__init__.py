"""
Toll provider integrations
"""
from .base import TollProviderService
from .bestpass import BestPassService
from .ipass import IPassService
from .pcmiler import PCMilerService
from .prepass import PrePassService
from .rate_limiter import RateLimiter
from .registry import ProviderRegistry, get_provider_registry, init_registry
from .types import AccountInfo, Location, RouteRequest, SyncResult, TollCalculation, TollPoint, Transaction

__all__ = [
    'TollProviderService',
    'PCMilerService',
    'IPassService',
    'BestPassService',
    'PrePassService',
    'RateLimiter',
    'ProviderRegistry',
    'get_provider_registry',
    'init_registry',
    'RouteRequest',
    'Location',
    'TollCalculation',
    'TollPoint',
    'AccountInfo',
    'Transaction',
    'SyncResult',
]
