"""
Provider catalog seeding

Keeps the toll_providers table in line with the adapters the registry knows
and the endpoints configured for this deployment.
"""
from typing import Dict, List

from flask import current_app

from ..extensions import db
from ..models import TollProvider
from ..utils.logger import get_logger
from .toll.registry import ProviderRegistry

logger = get_logger('provider_catalog')


def seed_default_providers(registry: ProviderRegistry, endpoints: Dict[str, str] = None) -> List[TollProvider]:
    """Insert or refresh one catalog row per registered provider.

    Existing rows keep their id and is_active flag; descriptive fields and
    the endpoint are refreshed.

    Args:
        registry: Registry providing the adapter metadata
        endpoints: provider code -> base URL, defaults to TOLL_PROVIDER_ENDPOINTS

    Returns:
        The catalog rows, in registry order
    """
    if endpoints is None:
        endpoints = current_app.config.get('TOLL_PROVIDER_ENDPOINTS', {})

    providers = []
    created = 0
    for code in registry.list_providers():
        info = registry.get_provider_info(code)
        adapter_class = registry.adapter_class(code)

        provider = TollProvider.query.filter_by(code=code).first()
        if provider is None:
            provider = TollProvider(code=code, is_active=True)
            db.session.add(provider)
            created += 1

        provider.name = info['name']
        provider.provider_type = info['type']
        provider.description = info['description']
        provider.api_endpoint = endpoints.get(code) or adapter_class.DEFAULT_BASE_URL
        provider.supported_regions = info['supported_regions']
        provider.features = info['features']
        provider.auth_type = info['auth_type']
        provider.website = info['website']
        providers.append(provider)

    db.session.commit()
    logger.info(f"Provider catalog seeded: {created} created, {len(providers) - created} refreshed")
    return providers
