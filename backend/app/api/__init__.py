"""
API blueprints
"""
from .providers import providers_bp
from .accounts import accounts_bp
from .sync import sync_bp

__all__ = ['providers_bp', 'accounts_bp', 'sync_bp']
