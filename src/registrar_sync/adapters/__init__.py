"""
Registrar Adapter Abstraction Layer.

This module provides a pluggable adapter system for domain registrars.
Each adapter implements the RegistrarAdapter interface.

Supported registrars:
- godaddy: GoDaddy Domains API
- cloudflare: Cloudflare zones API
- namecheap: Namecheap XML API

Usage:
    from registrar_sync.adapters import create_adapter

    adapter = create_adapter('godaddy', {'api_key': '...', 'api_secret': '...'})
    domains = adapter.fetch_domains()
"""

from .base import (
    ConnectionResult,
    RateLimits,
    RegistrarAdapter,
    RegistrarDomain,
    RegistrarError,
    UnsupportedRegistrar,
    coerce_registrar_domain,
    normalize_domain,
)
from .registry import (
    ADAPTER_REGISTRY,
    create_adapter,
    get_supported_registrars,
    is_supported,
    register_adapter,
)
from .cloudflare import CloudflareAdapter
from .godaddy import GoDaddyAdapter
from .namecheap import NamecheapAdapter

__all__ = [
    'ADAPTER_REGISTRY',
    'CloudflareAdapter',
    'ConnectionResult',
    'GoDaddyAdapter',
    'NamecheapAdapter',
    'RateLimits',
    'RegistrarAdapter',
    'RegistrarDomain',
    'RegistrarError',
    'UnsupportedRegistrar',
    'coerce_registrar_domain',
    'create_adapter',
    'get_supported_registrars',
    'is_supported',
    'normalize_domain',
    'register_adapter',
]
