"""
Adapter Registry and Resolution.

Provides factory functions to instantiate registrar adapters by code and
to report which registrars are supported.
"""

import logging
from typing import Any, Dict, List, Optional, Type

import httpx

from .base import RegistrarAdapter, UnsupportedRegistrar
from .cloudflare import CloudflareAdapter
from .godaddy import GoDaddyAdapter
from .namecheap import NamecheapAdapter

logger = logging.getLogger(__name__)


# Registry of available adapter implementations
ADAPTER_REGISTRY: Dict[str, Type[RegistrarAdapter]] = {
    'godaddy': GoDaddyAdapter,
    'cloudflare': CloudflareAdapter,
    'namecheap': NamecheapAdapter,
}

# Catalog shown to users; 'coming_soon' entries have no adapter yet
REGISTRAR_CATALOG: List[Dict[str, Any]] = [
    {'code': 'godaddy', 'name': 'GoDaddy', 'priority': 1, 'status': 'active'},
    {'code': 'cloudflare', 'name': 'Cloudflare', 'priority': 1, 'status': 'active'},
    {'code': 'namecheap', 'name': 'Namecheap', 'priority': 2, 'status': 'active'},
    {'code': 'dynadot', 'name': 'Dynadot', 'priority': 3, 'status': 'coming_soon'},
    {'code': 'porkbun', 'name': 'Porkbun', 'priority': 3, 'status': 'coming_soon'},
]


def create_adapter(registrar_code: str, credentials: Dict[str, Any],
                   client: Optional[httpx.Client] = None) -> RegistrarAdapter:
    """Get adapter instance by registrar code and credentials.

    Args:
        registrar_code: Registrar identifier (e.g., 'godaddy'), case-insensitive
        credentials: Dict with api_key, api_secret and vendor extras
        client: Optional httpx client to share

    Returns:
        Configured RegistrarAdapter instance

    Raises:
        UnsupportedRegistrar: If no adapter is registered for the code
    """
    adapter_class = ADAPTER_REGISTRY.get((registrar_code or '').lower())
    if not adapter_class:
        raise UnsupportedRegistrar(f"Unsupported registrar: {registrar_code}")

    return adapter_class(credentials, client=client)


def is_supported(registrar_code: str) -> bool:
    return (registrar_code or '').lower() in ADAPTER_REGISTRY


def get_supported_registrars() -> List[Dict[str, Any]]:
    """Catalog of registrars as [{code, name, priority, status}]."""
    return [dict(entry) for entry in REGISTRAR_CATALOG]


def register_adapter(registrar_code: str, adapter_class: Type[RegistrarAdapter],
                     name: Optional[str] = None, priority: int = 3) -> None:
    """Register a new adapter implementation.

    Used for dynamically adding custom registrars. Replaces any catalog
    entry with the same code and marks it active.
    """
    if not issubclass(adapter_class, RegistrarAdapter):
        raise TypeError(f"{adapter_class} must be a subclass of RegistrarAdapter")

    code = registrar_code.lower()
    ADAPTER_REGISTRY[code] = adapter_class

    entry = {
        'code': code,
        'name': name or adapter_class.display_name,
        'priority': priority,
        'status': 'active',
    }
    for index, existing in enumerate(REGISTRAR_CATALOG):
        if existing['code'] == code:
            REGISTRAR_CATALOG[index] = entry
            break
    else:
        REGISTRAR_CATALOG.append(entry)

    logger.info(f"Registered registrar adapter: {code}")
