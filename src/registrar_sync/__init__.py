"""
registrar-sync: registrar-backed domain sync and multi-level ownership verification.
"""

__version__ = '1.0.0'

from .adapters import (
    RegistrarAdapter,
    RegistrarError,
    UnsupportedRegistrar,
    create_adapter,
    get_supported_registrars,
    is_supported,
    register_adapter,
)
from .app import create_app, get_services
from .sync_engine import AccountNotFound, DomainSyncEngine
from .verification import DomainVerificationEngine

__all__ = [
    'AccountNotFound',
    'DomainSyncEngine',
    'DomainVerificationEngine',
    'RegistrarAdapter',
    'RegistrarError',
    'UnsupportedRegistrar',
    'create_adapter',
    'create_app',
    'get_services',
    'get_supported_registrars',
    'is_supported',
    'register_adapter',
]
