"""
Flask Application Factory.

The Flask app is the host for configuration and the database session; it
carries no routes of its own. The sync/verification services are built
once here and stored on app.extensions['registrar_sync'].
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from flask import Flask, current_app

from .adapters.registry import create_adapter
from .audit_logger import AuditLogger, get_audit_logger
from .credentials import CredentialStore
from .database import init_db
from .scheduler import RegistrarSyncScheduler
from .sync_engine import DomainSyncEngine
from .verification import DomainVerificationEngine

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'registrar_sync'


@dataclass
class RegistrarSyncServices:
    """Service objects shared by the scheduler, CLI and host handlers."""

    credentials: CredentialStore
    audit: AuditLogger
    sync_engine: DomainSyncEngine
    verification: DomainVerificationEngine
    scheduler: RegistrarSyncScheduler


def create_app(test_config: Optional[Dict[str, Any]] = None,
               cipher: Any = None,
               resolver: Any = None,
               adapter_factory: Callable = create_adapter,
               sleep: Optional[Callable[[float], None]] = None,
               blocking_scheduler: bool = False) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        test_config: Extra app.config values (e.g. SQLALCHEMY_DATABASE_URI)
        cipher: Optional Fernet-compatible credential cipher
        resolver: Optional DNS resolver for the verification engine
        adapter_factory: Registrar adapter factory
        sleep: Optional sleep function for bulk-sync delays
        blocking_scheduler: Build a foreground (BlockingScheduler) scheduler,
            as the `registrar-sync scheduler` command needs

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    if test_config:
        app.config.update(test_config)

    init_db(app, create_tables=not app.config.get('TESTING', False))

    audit = get_audit_logger()
    credentials = CredentialStore(cipher=cipher, audit=audit)
    engine_kwargs: Dict[str, Any] = {'adapter_factory': adapter_factory}
    if sleep is not None:
        engine_kwargs['sleep'] = sleep
    sync_engine = DomainSyncEngine(credentials, audit, **engine_kwargs)
    verification = DomainVerificationEngine(audit=audit, resolver=resolver)
    scheduler = RegistrarSyncScheduler(app, sync_engine, blocking=blocking_scheduler)

    app.extensions[EXTENSION_KEY] = RegistrarSyncServices(
        credentials=credentials,
        audit=audit,
        sync_engine=sync_engine,
        verification=verification,
        scheduler=scheduler,
    )

    logger.info("registrar-sync application initialized")
    return app


def get_services(app: Optional[Flask] = None) -> RegistrarSyncServices:
    """Services registered on app (default: current_app)."""
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
