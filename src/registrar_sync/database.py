"""
Database initialization for registrar-sync.

Binds the Flask-SQLAlchemy `db` to an app and creates the tables:
registrar_accounts, domains, registrar_sync_history,
domain_verification_log, domain_verification_tokens.
"""
import logging
import os

from .config_defaults import get_default

# Import all models to ensure they're registered with SQLAlchemy
from .models import (  # noqa: F401
    Domain,
    RegistrarAccount,
    SyncHistory,
    VerificationEvent,
    VerificationToken,
    db,
)

logger = logging.getLogger(__name__)


def get_db_path() -> str:
    """
    Get database file path.
    Priority: environment / .env > current directory
    """
    db_path = get_default('REGISTRAR_SYNC_DB_PATH')
    if db_path:
        logger.info(f"Using database path from configuration: {db_path}")
        return db_path

    db_path = os.path.join(os.getcwd(), 'registrar_sync.db')
    logger.info(f"Using default database path: {db_path}")
    return db_path


def get_database_uri() -> str:
    """DATABASE_URL wins; otherwise a SQLite file at get_db_path()."""
    url = get_default('DATABASE_URL')
    if url:
        return url
    return f'sqlite:///{get_db_path()}'


def init_db(app, create_tables: bool = True):
    """
    Initialize database with Flask app.

    An explicit SQLALCHEMY_DATABASE_URI already on app.config is kept.
    """
    app.config.setdefault('SQLALCHEMY_DATABASE_URI', get_database_uri())
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', {'pool_pre_ping': True})

    db.init_app(app)

    if create_tables:
        with app.app_context():
            db.create_all()
            logger.info("Database tables created/verified")
