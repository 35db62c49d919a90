"""
Shared fixtures: Flask app on a temporary SQLite file, a scriptable fake
registrar and a fake DNS resolver.
"""
import os
import sys
from types import SimpleNamespace

import dns.resolver
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from registrar_sync.adapters.base import ConnectionResult, RegistrarAdapter, RegistrarError
from registrar_sync.app import create_app, get_services
from registrar_sync.models import (
    CONNECTION_ACTIVE,
    SYNC_MODE_FULL,
    Domain,
    RegistrarAccount,
    db,
)


class FakeRegistrar:
    """Scriptable registrar behind every FakeAdapter the factory builds."""

    def __init__(self):
        self.domains = []
        self.domains_by_key = {}
        self.failing_keys = set()
        self.connection = ConnectionResult(success=True, message='Fake connection successful',
                                           account_info={'domains_count': 0})
        self.on_fetch = None
        self.fetched_keys = []

    def factory(self, registrar_code, credentials):
        return FakeAdapter(self, credentials)


class FakeAdapter(RegistrarAdapter):
    code = 'fake'
    display_name = 'Fake'

    def __init__(self, registrar, credentials):
        super().__init__(credentials)
        self.registrar = registrar

    def test_connection(self):
        return self.registrar.connection

    def fetch_domains(self):
        self.registrar.fetched_keys.append(self.api_key)
        if self.registrar.on_fetch is not None:
            self.registrar.on_fetch()
        if self.api_key in self.registrar.failing_keys:
            raise RegistrarError(f"registrar unavailable for {self.api_key}")
        return list(self.registrar.domains_by_key.get(self.api_key, self.registrar.domains))


class FakeResolver:
    """dnspython-shaped resolver answering from an in-memory table."""

    def __init__(self):
        self.records = {}
        self.queries = []

    def add_txt(self, name, *values):
        self.records[(name, 'TXT')] = [SimpleNamespace(strings=(value.encode('utf-8'),)) for value in values]

    def add_ns(self, name, *hosts):
        self.records[(name, 'NS')] = [SimpleNamespace(target=f'{host}.') for host in hosts]

    def resolve(self, name, rdtype):
        self.queries.append((name, rdtype))
        if (name, rdtype) not in self.records:
            raise dns.resolver.NXDOMAIN()
        return self.records[(name, rdtype)]


@pytest.fixture
def registrar():
    return FakeRegistrar()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def app(tmp_path, registrar, resolver):
    """Create test Flask app with a throwaway SQLite database."""
    db_path = tmp_path / 'registrar_sync_test.db'
    app = create_app(
        test_config={
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        },
        adapter_factory=registrar.factory,
        resolver=resolver,
        sleep=lambda seconds: None,
    )

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def services(app):
    return get_services(app)


@pytest.fixture
def make_account(services):
    """Create a registrar account through the credential store."""

    def _make(user_id=1, registrar='godaddy', sync_mode=SYNC_MODE_FULL,
              status=CONNECTION_ACTIVE, api_key=None, last_sync_at=None):
        account_id = services.credentials.store_credentials(
            user_id, registrar, api_key or f'key-{user_id}-{registrar}', 'secret', sync_mode
        )
        account = db.session.get(RegistrarAccount, account_id)
        account.connection_status = status
        account.last_sync_at = last_sync_at
        db.session.commit()
        return account_id

    return _make


@pytest.fixture
def make_domain():
    """Insert a domain row, optionally linked to a registrar account."""

    def _make(name, user_id=1, account_id=None, auto_synced=False, method=None, **fields):
        domain = Domain(name=name, user_id=user_id, auto_synced=auto_synced, **fields)
        if account_id is not None:
            domain.mark_verified('registrar_api', account_id)
        elif method is not None:
            domain.mark_verified(method)
        db.session.add(domain)
        db.session.commit()
        return domain.id

    return _make
