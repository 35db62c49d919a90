"""
Tests for adapter registry and resolution.
"""
import pytest

from registrar_sync.adapters import registry
from registrar_sync.adapters.base import ConnectionResult, RegistrarAdapter, UnsupportedRegistrar
from registrar_sync.adapters.cloudflare import CloudflareAdapter
from registrar_sync.adapters.godaddy import GoDaddyAdapter
from registrar_sync.adapters.namecheap import NamecheapAdapter


class PorkbunAdapter(RegistrarAdapter):
    code = 'porkbun'
    display_name = 'Porkbun'

    def test_connection(self):
        return ConnectionResult(success=True, message='ok')

    def fetch_domains(self):
        return []


@pytest.fixture
def isolated_registry(monkeypatch):
    monkeypatch.setattr(registry, 'ADAPTER_REGISTRY', dict(registry.ADAPTER_REGISTRY))
    monkeypatch.setattr(registry, 'REGISTRAR_CATALOG', [dict(e) for e in registry.REGISTRAR_CATALOG])


@pytest.mark.parametrize('code,adapter_class', [
    ('godaddy', GoDaddyAdapter),
    ('Cloudflare', CloudflareAdapter),
    ('NAMECHEAP', NamecheapAdapter),
])
def test_create_adapter(code, adapter_class):
    adapter = registry.create_adapter(code, {'api_key': 'k', 'api_secret': 's'})

    assert isinstance(adapter, adapter_class)
    assert adapter.api_key == 'k'


def test_create_adapter_unknown_code():
    with pytest.raises(UnsupportedRegistrar):
        registry.create_adapter('dynadot', {'api_key': 'k'})


def test_is_supported():
    assert registry.is_supported('GoDaddy') is True
    assert registry.is_supported('dynadot') is False
    assert registry.is_supported(None) is False


def test_catalog_lists_coming_soon_registrars():
    catalog = {entry['code']: entry for entry in registry.get_supported_registrars()}

    assert catalog['godaddy']['status'] == 'active'
    assert catalog['namecheap']['priority'] == 2
    assert catalog['dynadot']['status'] == 'coming_soon'


def test_catalog_is_a_copy():
    registry.get_supported_registrars()[0]['status'] = 'broken'

    assert registry.get_supported_registrars()[0]['status'] == 'active'


def test_register_adapter_activates_catalog_entry(isolated_registry):
    registry.register_adapter('Porkbun', PorkbunAdapter, priority=2)

    assert registry.is_supported('porkbun')
    assert isinstance(registry.create_adapter('porkbun', {'api_key': 'k'}), PorkbunAdapter)
    entries = [e for e in registry.get_supported_registrars() if e['code'] == 'porkbun']
    assert entries == [{'code': 'porkbun', 'name': 'Porkbun', 'priority': 2, 'status': 'active'}]


def test_register_adapter_appends_new_code(isolated_registry):
    registry.register_adapter('gandi', PorkbunAdapter, name='Gandi')

    assert registry.get_supported_registrars()[-1]['name'] == 'Gandi'


def test_register_adapter_requires_subclass(isolated_registry):
    with pytest.raises(TypeError):
        registry.register_adapter('bogus', object)


def test_rate_limits_are_descriptive():
    limits = GoDaddyAdapter({'api_key': 'k'}).get_rate_limits().to_dict()

    assert limits == {'requests_per_hour': 60, 'requests_per_day': 1000, 'burst_limit': 10}
