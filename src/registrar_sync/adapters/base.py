"""
Abstract base class for registrar adapters.

All registrar vendors must implement this interface.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import httpx

from ..config_defaults import get_float

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class RegistrarError(Exception):
    """Exception raised for registrar operation failures."""
    pass


class UnsupportedRegistrar(RegistrarError):
    """No adapter is registered for the requested registrar code."""
    pass


@dataclass
class ConnectionResult:
    """Outcome of a connection test. Failures are data, never exceptions."""

    success: bool
    message: str
    account_info: Optional[Dict[str, Any]] = None
    hint: Optional[str] = None
    status_code: Optional[int] = None
    error_code: Optional[str] = None
    error_details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'success': self.success, 'message': self.message}
        for key in ('account_info', 'hint', 'status_code', 'error_code', 'error_details'):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result


@dataclass
class RegistrarDomain:
    """A domain as reported by a registrar, with optional metadata.

    None in a metadata field means the registrar did not report it.
    """

    name: str
    expiry_date: Optional[date] = None
    auto_renew: Optional[bool] = None
    transfer_locked: Optional[bool] = None
    registrar_name: Optional[str] = None


@dataclass
class RateLimits:
    """Descriptive vendor rate limits. Nothing enforces these."""

    requests_per_hour: int = 60
    requests_per_day: int = 1000
    burst_limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'requests_per_hour': self.requests_per_hour,
            'requests_per_day': self.requests_per_day,
        }
        if self.burst_limit is not None:
            result['burst_limit'] = self.burst_limit
        return result


def normalize_domain(name: str) -> str:
    """Lowercase, trim and strip a leading 'www.' (and a trailing dot)."""
    name = name.strip().lower()
    if name.startswith('www.'):
        name = name[4:]
    return name.rstrip('.')


def parse_date(value: Any) -> Optional[date]:
    """Parse vendor date strings ('2026-01-01', ISO timestamps, '01/31/2026')."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
    except ValueError:
        pass
    for fmt in ('%m/%d/%Y', '%Y-%m-%d'):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    logger.warning(f"Unparseable registrar date: {text!r}")
    return None


def parse_bool(value: Any) -> Optional[bool]:
    """Parse vendor booleans (True/False, 'true'/'false'); None stays unknown."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ('true', '1', 'yes'):
        return True
    if text in ('false', '0', 'no'):
        return False
    return None


class RegistrarAdapter(ABC):
    """Abstract base class for registrar adapters.

    Each registrar vendor (GoDaddy, Cloudflare, Namecheap, ...) implements
    this interface to be usable by the sync engine. Adding a vendor means
    adding a subclass and registering it; reconciliation logic never changes.
    """

    code = 'base'
    display_name = 'Base'

    def __init__(self, credentials: Dict[str, Any], client: Optional[httpx.Client] = None):
        """Initialize adapter with credentials.

        Args:
            credentials: Dict with api_key, api_secret and vendor extras
            client: Optional pre-built httpx client (tests, connection reuse)
        """
        self.api_key = credentials.get('api_key')
        self.api_secret = credentials.get('api_secret')
        self.credentials = credentials
        self.timeout = float(credentials.get('timeout') or get_float('REGISTRAR_HTTP_TIMEOUT', DEFAULT_TIMEOUT))
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None

    @abstractmethod
    def test_connection(self) -> ConnectionResult:
        """Test vendor connectivity and credential validity.

        Must never raise: auth rejection, rate limiting and network errors
        are all reported through the returned ConnectionResult.
        """
        pass

    @abstractmethod
    def fetch_domains(self) -> List[RegistrarDomain]:
        """List every domain in the registrar account.

        Returns:
            Normalized domains with whatever metadata the vendor reports

        Raises:
            RegistrarError: On any failure, including a failed page in the
                middle of pagination. A partial list is never returned since
                the sync engine would read missing names as deletions.
        """
        pass

    def get_domain_details(self, name: str) -> Dict[str, Any]:
        """Fetch vendor-specific details for one domain (optional)."""
        raise NotImplementedError(f"get_domain_details() is not implemented for {self.display_name}")

    def get_rate_limits(self) -> RateLimits:
        return RateLimits()

    def normalize_domain(self, name: str) -> str:
        return normalize_domain(name)

    def _get(self, url: str, **kwargs) -> httpx.Response:
        """GET wrapper turning transport failures into RegistrarError."""
        try:
            return self.client.get(url, **kwargs)
        except httpx.HTTPError as e:
            raise RegistrarError(f"{self.display_name} request failed: {e}") from e

    def __repr__(self):
        return f'<{self.__class__.__name__}>'


def coerce_registrar_domain(item: Any, normalize=normalize_domain) -> RegistrarDomain:
    """Accept a bare name, a vendor-ish dict or a RegistrarDomain.

    Dict keys understood: name/domain, expires/expiry_date,
    auto_renew/renewAuto, locked/transfer_locked, registrar/registrar_name.
    """
    if isinstance(item, RegistrarDomain):
        item.name = normalize(item.name)
        return item
    if isinstance(item, str):
        return RegistrarDomain(name=normalize(item))
    if isinstance(item, dict):
        name = item.get('name') or item.get('domain')
        if not name:
            raise RegistrarError(f"Registrar entry without a domain name: {item!r}")
        return RegistrarDomain(
            name=normalize(name),
            expiry_date=parse_date(item.get('expiry_date', item.get('expires'))),
            auto_renew=parse_bool(item.get('auto_renew', item.get('renewAuto'))),
            transfer_locked=parse_bool(item.get('transfer_locked', item.get('locked'))),
            registrar_name=item.get('registrar_name') or item.get('registrar'),
        )
    raise RegistrarError(f"Unsupported registrar entry type: {type(item).__name__}")
