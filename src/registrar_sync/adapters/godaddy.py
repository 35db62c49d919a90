"""
GoDaddy Domains API Adapter.

Implements RegistrarAdapter for GoDaddy's REST API (sso-key auth).
Docs: https://developer.godaddy.com/doc/endpoint/domains
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config_defaults import get_default
from .base import (
    ConnectionResult,
    RateLimits,
    RegistrarAdapter,
    RegistrarDomain,
    RegistrarError,
    parse_bool,
    parse_date,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000

# GoDaddy production API access is gated; the 403 case is the usual surprise
HINT_FORBIDDEN = (
    "GoDaddy only grants production API access to accounts with 10+ domains "
    "or a Domain Pro plan. Use the OTE environment "
    "(GODADDY_API_URL=https://api.ote-godaddy.com) with test keys, or verify "
    "the key has Domain permissions."
)
HINT_UNAUTHORIZED = "Your API key or secret is incorrect. Please check your GoDaddy API credentials."
HINT_RATE_LIMITED = "Please wait a few minutes before trying again."


class GoDaddyAdapter(RegistrarAdapter):
    """GoDaddy registrar adapter."""

    code = 'godaddy'
    display_name = 'GoDaddy'

    def __init__(self, credentials: Dict[str, Any], client: Optional[httpx.Client] = None):
        super().__init__(credentials, client)
        self.base_url = (credentials.get('api_url')
                         or get_default('GODADDY_API_URL', 'https://api.godaddy.com')).rstrip('/')

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'sso-key {self.api_key}:{self.api_secret}',
            'Accept': 'application/json',
        }

    def test_connection(self) -> ConnectionResult:
        """Test connection by listing domains."""
        try:
            response = self.client.get(f'{self.base_url}/v1/domains', headers=self._headers(),
                                       params={'limit': PAGE_SIZE})
        except httpx.HTTPError as e:
            logger.error(f"GoDaddy connection test failed: {e}")
            return ConnectionResult(success=False, message=f"Connection failed: {e}")

        if response.status_code != 200:
            return self._error_result(response)

        try:
            domains = response.json()
        except ValueError as e:
            return ConnectionResult(success=False, message=f"Invalid response from GoDaddy: {e}")

        return ConnectionResult(
            success=True,
            message='GoDaddy connection successful',
            account_info={'domains_count': len(domains), 'registrar': self.display_name},
        )

    def _error_result(self, response: httpx.Response) -> ConnectionResult:
        try:
            error_data = response.json()
        except ValueError:
            error_data = {'message': response.text}
        if not isinstance(error_data, dict):
            error_data = {'message': str(error_data)}

        status = response.status_code
        message = f"GoDaddy API error: {status} - {error_data.get('message', '')}".rstrip(' -')
        hint = None
        if status == 403:
            message = 'GoDaddy API credentials are invalid or do not have permission'
            hint = HINT_FORBIDDEN
        elif status == 401:
            message = 'GoDaddy API authentication failed'
            hint = HINT_UNAUTHORIZED
        elif status == 429:
            message = 'GoDaddy API rate limit exceeded'
            hint = HINT_RATE_LIMITED

        return ConnectionResult(
            success=False,
            message=message,
            hint=hint,
            status_code=status,
            error_code=error_data.get('code'),
            error_details=error_data.get('message'),
        )

    def fetch_domains(self) -> List[RegistrarDomain]:
        """Fetch all ACTIVE domains, following the marker-based pagination."""
        logger.info("Fetching domains from GoDaddy")
        domains: List[RegistrarDomain] = []
        marker = None

        while True:
            params: Dict[str, Any] = {'limit': PAGE_SIZE}
            if marker:
                params['marker'] = marker
            response = self._get(f'{self.base_url}/v1/domains', headers=self._headers(), params=params)
            if response.status_code != 200:
                raise RegistrarError(f"GoDaddy API error: {response.status_code}")
            try:
                page = response.json()
            except ValueError as e:
                raise RegistrarError(f"Invalid response from GoDaddy: {e}") from e

            for entry in page:
                if not entry.get('domain'):
                    raise RegistrarError(f"GoDaddy returned an entry without a domain: {entry!r}")
                if entry.get('status') != 'ACTIVE':
                    continue
                domains.append(RegistrarDomain(
                    name=self.normalize_domain(entry['domain']),
                    expiry_date=parse_date(entry.get('expires')),
                    auto_renew=parse_bool(entry.get('renewAuto')),
                    transfer_locked=parse_bool(entry.get('locked')),
                    registrar_name=self.display_name,
                ))

            if len(page) < PAGE_SIZE:
                break
            marker = page[-1]['domain']

        logger.info(f"Found {len(domains)} active domains on GoDaddy")
        return domains

    def get_domain_details(self, name: str) -> Dict[str, Any]:
        response = self._get(f'{self.base_url}/v1/domains/{self.normalize_domain(name)}',
                             headers=self._headers())
        if response.status_code != 200:
            raise RegistrarError(f"Failed to fetch domain details: {response.status_code}")
        return response.json()

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_hour=60, requests_per_day=1000, burst_limit=10)
