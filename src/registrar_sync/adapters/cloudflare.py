"""
Cloudflare API Adapter.

Implements RegistrarAdapter on top of Cloudflare's zone listing.

Credentials: api_key is an API token (Bearer); api_secret optionally
holds the account id, used to scope the zone listing.
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
)

logger = logging.getLogger(__name__)

PER_PAGE = 50


class CloudflareAdapter(RegistrarAdapter):
    """Cloudflare registrar adapter."""

    code = 'cloudflare'
    display_name = 'Cloudflare'

    def __init__(self, credentials: Dict[str, Any], client: Optional[httpx.Client] = None):
        super().__init__(credentials, client)
        self.base_url = (credentials.get('api_url')
                         or get_default('CLOUDFLARE_API_URL', 'https://api.cloudflare.com/client/v4')).rstrip('/')
        self.account_id = credentials.get('account_id') or self.api_secret

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
        }

    def _zone_params(self, page: int, per_page: int) -> Dict[str, Any]:
        params: Dict[str, Any] = {'per_page': per_page, 'page': page}
        if self.account_id:
            params['account.id'] = self.account_id
        return params

    def test_connection(self) -> ConnectionResult:
        """Test connection with a one-zone listing."""
        try:
            response = self.client.get(f'{self.base_url}/zones', headers=self._headers(),
                                       params=self._zone_params(1, 1))
        except httpx.HTTPError as e:
            logger.error(f"Cloudflare connection test failed: {e}")
            return ConnectionResult(success=False, message=f"Connection failed: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200 or not data.get('success', False):
            errors = data.get('errors') or []
            detail = errors[0].get('message') if errors else response.status_code
            return ConnectionResult(
                success=False,
                message=f"Cloudflare API error: {detail}",
                status_code=response.status_code,
                error_code=str(errors[0].get('code')) if errors else None,
            )

        total = (data.get('result_info') or {}).get('total_count', 0)
        return ConnectionResult(
            success=True,
            message='Cloudflare connection successful',
            account_info={'domains_count': total, 'registrar': self.display_name},
        )

    def fetch_domains(self) -> List[RegistrarDomain]:
        """Fetch all active zones across every page."""
        logger.info("Fetching domains from Cloudflare")
        domains: List[RegistrarDomain] = []
        page = 1

        while True:
            response = self._get(f'{self.base_url}/zones', headers=self._headers(),
                                 params=self._zone_params(page, PER_PAGE))
            if response.status_code != 200:
                raise RegistrarError(f"Cloudflare API error: {response.status_code} (page {page})")
            try:
                data = response.json()
            except ValueError as e:
                raise RegistrarError(f"Invalid response from Cloudflare: {e}") from e
            if not data.get('success', False):
                raise RegistrarError(f"Cloudflare API error on page {page}: {data.get('errors')}")

            for zone in data.get('result') or []:
                if zone.get('status') != 'active':
                    continue
                if not zone.get('name'):
                    raise RegistrarError(f"Cloudflare returned a zone without a name: {zone!r}")
                domains.append(RegistrarDomain(
                    name=self.normalize_domain(zone['name']),
                    registrar_name=self.display_name,
                ))

            info = data.get('result_info') or {}
            total_pages = info.get('total_pages')
            if total_pages is None:
                total_count = info.get('total_count', 0)
                total_pages = -(-total_count // PER_PAGE)
            if page >= total_pages:
                break
            page += 1

        logger.info(f"Found {len(domains)} active domains on Cloudflare")
        return domains

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_hour=1200, requests_per_day=20000, burst_limit=100)
