"""
Namecheap XML API Adapter.

Implements RegistrarAdapter for the Namecheap XML API.
Docs: https://www.namecheap.com/support/api/

Credentials: username (falls back to api_key), api_secret is the API key,
client_ip is the whitelisted caller IP Namecheap requires.
"""

import logging
import xml.etree.ElementTree as ET
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

NC_XML_NS = '{http://api.namecheap.com/xml.response}'
PAGE_SIZE = 100
LIST_COMMAND = 'namecheap.domains.getList'


class NamecheapAdapter(RegistrarAdapter):
    """Namecheap registrar adapter."""

    code = 'namecheap'
    display_name = 'Namecheap'

    def __init__(self, credentials: Dict[str, Any], client: Optional[httpx.Client] = None):
        super().__init__(credentials, client)
        self.base_url = (credentials.get('api_url')
                         or get_default('NAMECHEAP_API_URL', 'https://api.namecheap.com/xml.response'))
        self.username = credentials.get('username') or self.api_key
        self.client_ip = credentials.get('client_ip') or '0.0.0.0'

    def _params(self, command: str, **extra: Any) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            'ApiUser': self.username,
            'ApiKey': self.api_secret,
            'UserName': self.username,
            'ClientIp': self.client_ip,
            'Command': command,
        }
        params.update(extra)
        return params

    def _parse(self, text: str) -> ET.Element:
        """Parse a response body and raise on API-level errors."""
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise RegistrarError(f"Invalid XML from Namecheap: {e}") from e

        if root.get('Status') != 'OK':
            errors = [e.text or '' for e in root.findall(f'.//{NC_XML_NS}Errors/{NC_XML_NS}Error')]
            raise RegistrarError(f"Namecheap API error: {'; '.join(errors) or 'unknown error'}")
        return root

    def test_connection(self) -> ConnectionResult:
        """Test connection with a one-item domain listing."""
        try:
            response = self.client.get(self.base_url, params=self._params(LIST_COMMAND, PageSize=1))
        except httpx.HTTPError as e:
            logger.error(f"Namecheap connection test failed: {e}")
            return ConnectionResult(success=False, message=f"Connection failed: {e}")

        if response.status_code != 200:
            return ConnectionResult(
                success=False,
                message=f"Namecheap API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            root = self._parse(response.text)
        except RegistrarError as e:
            return ConnectionResult(
                success=False,
                message='Authentication failed',
                error_details=str(e),
                hint='Check the API user, API key and that this server IP is whitelisted at Namecheap.',
            )

        return ConnectionResult(
            success=True,
            message='Namecheap connection successful',
            account_info={'domains_count': self._total_items(root), 'registrar': self.display_name},
        )

    @staticmethod
    def _total_items(root: ET.Element) -> Optional[int]:
        node = root.find(f'.//{NC_XML_NS}Paging/{NC_XML_NS}TotalItems')
        if node is None or not (node.text or '').strip().isdigit():
            return None
        return int(node.text.strip())

    def fetch_domains(self) -> List[RegistrarDomain]:
        """Fetch all domains across every page."""
        logger.info("Fetching domains from Namecheap")
        domains: List[RegistrarDomain] = []
        page = 1

        while True:
            response = self._get(self.base_url, params=self._params(LIST_COMMAND, PageSize=PAGE_SIZE, Page=page))
            if response.status_code != 200:
                raise RegistrarError(f"Namecheap API error: {response.status_code} (page {page})")
            root = self._parse(response.text)

            entries = root.findall(f'.//{NC_XML_NS}DomainGetListResult/{NC_XML_NS}Domain')
            for entry in entries:
                name = entry.get('Name')
                if not name:
                    raise RegistrarError(f"Namecheap returned a domain without a Name (page {page})")
                domains.append(RegistrarDomain(
                    name=self.normalize_domain(name),
                    expiry_date=parse_date(entry.get('Expires')),
                    auto_renew=parse_bool(entry.get('AutoRenew')),
                    transfer_locked=parse_bool(entry.get('IsLocked')),
                    registrar_name=self.display_name,
                ))

            total = self._total_items(root)
            if total is not None:
                if page * PAGE_SIZE >= total:
                    break
            elif len(entries) < PAGE_SIZE:
                break
            page += 1

        logger.info(f"Found {len(domains)} domains on Namecheap")
        return domains

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_hour=20, requests_per_day=200, burst_limit=3)
