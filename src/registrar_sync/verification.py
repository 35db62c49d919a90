"""
Domain ownership verification.

Methods, highest confidence first:
1. registrar_api (level 3) - persisted registrar-backed verification
2. nameserver (level 2)    - domain delegates to expected nameservers
3. dns_txt (level 1)       - challenge token published in a TXT record
4. manual (level 0)        - admin override, never attempted here

Every attempt is returned as a plain dict
{success, method, level?, message, ...}; failures are data, not exceptions.
"""
import hashlib
import logging
import secrets
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

import dns.exception
import dns.resolver

from .adapters.base import normalize_domain
from .config_defaults import get_default, get_float, get_int, get_list
from .models import (
    EVENT_VERIFIED,
    METHOD_DNS_TXT,
    METHOD_NAMESERVER,
    METHOD_REGISTRAR_API,
    STATUS_VERIFIED,
    VERIFICATION_LEVELS,
    Domain,
    VerificationToken,
    db,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_DNS_TIMEOUT = 10.0
DEFAULT_TOKEN_TTL_DAYS = 7
DEFAULT_TOKEN_PREFIX = 'domain-verify-'
DEFAULT_NAMESERVERS = 'ns1.example-verify.net,ns2.example-verify.net'

CONFIDENCE = {
    METHOD_REGISTRAR_API: 'highest',
    METHOD_NAMESERVER: 'medium',
    METHOD_DNS_TXT: 'basic',
}


class DomainVerificationEngine:
    """Multi-method domain ownership prover."""

    def __init__(self, audit=None, resolver=None,
                 token_ttl_days: Optional[int] = None,
                 token_prefix: Optional[str] = None,
                 nameservers: Optional[List[str]] = None):
        """
        Args:
            audit: Optional AuditLogger for 'verified' events
            resolver: Object with resolve(name, rdtype) (default: dnspython
                Resolver with lifetime DNS_LOOKUP_TIMEOUT)
            token_ttl_days: Challenge token lifetime (VERIFICATION_TOKEN_TTL_DAYS)
            token_prefix: Challenge token prefix (VERIFICATION_TOKEN_PREFIX)
            nameservers: Nameservers offered in instructions (VERIFICATION_NAMESERVERS)
        """
        self.audit = audit
        self._resolver = resolver
        self.token_ttl_days = token_ttl_days or get_int('VERIFICATION_TOKEN_TTL_DAYS', DEFAULT_TOKEN_TTL_DAYS)
        self.token_prefix = token_prefix or get_default('VERIFICATION_TOKEN_PREFIX', DEFAULT_TOKEN_PREFIX)
        self.nameservers = nameservers or get_list('VERIFICATION_NAMESERVERS', DEFAULT_NAMESERVERS)

    @property
    def resolver(self):
        """Lazy-initialize the DNS resolver with a bounded lifetime."""
        if self._resolver is None:
            resolver = dns.resolver.Resolver()
            resolver.lifetime = get_float('DNS_LOOKUP_TIMEOUT', DEFAULT_DNS_TIMEOUT)
            self._resolver = resolver
        return self._resolver

    # ========================================================================
    # DNS helpers
    # ========================================================================

    def _resolve_txt(self, domain: str) -> List[str]:
        """TXT records with their character-strings joined."""
        answers = self.resolver.resolve(domain, 'TXT')
        records = []
        for rdata in answers:
            records.append(''.join(
                part.decode('utf-8', 'replace') if isinstance(part, bytes) else str(part)
                for part in rdata.strings
            ))
        return records

    def _resolve_ns(self, domain: str) -> List[str]:
        answers = self.resolver.resolve(domain, 'NS')
        return [str(rdata.target).rstrip('.').lower() for rdata in answers]

    # ========================================================================
    # Token handling
    # ========================================================================

    def generate_verification_token(self, user_id: int, domain: str) -> str:
        """Fresh challenge token; never repeats for the same (domain, user)."""
        data = f'{user_id}:{domain}:{time.time_ns()}:{secrets.token_hex(8)}'
        return self.token_prefix + hashlib.sha256(data.encode('utf-8')).hexdigest()[:32]

    def _issue_token(self, domain: str, user_id: int) -> VerificationToken:
        """Create or replace the (domain, user) challenge token."""
        now = utc_now()
        record = VerificationToken.query.filter_by(domain_name=domain, user_id=user_id).first()
        if record is None:
            record = VerificationToken(domain_name=domain, user_id=user_id)
            db.session.add(record)
        record.token = self.generate_verification_token(user_id, domain)
        record.method = METHOD_DNS_TXT
        record.created_at = now
        record.expires_at = now + timedelta(days=self.token_ttl_days)
        db.session.commit()
        return record

    def _check_issued_token(self, domain: str, user_id: int, token: str) -> Optional[str]:
        """Return a failure reason unless token is the latest unexpired one."""
        record = VerificationToken.query.filter_by(domain_name=domain, user_id=user_id).first()
        if record is None:
            return 'No verification token was issued for this domain'
        if record.token != token:
            return 'Verification token does not match the latest issued token'
        if record.is_expired():
            return 'Verification token has expired, request new instructions'
        return None

    def cleanup_expired_tokens(self) -> int:
        return VerificationToken.cleanup_expired()

    # ========================================================================
    # Individual methods
    # ========================================================================

    def verify_via_registrar_api(self, domain: str, user_id: int) -> Dict[str, Any]:
        """Persisted-state check only; no registrar call is made."""
        domain = normalize_domain(domain)
        row = Domain.query.filter_by(
            name=domain,
            user_id=user_id,
            verification_method=METHOD_REGISTRAR_API,
            verification_status=STATUS_VERIFIED,
        ).first()

        if row is None:
            return {
                'success': False,
                'method': METHOD_REGISTRAR_API,
                'message': 'Domain not found or not verified via registrar API',
            }

        registrar = row.registrar_account.registrar if row.registrar_account else 'registrar'
        return {
            'success': True,
            'method': METHOD_REGISTRAR_API,
            'level': VERIFICATION_LEVELS[METHOD_REGISTRAR_API],
            'registrar': registrar,
            'registrar_account_id': row.registrar_account_id,
            'verified_at': row.verified_at.isoformat() if row.verified_at else None,
            'message': f'Domain verified via {registrar} registrar API',
        }

    def verify_via_dns(self, domain: str, expected_token: str) -> Dict[str, Any]:
        """Succeed if any TXT record contains the token."""
        domain = normalize_domain(domain)
        try:
            records = self._resolve_txt(domain)
        except dns.exception.DNSException as e:
            logger.warning(f"TXT lookup failed for {domain}: {e}")
            return {
                'success': False,
                'method': METHOD_DNS_TXT,
                'message': f'DNS lookup failed: {e}',
                'error': type(e).__name__,
            }

        if any(expected_token in record for record in records):
            logger.info(f"Verification token found in TXT records of {domain}")
            return {
                'success': True,
                'method': METHOD_DNS_TXT,
                'level': VERIFICATION_LEVELS[METHOD_DNS_TXT],
                'message': 'Domain verified via DNS TXT record',
            }

        return {
            'success': False,
            'method': METHOD_DNS_TXT,
            'message': 'Verification token not found in DNS records',
            'records': records,
        }

    def verify_via_nameserver(self, domain: str,
                              expected_nameservers: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Resolve NS records and match them against expected nameservers.

        Without expected nameservers the lookup is informational and the
        attempt is reported as unsuccessful.
        """
        domain = normalize_domain(domain)
        try:
            nameservers = self._resolve_ns(domain)
        except dns.exception.DNSException as e:
            logger.warning(f"NS lookup failed for {domain}: {e}")
            return {
                'success': False,
                'method': METHOD_NAMESERVER,
                'message': f'Nameserver lookup failed: {e}',
                'error': type(e).__name__,
            }

        if not expected_nameservers:
            return {
                'success': False,
                'informational': True,
                'method': METHOD_NAMESERVER,
                'nameservers': nameservers,
                'message': 'Nameservers retrieved; no expected nameservers supplied',
            }

        matches = any(
            expected.lower().rstrip('.') in ns
            for expected in expected_nameservers
            for ns in nameservers
        )
        if matches:
            return {
                'success': True,
                'method': METHOD_NAMESERVER,
                'level': VERIFICATION_LEVELS[METHOD_NAMESERVER],
                'nameservers': nameservers,
                'message': 'Domain verified via nameserver check',
            }

        return {
            'success': False,
            'method': METHOD_NAMESERVER,
            'nameservers': nameservers,
            'message': 'Nameservers do not match expected values',
        }

    # ========================================================================
    # Unified verification
    # ========================================================================

    def verify_domain(self, domain: str, user_id: int, token: Optional[str] = None,
                      nameservers: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Try each method in priority order, stopping at the first success.

        Args:
            domain: Domain name
            user_id: Claiming user
            token: DNS TXT challenge token (dns_txt is skipped without one)
            nameservers: Expected nameservers (substring match)

        Returns:
            save_verification_result() output on success, otherwise
            {success: False, message, attempts: [...]}
        """
        domain = normalize_domain(domain)
        logger.info(f"Verifying domain {domain} for user {user_id}")
        attempts: List[Dict[str, Any]] = []

        registrar_result = self.verify_via_registrar_api(domain, user_id)
        attempts.append(registrar_result)
        if registrar_result['success']:
            return self.save_verification_result(domain, user_id, registrar_result)

        if token:
            reason = self._check_issued_token(domain, user_id, token)
            if reason:
                dns_result = {'success': False, 'method': METHOD_DNS_TXT, 'message': reason}
            else:
                dns_result = self.verify_via_dns(domain, token)
            attempts.append(dns_result)
            if dns_result['success']:
                return self.save_verification_result(domain, user_id, dns_result)

        ns_result = self.verify_via_nameserver(domain, nameservers)
        attempts.append(ns_result)
        if ns_result['success']:
            return self.save_verification_result(domain, user_id, ns_result)

        logger.info(f"All verification methods failed for {domain}")
        return {
            'success': False,
            'message': 'Domain verification failed - no method succeeded',
            'attempts': attempts,
        }

    def save_verification_result(self, domain: str, user_id: int,
                                 verification: Dict[str, Any]) -> Dict[str, Any]:
        """
        Upsert the domain row with a successful verification.

        Re-verification overwrites method/level/verified_at; it never
        accumulates. A non-registrar method drops any registrar link.
        """
        domain = normalize_domain(domain)
        method = verification['method']

        row = Domain.query.filter_by(name=domain).first()
        if row is not None and row.user_id != user_id:
            logger.warning(f"Refusing to verify {domain} for user {user_id}: owned by another user")
            return {
                'success': False,
                'message': 'Domain is owned by another user',
                'verification': verification,
            }

        try:
            if row is None:
                row = Domain(name=domain, user_id=user_id, auto_synced=False)
                db.session.add(row)
                old_status = None
            else:
                old_status = row.verification_status

            registrar_account_id = row.registrar_account_id if method == METHOD_REGISTRAR_API else None
            row.mark_verified(method, registrar_account_id)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception(f"Failed to save verification for {domain}")
            raise

        if self.audit is not None:
            self.audit.log_verification(domain, user_id, EVENT_VERIFIED, {
                'method': method,
                'registrar_account_id': row.registrar_account_id,
                'old_status': old_status,
                'new_status': STATUS_VERIFIED,
                'reason': verification.get('message'),
            })

        logger.info(f"Domain {domain} verified via {method} (level {row.verification_level})")
        return {
            'success': True,
            'domain': row.to_dict(),
            'verification': verification,
            'message': f'Domain verified successfully via {method}',
        }

    # ========================================================================
    # Instructions and gating
    # ========================================================================

    def get_verification_instructions(self, domain: str, user_id: int) -> Dict[str, Any]:
        """Issue a fresh challenge token and describe every method."""
        domain = normalize_domain(domain)
        token = self._issue_token(domain, user_id).token

        return {
            'domain': domain,
            'token': token,
            'expires_in_days': self.token_ttl_days,
            'methods': [
                {
                    'method': METHOD_REGISTRAR_API,
                    'level': VERIFICATION_LEVELS[METHOD_REGISTRAR_API],
                    'confidence': CONFIDENCE[METHOD_REGISTRAR_API],
                    'recommended': True,
                    'instructions': 'Connect your registrar account (GoDaddy, Cloudflare, Namecheap) '
                                    'to automatically verify all your domains.',
                },
                {
                    'method': METHOD_DNS_TXT,
                    'level': VERIFICATION_LEVELS[METHOD_DNS_TXT],
                    'confidence': CONFIDENCE[METHOD_DNS_TXT],
                    'instructions': "Add a TXT record to your domain's DNS settings:",
                    'record': {'type': 'TXT', 'name': '@', 'value': token, 'ttl': 300},
                    'steps': [
                        '1. Log in to your domain registrar or DNS provider',
                        '2. Go to DNS settings for this domain',
                        f'3. Add a TXT record with value: {token}',
                        '4. Wait 5-10 minutes for DNS propagation',
                        '5. Run verification again with this token',
                    ],
                },
                {
                    'method': METHOD_NAMESERVER,
                    'level': VERIFICATION_LEVELS[METHOD_NAMESERVER],
                    'confidence': CONFIDENCE[METHOD_NAMESERVER],
                    'instructions': 'Point your domain to our nameservers (advanced users only)',
                    'nameservers': list(self.nameservers),
                    'note': 'This will change your DNS provider. Only use if you understand DNS management.',
                },
            ],
        }

    def can_perform_action(self, domain: str, user_id: int, required_level: int = 1) -> Dict[str, Any]:
        """Fail-closed gate for trust-sensitive actions."""
        row = Domain.query.filter_by(name=normalize_domain(domain), user_id=user_id).first()

        if row is None:
            return {'allowed': False, 'reason': 'Domain not found or not owned by user'}

        if row.verification_status != STATUS_VERIFIED or not row.is_verified:
            return {'allowed': False, 'reason': 'Domain verification expired or revoked'}

        if row.verification_level < required_level:
            return {
                'allowed': False,
                'reason': (f'Action requires verification level {required_level} or higher. '
                           f'Current level: {row.verification_level}'),
                'current_level': row.verification_level,
                'required_level': required_level,
            }

        return {'allowed': True, 'verification_level': row.verification_level}
