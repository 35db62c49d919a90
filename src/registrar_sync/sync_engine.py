"""
Domain sync engine.

Reconciles the local domain inventory against registrar accounts.

Two algorithms, selected by RegistrarAccount.sync_mode:
- full: import new domains, refresh existing ones, revoke (or delete, for
  auto-synced rows) domains the registrar no longer reports
- verify_only: elevate the user's existing domains the registrar can
  corroborate; absence is never treated as lost ownership

Per-domain failures are collected into stats['errors'] and never abort a
run. Registrar/credential failures propagate to the account boundary.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from .adapters.base import RegistrarAdapter, RegistrarDomain, coerce_registrar_domain, normalize_domain
from .adapters.registry import create_adapter, is_supported, get_supported_registrars
from .config_defaults import get_float
from .models import (
    CONNECTION_ACTIVE,
    CONNECTION_DISCONNECTED,
    CONNECTION_FAILED,
    DEFAULT_DOMAIN_CATEGORY,
    DEFAULT_DOMAIN_STATUS,
    DEFAULT_DOMAIN_VALUE,
    EVENT_REVOKED,
    EVENT_VERIFIED,
    METHOD_REGISTRAR_API,
    STATUS_REVOKED,
    STATUS_VERIFIED,
    SYNC_MODE_FULL,
    SYNC_MODE_VERIFY_ONLY,
    Domain,
    RegistrarAccount,
    SyncHistory,
    db,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_DELAY = 2.0

SYNC_SUCCESS = 'success'
SYNC_PARTIAL = 'partial'
SYNC_FAILED = 'failed'


class AccountNotFound(LookupError):
    """Registrar account id does not exist (or is not owned by the caller)."""
    pass


def empty_sync_stats() -> Dict[str, Any]:
    return {'found': 0, 'added': 0, 'updated': 0, 'removed': 0, 'errors': []}


def empty_verify_stats() -> Dict[str, Any]:
    return {'total_in_database': 0, 'verified': 0, 'not_found': 0, 'errors': []}


class DomainSyncEngine:
    """
    Registrar reconciliation service.

    Constructed once by create_app() and shared by the scheduler, the CLI and
    any request handlers. Holds the bulk single-flight lock; per-account and
    per-user operations do not take it.
    """

    def __init__(self, credentials, audit,
                 adapter_factory: Callable[..., RegistrarAdapter] = create_adapter,
                 account_delay: Optional[float] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            credentials: CredentialStore-like collaborator
            audit: AuditLogger-like collaborator
            adapter_factory: (registrar_code, credentials) -> RegistrarAdapter
            account_delay: Seconds between accounts in bulk runs
                (default SYNC_ACCOUNT_DELAY_SECONDS)
            sleep: Sleep function (injectable for tests)
        """
        self.credentials = credentials
        self.audit = audit
        self.adapter_factory = adapter_factory
        if account_delay is None:
            account_delay = get_float('SYNC_ACCOUNT_DELAY_SECONDS', DEFAULT_ACCOUNT_DELAY)
        self.account_delay = account_delay
        self.sleep = sleep
        self._bulk_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """True while a bulk sync holds the single-flight lock."""
        return self._bulk_lock.locked()

    # ========================================================================
    # Helpers
    # ========================================================================

    def _get_account(self, account_id: int) -> RegistrarAccount:
        account = db.session.get(RegistrarAccount, account_id)
        if account is None:
            raise AccountNotFound(f"Registrar account {account_id} not found")
        return account

    def _build_adapter(self, account_id: int) -> RegistrarAdapter:
        credentials = self.credentials.get_credentials(account_id)
        return self.adapter_factory(credentials['registrar'], credentials)

    def _held_by_other_account(self, domain: Domain, account_id: int) -> bool:
        """True if another live registrar account already vouches for domain.

        A disconnected holder no longer counts, so its rows can be relinked.
        """
        holder_id = domain.registrar_account_id
        if holder_id is None or holder_id == account_id:
            return False
        if domain.verification_method != METHOD_REGISTRAR_API or not domain.is_verified:
            return False
        holder = db.session.get(RegistrarAccount, holder_id)
        return holder is not None and holder.connection_status != CONNECTION_DISCONNECTED

    def _fetch_registrar_domains(self, account_id: int) -> Dict[str, RegistrarDomain]:
        """Fetch and normalize the registrar's list, keyed by domain name."""
        adapter = self._build_adapter(account_id)
        try:
            entries = adapter.fetch_domains()
            remote: Dict[str, RegistrarDomain] = {}
            for entry in entries:
                domain = coerce_registrar_domain(entry, adapter.normalize_domain)
                remote[domain.name] = domain
            return remote
        finally:
            adapter.close()

    def _fail_account(self, account_id: int, mode: str, stats: Dict[str, Any],
                      error: Exception, started_at, started: float):
        """Record a run that never got a registrar list."""
        message = str(error)
        stats['errors'].append(message)
        self.credentials.update_connection_status(account_id, CONNECTION_FAILED, message)
        self.audit.log_sync(account_id, SYNC_FAILED, stats, error=message, sync_mode=mode,
                            started_at=started_at, duration_ms=_elapsed_ms(started))
        try:
            account = db.session.get(RegistrarAccount, account_id)
            if account is not None:
                account.last_sync_status = SYNC_FAILED
                account.last_sync_error = message
                account.updated_at = utc_now()
                db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to record sync failure for account {account_id}: {e}")

    def _finish_account(self, account_id: int, mode: str, stats: Dict[str, Any],
                        domains_count: int, verified_count: int, started_at, started: float) -> str:
        """Update account counters and append the history row. Returns run status."""
        errors = stats['errors']
        status = SYNC_PARTIAL if errors else SYNC_SUCCESS
        summary = f"{len(errors)} domain(s) failed" if errors else None

        try:
            account = self._get_account(account_id)
            account.last_sync_at = utc_now()
            account.last_sync_status = status
            account.last_sync_error = summary
            account.domains_count = domains_count
            account.verified_domains_count = verified_count
            if account.connection_status == CONNECTION_FAILED:
                account.connection_status = CONNECTION_ACTIVE
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to update sync status for account {account_id}: {e}")

        self.audit.log_sync(account_id, status, stats, error=summary, sync_mode=mode,
                            started_at=started_at, duration_ms=_elapsed_ms(started))
        return status

    # ========================================================================
    # Full sync
    # ========================================================================

    def sync_registrar_account(self, account_id: int) -> Dict[str, Any]:
        """
        Reconcile one registrar account.

        Dispatches to verify_existing_domains() for verify_only accounts.

        Returns:
            {found, added, updated, removed, errors} for full sync, or the
            verify-only stats shape

        Raises:
            AccountNotFound: Unknown account id
            RegistrarError / CredentialError: Registrar list could not be
                fetched (account is marked failed first)
        """
        account = self._get_account(account_id)

        if account.connection_status == CONNECTION_DISCONNECTED:
            logger.info(f"Account {account_id} is disconnected, skipping sync")
            return empty_sync_stats()

        if not account.is_full_sync():
            return self.verify_existing_domains(account_id)

        user_id = account.user_id
        registrar = account.registrar
        stats = empty_sync_stats()
        started_at = utc_now()
        started = time.monotonic()

        logger.info(f"Starting full sync for account {account_id} ({registrar}, user {user_id})")

        try:
            remote = self._fetch_registrar_domains(account_id)
        except Exception as e:
            logger.error(f"Failed to fetch domains for account {account_id}: {e}")
            self._fail_account(account_id, SYNC_MODE_FULL, stats, e, started_at, started)
            raise

        stats['found'] = len(remote)

        local = {
            normalize_domain(domain.name): domain
            for domain in Domain.query.filter_by(registrar_account_id=account_id).all()
        }

        new_names = sorted(set(remote) - set(local))
        existing_names = sorted(set(remote) & set(local))
        removed_names = sorted(set(local) - set(remote))

        logger.info(
            f"Account {account_id}: {len(remote)} at registrar, {len(local)} linked locally "
            f"(+{len(new_names)} ={len(existing_names)} -{len(removed_names)})"
        )

        for name in new_names:
            self._import_domain(account_id, user_id, registrar, remote[name], stats)

        for name in existing_names:
            self._refresh_domain(local[name], remote[name], stats)

        for name in removed_names:
            self._remove_domain(account_id, user_id, registrar, local[name], stats)

        status = self._finish_account(
            account_id, SYNC_MODE_FULL, stats,
            domains_count=stats['found'],
            verified_count=stats['added'] + stats['updated'],
            started_at=started_at, started=started,
        )

        logger.info(
            f"Sync {status} for account {account_id}: found={stats['found']} added={stats['added']} "
            f"updated={stats['updated']} removed={stats['removed']} errors={len(stats['errors'])}"
        )
        return stats

    def _import_domain(self, account_id: int, user_id: int, registrar: str,
                       remote: RegistrarDomain, stats: Dict[str, Any]):
        """Link a registrar-reported domain, inserting it when unknown."""
        name = remote.name
        try:
            domain = Domain.query.filter_by(name=name).first()
            if domain is not None and domain.user_id != user_id:
                stats['errors'].append(f"Failed to add {name}: domain belongs to another user")
                logger.warning(f"Skipping {name} for account {account_id}: owned by user {domain.user_id}")
                return
            if domain is not None and self._held_by_other_account(domain, account_id):
                logger.info(f"Skipping {name} for account {account_id}: "
                            f"already verified via account {domain.registrar_account_id}")
                return

            old_status = None
            if domain is None:
                domain = Domain(
                    name=name,
                    user_id=user_id,
                    status=DEFAULT_DOMAIN_STATUS,
                    value=DEFAULT_DOMAIN_VALUE,
                    category=DEFAULT_DOMAIN_CATEGORY,
                    auto_synced=True,
                )
                db.session.add(domain)
            else:
                old_status = domain.verification_status

            domain.mark_verified(METHOD_REGISTRAR_API, account_id)
            domain.last_seen_at = utc_now()
            domain.merge_registrar_metadata(
                remote.expiry_date, remote.auto_renew, remote.transfer_locked, remote.registrar_name
            )
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to add {name}: {e}")
            stats['errors'].append(f"Failed to add {name}: {e}")
            return

        stats['added'] += 1
        self.audit.log_verification(name, user_id, EVENT_VERIFIED, {
            'method': METHOD_REGISTRAR_API,
            'registrar_account_id': account_id,
            'old_status': old_status,
            'new_status': STATUS_VERIFIED,
            'reason': f'Auto-verified via {registrar} API',
        })

    def _refresh_domain(self, domain: Domain, remote: RegistrarDomain, stats: Dict[str, Any]):
        """Reaffirm a still-reported domain and coalesce its metadata."""
        name = domain.name
        try:
            domain.last_seen_at = utc_now()
            domain.verification_status = STATUS_VERIFIED
            domain.is_verified = True
            domain.merge_registrar_metadata(
                remote.expiry_date, remote.auto_renew, remote.transfer_locked, remote.registrar_name
            )
            db.session.commit()
            stats['updated'] += 1
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to update {name}: {e}")
            stats['errors'].append(f"Failed to update {name}: {e}")

    def _remove_domain(self, account_id: int, user_id: int, registrar: str,
                       domain: Domain, stats: Dict[str, Any]):
        """Hard-delete auto-synced rows, soft-revoke everything else."""
        name = domain.name
        try:
            if domain.auto_synced:
                db.session.delete(domain)
                new_status = 'deleted'
            else:
                domain.soft_revoke()
                new_status = STATUS_REVOKED
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to revoke {name}: {e}")
            stats['errors'].append(f"Failed to revoke {name}: {e}")
            return

        stats['removed'] += 1
        logger.info(f"Account {account_id}: {name} no longer at registrar ({new_status})")
        self.audit.log_verification(name, user_id, EVENT_REVOKED, {
            'method': METHOD_REGISTRAR_API,
            'registrar_account_id': account_id,
            'old_status': STATUS_VERIFIED,
            'new_status': new_status,
            'reason': f'Domain no longer found at registrar ({registrar})',
        })

    # ========================================================================
    # Verify-only
    # ========================================================================

    def verify_existing_domains(self, account_id: int) -> Dict[str, Any]:
        """
        Elevate the user's existing domains that this registrar reports.

        Scope is the user's whole portfolio, not only domains linked to this
        account. Never inserts, revokes or deletes.

        Returns:
            {total_in_database, verified, not_found, errors}
        """
        account = self._get_account(account_id)
        stats = empty_verify_stats()

        if account.connection_status == CONNECTION_DISCONNECTED:
            logger.info(f"Account {account_id} is disconnected, skipping verification")
            return stats

        user_id = account.user_id
        registrar = account.registrar
        started_at = utc_now()
        started = time.monotonic()

        logger.info(f"Starting verify-only pass for account {account_id} ({registrar}, user {user_id})")

        try:
            remote = self._fetch_registrar_domains(account_id)
        except Exception as e:
            logger.error(f"Failed to fetch domains for account {account_id}: {e}")
            self._fail_account(account_id, SYNC_MODE_VERIFY_ONLY, stats, e, started_at, started)
            raise

        portfolio = Domain.query.filter_by(user_id=user_id).order_by(Domain.name).all()
        stats['total_in_database'] = len(portfolio)

        for domain in portfolio:
            entry = remote.get(normalize_domain(domain.name))
            if entry is None:
                stats['not_found'] += 1
                continue
            self._corroborate_domain(account_id, user_id, registrar, domain, entry, stats)

        self._finish_account(
            account_id, SYNC_MODE_VERIFY_ONLY, stats,
            domains_count=len(remote),
            verified_count=stats['verified'],
            started_at=started_at, started=started,
        )

        logger.info(
            f"Verification complete for account {account_id}: total={stats['total_in_database']} "
            f"verified={stats['verified']} not_found={stats['not_found']} errors={len(stats['errors'])}"
        )
        return stats

    def _corroborate_domain(self, account_id: int, user_id: int, registrar: str,
                            domain: Domain, remote: RegistrarDomain, stats: Dict[str, Any]):
        name = domain.name
        if self._held_by_other_account(domain, account_id):
            stats['verified'] += 1
            return

        already_linked = (domain.verification_method == METHOD_REGISTRAR_API
                          and domain.registrar_account_id == account_id
                          and domain.is_verified)
        old_status = domain.verification_status
        try:
            if not already_linked:
                domain.mark_verified(METHOD_REGISTRAR_API, account_id)
            domain.last_seen_at = utc_now()
            domain.merge_registrar_metadata(
                remote.expiry_date, remote.auto_renew, remote.transfer_locked, remote.registrar_name
            )
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to verify {name}: {e}")
            stats['errors'].append(f"Failed to verify {name}: {e}")
            return

        stats['verified'] += 1
        if not already_linked:
            self.audit.log_verification(name, user_id, EVENT_VERIFIED, {
                'method': METHOD_REGISTRAR_API,
                'registrar_account_id': account_id,
                'old_status': old_status,
                'new_status': STATUS_VERIFIED,
                'reason': f'Verified via {registrar} API (verify-only)',
            })

    # ========================================================================
    # Multi-account operations
    # ========================================================================

    def _run_account(self, account: RegistrarAccount) -> Dict[str, Any]:
        """Sync or verify one account, converting failures into a result entry."""
        account_id = account.id
        mode = account.sync_mode
        try:
            if account.is_full_sync():
                stats = self.sync_registrar_account(account_id)
            else:
                stats = self.verify_existing_domains(account_id)
            return {'account_id': account_id, 'success': True, 'stats': stats, 'mode': mode}
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to sync account {account_id}: {e}")
            return {'account_id': account_id, 'success': False, 'error': str(e), 'mode': mode}

    def sync_all_accounts(self) -> Optional[List[Dict[str, Any]]]:
        """
        Sync every active account, stalest first.

        Single-flight: returns None immediately when another bulk run is in
        progress. The call is dropped, not queued.

        Returns:
            List of {account_id, success, stats|error, mode}, or None if skipped
        """
        if not self._bulk_lock.acquire(blocking=False):
            logger.warning("Bulk sync already in progress, skipping")
            return None

        try:
            accounts = (RegistrarAccount.query
                        .filter_by(connection_status=CONNECTION_ACTIVE)
                        .order_by(RegistrarAccount.last_sync_at.asc().nulls_first(),
                                  RegistrarAccount.id.asc())
                        .all())
            account_ids = [(account.id, account.registrar) for account in accounts]
            logger.info(f"Starting bulk sync of {len(account_ids)} active registrar account(s)")

            results = []
            for index, (account_id, registrar) in enumerate(account_ids):
                if index and self.account_delay > 0:
                    self.sleep(self.account_delay)
                account = db.session.get(RegistrarAccount, account_id)
                if account is None:
                    continue
                logger.info(f"Syncing account {account_id} ({registrar})")
                results.append(self._run_account(account))

            succeeded = sum(1 for result in results if result['success'])
            total_added = sum(result.get('stats', {}).get('added', 0) for result in results)
            total_removed = sum(result.get('stats', {}).get('removed', 0) for result in results)
            logger.info(
                f"Bulk sync complete: {len(results)} account(s), {succeeded} succeeded, "
                f"{len(results) - succeeded} failed, {total_added} added, {total_removed} revoked"
            )
            return results
        finally:
            self._bulk_lock.release()

    def _user_accounts(self, user_id: int) -> List[RegistrarAccount]:
        return (RegistrarAccount.query
                .filter_by(user_id=user_id, connection_status=CONNECTION_ACTIVE)
                .order_by(RegistrarAccount.id.asc())
                .all())

    def sync_user_domains(self, user_id: int) -> List[Dict[str, Any]]:
        """On-demand sync of one user's active accounts, each per its own mode.

        Does not take the bulk single-flight lock.
        """
        accounts = self._user_accounts(user_id)
        if not accounts:
            logger.info(f"No active registrar accounts for user {user_id}")
        return [self._run_account(account) for account in accounts]

    def verify_user_domains(self, user_id: int) -> List[Dict[str, Any]]:
        """On-demand verify-only pass over every active account of a user.

        Runs verify-only regardless of each account's sync_mode, so it can
        elevate but never revoke.
        """
        results = []
        for account in self._user_accounts(user_id):
            account_id = account.id
            try:
                stats = self.verify_existing_domains(account_id)
                results.append({'account_id': account_id, 'success': True, 'stats': stats,
                                'mode': SYNC_MODE_VERIFY_ONLY})
            except Exception as e:
                db.session.rollback()
                logger.error(f"Failed to verify account {account_id}: {e}")
                results.append({'account_id': account_id, 'success': False, 'error': str(e),
                                'mode': SYNC_MODE_VERIFY_ONLY})
        return results

    # ========================================================================
    # Connection lifecycle
    # ========================================================================

    def test_connection(self, account_id: int) -> Dict[str, Any]:
        """
        Test registrar credentials and persist connection_status.

        Never raises; any failure is returned as {success: False, message}.
        """
        try:
            self._get_account(account_id)
            adapter = self._build_adapter(account_id)
            try:
                result = adapter.test_connection()
            finally:
                adapter.close()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Connection test failed for account {account_id}: {e}")
            return {'success': False, 'message': str(e)}

        if result.success:
            self.credentials.update_connection_status(account_id, CONNECTION_ACTIVE, None)
        else:
            self.credentials.update_connection_status(account_id, CONNECTION_FAILED, result.message)

        logger.info(f"Connection test for account {account_id}: "
                    f"{'ok' if result.success else 'failed'} ({result.message})")
        return result.to_dict()

    def connect_account(self, user_id: int, registrar: str, api_key: str,
                        api_secret: Optional[str] = None,
                        sync_mode: str = SYNC_MODE_VERIFY_ONLY,
                        extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Store credentials, test them, and run the initial pass.

        Verify-only is the default so connecting never imports or revokes
        anything unless the user opts into full sync.

        Returns:
            {success, message, account_id?, hint?, domains_count?, stats?, sync_error?}
        """
        registrar = registrar.lower()
        if not is_supported(registrar):
            return {
                'success': False,
                'message': f"Registrar '{registrar}' is not supported yet",
                'supported_registrars': get_supported_registrars(),
            }

        account_id = self.credentials.store_credentials(
            user_id, registrar, api_key, api_secret, sync_mode, extra
        )
        logger.info(f"Connecting {registrar} for user {user_id} (account {account_id}, mode {sync_mode})")

        connection = self.test_connection(account_id)
        if not connection['success']:
            return {
                'success': False,
                'message': 'Failed to connect to registrar',
                'error': connection.get('message'),
                'hint': connection.get('hint'),
                'error_code': connection.get('error_code'),
                'account_id': account_id,
            }

        result: Dict[str, Any] = {
            'success': True,
            'account_id': account_id,
            'registrar': registrar,
            'sync_mode': sync_mode,
            'domains_count': (connection.get('account_info') or {}).get('domains_count', 0),
        }
        try:
            if sync_mode == SYNC_MODE_FULL:
                result['stats'] = self.sync_registrar_account(account_id)
                result['message'] = f'Successfully connected {registrar} account (sync complete)'
            else:
                result['stats'] = self.verify_existing_domains(account_id)
                result['message'] = f'Successfully connected {registrar} account (verification complete)'
        except Exception as e:
            db.session.rollback()
            logger.error(f"Initial pass failed for account {account_id}: {e}")
            result['message'] = f'Connected {registrar} account, but the initial pass failed'
            result['sync_error'] = str(e)
        return result

    def disconnect_account(self, user_id: int, account_id: int) -> Dict[str, Any]:
        """
        Disconnect a registrar account and clean up its inventory links.

        Auto-synced domains are deleted, the rest are soft-revoked; then the
        credentials row is removed.

        Raises:
            AccountNotFound: Account missing or owned by another user
        """
        account = RegistrarAccount.query.filter_by(id=account_id, user_id=user_id).first()
        if account is None:
            raise AccountNotFound(f"Registrar account {account_id} not found or access denied")
        registrar = account.registrar

        linked = Domain.query.filter_by(registrar_account_id=account_id).all()
        deleted = [domain.name for domain in linked if domain.auto_synced]
        revoked = [domain.name for domain in linked if not domain.auto_synced]
        for domain in linked:
            if domain.auto_synced:
                db.session.delete(domain)
            else:
                domain.soft_revoke()
        db.session.commit()

        for name in deleted:
            self.audit.log_verification(name, user_id, EVENT_REVOKED, {
                'method': METHOD_REGISTRAR_API,
                'registrar_account_id': account_id,
                'old_status': STATUS_VERIFIED,
                'new_status': 'deleted',
                'reason': f'Domain deleted after disconnecting {registrar} account (was auto-synced)',
            })
        for name in revoked:
            self.audit.log_verification(name, user_id, EVENT_REVOKED, {
                'method': METHOD_REGISTRAR_API,
                'registrar_account_id': account_id,
                'old_status': STATUS_VERIFIED,
                'new_status': STATUS_REVOKED,
                'reason': f'User disconnected {registrar} account (domain kept, verification revoked)',
            })

        self.credentials.delete_credentials(user_id, account_id)
        logger.info(f"Disconnected {registrar} account {account_id}: "
                    f"{len(deleted)} deleted, {len(revoked)} revoked")

        return {
            'success': True,
            'message': f'Successfully disconnected {registrar} account',
            'domains_deleted': len(deleted),
            'domains_revoked': len(revoked),
            'total_affected': len(deleted) + len(revoked),
        }

    # ========================================================================
    # Reporting
    # ========================================================================

    def get_account_stats(self, user_id: int, account_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Stored counters plus live linked/verified counts per account."""
        query = RegistrarAccount.query.filter_by(user_id=user_id)
        if account_id is not None:
            query = query.filter_by(id=account_id)
        accounts = query.order_by(RegistrarAccount.created_at.desc(), RegistrarAccount.id.desc()).all()

        stats = []
        for account in accounts:
            linked = Domain.query.filter_by(registrar_account_id=account.id)
            stats.append({
                'id': account.id,
                'registrar': account.registrar,
                'sync_mode': account.sync_mode,
                'connection_status': account.connection_status,
                'domains_count': account.domains_count,
                'verified_domains_count': account.verified_domains_count,
                'last_sync_at': account.last_sync_at.isoformat() if account.last_sync_at else None,
                'last_sync_status': account.last_sync_status,
                'total_domains': linked.count(),
                'verified_domains': linked.filter_by(is_verified=True).count(),
            })
        return stats

    def get_sync_history(self, account_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        """Sync history rows for an account, newest first."""
        rows = (SyncHistory.query
                .filter_by(registrar_account_id=account_id)
                .order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc())
                .limit(limit)
                .all())
        return [row.to_dict() for row in rows]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
