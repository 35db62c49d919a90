"""
Audit logging for registrar-sync
Logs to both file and database
"""
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config_defaults import get_default
from .models import SyncHistory, VerificationEvent, db, utc_now

logger = logging.getLogger(__name__)

AUDIT_LOGGER_NAME = 'registrar_sync_audit'
AUDIT_LINE_FORMAT = '%(asctime)s - %(message)s'
AUDIT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class AuditLogger:
    """Combined file and database audit logger.

    Every public method is safe to call from inside a sync pass: failures
    are logged and swallowed so auditing can never abort reconciliation.
    """

    def __init__(self, log_file_path: Optional[str] = None, enable_db: bool = True):
        """
        Args:
            log_file_path: Audit file (None keeps the trail in the database only)
            enable_db: Persist VerificationEvent/SyncHistory rows
        """
        self.log_file_path = log_file_path
        self.enable_db = enable_db
        self.file_logger = self._open_file_logger(log_file_path) if log_file_path else None

    @staticmethod
    def _open_file_logger(path: str) -> Optional[logging.Logger]:
        """Dedicated non-propagating logger writing one line per event.

        No rotation: audit files are retained indefinitely.
        """
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            handler = logging.FileHandler(path)
            handler.setLevel(logging.INFO)
            handler.setFormatter(logging.Formatter(AUDIT_LINE_FORMAT, datefmt=AUDIT_DATE_FORMAT))

            audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
            audit_logger.setLevel(logging.INFO)
            audit_logger.propagate = False
            for old in list(audit_logger.handlers):
                audit_logger.removeHandler(old)
                old.close()
            audit_logger.addHandler(handler)
        except Exception as e:
            logger.error(f"Failed to setup file audit logging: {e}")
            return None

        logger.info(f"File audit logging enabled: {path}")
        return audit_logger

    def log_verification(self, domain: str, user_id: int, event_type: str,
                         details: Optional[Dict[str, Any]] = None):
        """
        Record a verification decision (verified, revoked, registrar_disconnected)

        Args:
            domain: Domain name ('N/A' for account-level events)
            user_id: Owning user
            event_type: Event type
            details: Optional keys: method, registrar_account_id, old_status,
                new_status, reason, ip_address, user_agent
        """
        details = details or {}

        if self.file_logger:
            log_msg = f"VERIFICATION event={event_type} domain={domain} user_id={user_id}"
            if details.get('method'):
                log_msg += f" method={details['method']}"
            if details.get('registrar_account_id'):
                log_msg += f" account={details['registrar_account_id']}"
            if details.get('reason'):
                log_msg += f" reason='{details['reason']}'"
            self.file_logger.info(log_msg)

        if self.enable_db:
            try:
                db.session.add(VerificationEvent(
                    domain_name=domain,
                    user_id=user_id,
                    event_type=event_type,
                    verification_method=details.get('method'),
                    registrar_account_id=details.get('registrar_account_id'),
                    old_status=details.get('old_status'),
                    new_status=details.get('new_status'),
                    reason=details.get('reason'),
                    ip_address=details.get('ip_address'),
                    user_agent=details.get('user_agent'),
                ))
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.error(f"Failed to log verification event to database: {e}")

    def log_sync(self, account_id: int, status: str, stats: Optional[Dict[str, Any]] = None,
                 error: Optional[str] = None, sync_mode: Optional[str] = None,
                 started_at: Optional[datetime] = None, duration_ms: Optional[int] = None):
        """
        Append one SyncHistory row for a sync/verify run

        Args:
            account_id: Registrar account id
            status: 'success', 'partial' or 'failed'
            stats: Full-sync stats (found/added/updated/removed/errors) or
                verify-only stats (total_in_database/verified/not_found/errors)
            error: Optional error message
            sync_mode: Mode that ran
            started_at: When the run started (defaults to now)
            duration_ms: Wall-clock duration including the registrar call
        """
        stats = stats or {}
        errors = stats.get('errors') or []

        if self.file_logger:
            result = status.upper()
            log_msg = f"SYNC account={account_id} mode={sync_mode or 'unknown'} result={result}"
            for key in ('found', 'added', 'updated', 'removed', 'verified', 'not_found'):
                if key in stats:
                    log_msg += f" {key}={stats[key]}"
            if error:
                log_msg += f" error='{error}'"
            self.file_logger.info(log_msg)

        if self.enable_db:
            try:
                db.session.add(SyncHistory(
                    registrar_account_id=account_id,
                    sync_mode=sync_mode,
                    sync_status=status,
                    domains_found=stats.get('found', stats.get('total_in_database', 0)),
                    domains_added=stats.get('added', 0),
                    domains_updated=stats.get('updated', stats.get('verified', 0)),
                    domains_removed=stats.get('removed', 0),
                    domains_not_found=stats.get('not_found', 0),
                    errors_count=len(errors),
                    error_message=error,
                    api_response_time_ms=duration_ms,
                    started_at=started_at or utc_now(),
                    completed_at=utc_now(),
                ))
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.error(f"Failed to log sync history to database: {e}")

    def get_verification_history(self, domain: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Verification events for a domain, newest first."""
        events = (VerificationEvent.query
                  .filter_by(domain_name=domain)
                  .order_by(VerificationEvent.created_at.desc(), VerificationEvent.id.desc())
                  .limit(limit)
                  .all())
        return [event.to_dict() for event in events]


def get_audit_logger(log_file_path: Optional[str] = None,
                     enable_db: bool = True) -> AuditLogger:
    """
    Create and return an AuditLogger instance

    Args:
        log_file_path: Path to log file (defaults to AUDIT_LOG_FILE; unset disables file logging)
        enable_db: Whether to enable database logging

    Returns:
        AuditLogger instance
    """
    if log_file_path is None:
        log_file_path = get_default('AUDIT_LOG_FILE')

    return AuditLogger(log_file_path=log_file_path, enable_db=enable_db)
