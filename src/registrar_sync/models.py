"""
Database models for registrar-sync (Account → Domains → Audit architecture)

This module defines the persisted state of the sync/verification core:
- RegistrarAccount: One registrar credential set owned by a user
- Domain: One domain name in a user's inventory, with its trust level
- SyncHistory: Append-only record of every sync/verify run
- VerificationEvent: Append-only audit trail of verify/revoke decisions
- VerificationToken: DNS TXT challenge per (domain, user)

Verification levels (highest confidence first):
  registrar_api (3) > nameserver (2) > dns_txt (1) > manual (0)

Invariant: Domain.registrar_account_id set ⇒ verification_method == 'registrar_api'.
Users are owned by the host application; user_id is a plain integer here.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import CheckConstraint, UniqueConstraint

logger = logging.getLogger(__name__)

db = SQLAlchemy()

# Connection lifecycle of a registrar account
CONNECTION_PENDING = 'pending'
CONNECTION_ACTIVE = 'active'
CONNECTION_FAILED = 'failed'
CONNECTION_DISCONNECTED = 'disconnected'
CONNECTION_STATUSES = frozenset({
    CONNECTION_PENDING, CONNECTION_ACTIVE, CONNECTION_FAILED, CONNECTION_DISCONNECTED,
})

# Reconciliation modes
SYNC_MODE_FULL = 'full'
SYNC_MODE_VERIFY_ONLY = 'verify_only'
SYNC_MODES = frozenset({SYNC_MODE_FULL, SYNC_MODE_VERIFY_ONLY})

# Verification methods and their trust levels
METHOD_REGISTRAR_API = 'registrar_api'
METHOD_NAMESERVER = 'nameserver'
METHOD_DNS_TXT = 'dns_txt'
METHOD_MANUAL = 'manual'
VERIFICATION_LEVELS = {
    METHOD_REGISTRAR_API: 3,
    METHOD_NAMESERVER: 2,
    METHOD_DNS_TXT: 1,
    METHOD_MANUAL: 0,
}

# Domain.verification_status values
STATUS_VERIFIED = 'verified'
STATUS_UNVERIFIED = 'unverified'
STATUS_REVOKED = 'revoked'

# VerificationEvent.event_type values
EVENT_VERIFIED = 'verified'
EVENT_REVOKED = 'revoked'
EVENT_REGISTRAR_DISCONNECTED = 'registrar_disconnected'

# Placeholders for rows imported by a full sync (market value is unknown here)
DEFAULT_DOMAIN_VALUE = 0
DEFAULT_DOMAIN_CATEGORY = 'Other'
DEFAULT_DOMAIN_STATUS = 'Available'


def utc_now() -> datetime:
    """Naive UTC timestamp (all DateTime columns store UTC without tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RegistrarAccount(db.Model):
    """
    Registrar account (credential instance).

    Created on connect, mutated by every sync/test attempt. The credential
    blob is opaque to this package: the credential store writes and reads it.
    """
    __tablename__ = 'registrar_accounts'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    registrar = db.Column(db.String(32), nullable=False, index=True)

    credentials = db.Column(db.Text, nullable=False)

    connection_status = db.Column(db.String(20), nullable=False, default=CONNECTION_PENDING, index=True)
    sync_mode = db.Column(db.String(20), nullable=False, default=SYNC_MODE_VERIFY_ONLY)

    # Last run bookkeeping
    last_sync_at = db.Column(db.DateTime, index=True)
    last_sync_status = db.Column(db.String(20))
    last_sync_error = db.Column(db.Text)
    domains_count = db.Column(db.Integer, nullable=False, default=0)
    verified_domains_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint('user_id', 'registrar', name='uq_registrar_account_user_registrar'),
        CheckConstraint(
            "connection_status IN ('pending', 'active', 'failed', 'disconnected')",
            name='check_registrar_connection_status',
        ),
        CheckConstraint("sync_mode IN ('full', 'verify_only')", name='check_registrar_sync_mode'),
    )

    def is_full_sync(self) -> bool:
        return self.sync_mode == SYNC_MODE_FULL

    def to_dict(self) -> dict[str, Any]:
        """Public view (never includes credentials)."""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'registrar': self.registrar,
            'connection_status': self.connection_status,
            'sync_mode': self.sync_mode,
            'last_sync_at': self.last_sync_at.isoformat() if self.last_sync_at else None,
            'last_sync_status': self.last_sync_status,
            'last_sync_error': self.last_sync_error,
            'domains_count': self.domains_count,
            'verified_domains_count': self.verified_domains_count,
        }

    def __repr__(self):
        return f'<RegistrarAccount {self.id} {self.registrar} user={self.user_id} {self.connection_status}>'


class Domain(db.Model):
    """
    Domain inventory row.

    Rows are created by sync import, by verification success, or by the
    user (host application). `auto_synced` records provenance: rows a full
    sync imported are deleted when the registrar stops reporting them,
    every other row is only soft-revoked.
    """
    __tablename__ = 'domains'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    # Listing fields owned by other subsystems; sync only sets placeholders
    status = db.Column(db.String(30), nullable=False, default=DEFAULT_DOMAIN_STATUS)
    value = db.Column(db.Numeric(12, 2), nullable=False, default=DEFAULT_DOMAIN_VALUE)
    category = db.Column(db.String(64), nullable=False, default=DEFAULT_DOMAIN_CATEGORY)

    # Verification
    verification_method = db.Column(db.String(20))
    verification_level = db.Column(db.Integer, nullable=False, default=0)
    verification_status = db.Column(db.String(20), nullable=False, default=STATUS_UNVERIFIED)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    verified_at = db.Column(db.DateTime)

    # Registrar linkage (weak reference, not ownership)
    registrar_account_id = db.Column(
        db.Integer, db.ForeignKey('registrar_accounts.id', ondelete='SET NULL'), index=True
    )
    auto_synced = db.Column(db.Boolean, nullable=False, default=False)
    last_seen_at = db.Column(db.DateTime)

    # Mirrored registrar metadata (NULL = unknown)
    expiry_date = db.Column(db.Date)
    auto_renew = db.Column(db.Boolean)
    transfer_locked = db.Column(db.Boolean)
    registrar_name = db.Column(db.String(64))

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    registrar_account = db.relationship('RegistrarAccount')

    __table_args__ = (
        CheckConstraint('verification_level BETWEEN 0 AND 3', name='check_domain_verification_level'),
        CheckConstraint(
            "verification_method IS NULL OR verification_method IN "
            "('registrar_api', 'dns_txt', 'nameserver', 'manual')",
            name='check_domain_verification_method',
        ),
        CheckConstraint(
            "registrar_account_id IS NULL OR verification_method = 'registrar_api'",
            name='check_domain_registrar_link_method',
        ),
    )

    def mark_verified(self, method: str, registrar_account_id: Optional[int] = None):
        """Set verification fields for a successful proof of ownership."""
        now = utc_now()
        self.verification_method = method
        self.verification_level = VERIFICATION_LEVELS[method]
        self.verification_status = STATUS_VERIFIED
        self.is_verified = True
        self.verified_at = now
        self.registrar_account_id = registrar_account_id if method == METHOD_REGISTRAR_API else None
        self.updated_at = now

    def soft_revoke(self):
        """Drop registrar evidence but keep the row."""
        self.registrar_account_id = None
        self.verification_method = None
        self.verification_level = 1
        self.verification_status = STATUS_REVOKED
        self.is_verified = False
        self.updated_at = utc_now()

    def merge_registrar_metadata(self, expiry_date: Optional[date] = None,
                                 auto_renew: Optional[bool] = None,
                                 transfer_locked: Optional[bool] = None,
                                 registrar_name: Optional[str] = None) -> bool:
        """Coalesce registrar-reported metadata into this row.

        None means "registrar did not say" and never overwrites a known value.

        Returns:
            True if any field changed
        """
        changed = False
        for field, value in (
            ('expiry_date', expiry_date),
            ('auto_renew', auto_renew),
            ('transfer_locked', transfer_locked),
            ('registrar_name', registrar_name),
        ):
            if value is not None and getattr(self, field) != value:
                setattr(self, field, value)
                changed = True
        return changed

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'user_id': self.user_id,
            'verification_method': self.verification_method,
            'verification_level': self.verification_level,
            'verification_status': self.verification_status,
            'is_verified': self.is_verified,
            'verified_at': self.verified_at.isoformat() if self.verified_at else None,
            'registrar_account_id': self.registrar_account_id,
            'auto_synced': self.auto_synced,
            'expiry_date': self.expiry_date.isoformat() if self.expiry_date else None,
            'auto_renew': self.auto_renew,
            'transfer_locked': self.transfer_locked,
            'registrar_name': self.registrar_name,
        }

    def __repr__(self):
        return f'<Domain {self.name} level={self.verification_level} method={self.verification_method}>'


class SyncHistory(db.Model):
    """
    Sync history (per-run audit, append-only).

    Written once per sync/verify invocation, never updated.
    """
    __tablename__ = 'registrar_sync_history'

    id = db.Column(db.Integer, primary_key=True)
    registrar_account_id = db.Column(db.Integer, nullable=False, index=True)
    sync_mode = db.Column(db.String(20))
    sync_status = db.Column(db.String(20), nullable=False, index=True)  # 'success', 'partial', 'failed'

    domains_found = db.Column(db.Integer, nullable=False, default=0)
    domains_added = db.Column(db.Integer, nullable=False, default=0)
    domains_updated = db.Column(db.Integer, nullable=False, default=0)
    domains_removed = db.Column(db.Integer, nullable=False, default=0)
    domains_not_found = db.Column(db.Integer, nullable=False, default=0)
    errors_count = db.Column(db.Integer, nullable=False, default=0)

    error_message = db.Column(db.Text)
    api_response_time_ms = db.Column(db.Integer)

    started_at = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)
    completed_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'registrar_account_id': self.registrar_account_id,
            'sync_mode': self.sync_mode,
            'sync_status': self.sync_status,
            'domains_found': self.domains_found,
            'domains_added': self.domains_added,
            'domains_updated': self.domains_updated,
            'domains_removed': self.domains_removed,
            'domains_not_found': self.domains_not_found,
            'errors_count': self.errors_count,
            'error_message': self.error_message,
            'api_response_time_ms': self.api_response_time_ms,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f'<SyncHistory account={self.registrar_account_id} {self.sync_status} {self.started_at}>'


class VerificationEvent(db.Model):
    """
    Verification audit trail (append-only).

    Never updated or deleted by this package.
    """
    __tablename__ = 'domain_verification_log'

    id = db.Column(db.Integer, primary_key=True)
    domain_name = db.Column(db.String(255), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    event_type = db.Column(db.String(30), nullable=False, index=True)  # 'verified', 'revoked', ...
    verification_method = db.Column(db.String(20))
    registrar_account_id = db.Column(db.Integer)  # no FK: the trail outlives the account
    old_status = db.Column(db.String(20))
    new_status = db.Column(db.String(20))
    reason = db.Column(db.Text)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.Text)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'domain_name': self.domain_name,
            'user_id': self.user_id,
            'event_type': self.event_type,
            'verification_method': self.verification_method,
            'registrar_account_id': self.registrar_account_id,
            'old_status': self.old_status,
            'new_status': self.new_status,
            'reason': self.reason,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<VerificationEvent {self.event_type} {self.domain_name} {self.created_at}>'


class VerificationToken(db.Model):
    """
    DNS challenge token for one (domain, user) pair.

    Re-issuing replaces the previous token; only the latest is valid.
    """
    __tablename__ = 'domain_verification_tokens'

    id = db.Column(db.Integer, primary_key=True)
    domain_name = db.Column(db.String(255), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    token = db.Column(db.String(100), nullable=False)
    method = db.Column(db.String(30), nullable=False, default=METHOD_DNS_TXT)

    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint('domain_name', 'user_id', name='uq_verification_token_domain_user'),
    )

    def is_expired(self) -> bool:
        """Check if token has expired."""
        return utc_now() > self.expires_at

    @classmethod
    def cleanup_expired(cls) -> int:
        """Delete expired tokens (housekeeping)."""
        expired = cls.query.filter(cls.expires_at < utc_now()).all()
        for token in expired:
            db.session.delete(token)
        if expired:
            db.session.commit()
            logger.info(f"Cleaned up {len(expired)} expired verification tokens")
        return len(expired)

    def __repr__(self):
        return f'<VerificationToken {self.domain_name} user={self.user_id}>'
