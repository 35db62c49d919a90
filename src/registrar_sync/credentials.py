"""
Registrar credential store.

Persists one credential set per (user, registrar) on RegistrarAccount and
hands decrypted credentials to the sync engine. Encryption at rest belongs
to the host application: pass any object with Fernet-style
`encrypt(bytes) -> bytes` / `decrypt(bytes) -> bytes` as `cipher`.
Without a cipher the blob is stored as plain JSON.
"""
import json
import logging
from typing import Any, Dict, Optional

from .models import (
    CONNECTION_PENDING,
    CONNECTION_STATUSES,
    EVENT_REGISTRAR_DISCONNECTED,
    SYNC_MODE_VERIFY_ONLY,
    SYNC_MODES,
    RegistrarAccount,
    db,
    utc_now,
)

logger = logging.getLogger(__name__)


class CredentialError(Exception):
    """Credentials are missing, unreadable or invalid."""
    pass


class CredentialStore:
    """Database-backed credential collaborator for the sync engine."""

    def __init__(self, cipher: Any = None, audit: Any = None):
        """
        Args:
            cipher: Optional Fernet-compatible object for the credential blob
            audit: Optional AuditLogger used to record disconnects
        """
        self.cipher = cipher
        self.audit = audit

    def _seal(self, payload: Dict[str, Any]) -> str:
        raw = json.dumps(payload)
        if self.cipher is None:
            return raw
        return self.cipher.encrypt(raw.encode('utf-8')).decode('ascii')

    def _unseal(self, blob: str) -> Dict[str, Any]:
        try:
            raw = blob if self.cipher is None else self.cipher.decrypt(blob.encode('ascii')).decode('utf-8')
            data = json.loads(raw)
        except Exception as e:
            raise CredentialError(f"Failed to decode registrar credentials: {e}") from e
        if not isinstance(data, dict):
            raise CredentialError("Registrar credentials are not a JSON object")
        return data

    def store_credentials(self, user_id: int, registrar: str, api_key: str,
                          api_secret: Optional[str] = None,
                          sync_mode: str = SYNC_MODE_VERIFY_ONLY,
                          extra: Optional[Dict[str, Any]] = None) -> int:
        """Store (or replace) credentials for a user's registrar account.

        Re-connecting the same registrar reuses the account row and resets
        it to 'pending'.

        Returns:
            RegistrarAccount id
        """
        if not api_key:
            raise CredentialError("api_key is required")
        if sync_mode not in SYNC_MODES:
            raise CredentialError(f"Invalid sync mode: {sync_mode}")

        registrar = registrar.lower()
        payload: Dict[str, Any] = dict(extra or {})
        payload.update({'api_key': api_key, 'api_secret': api_secret})

        account = RegistrarAccount.query.filter_by(user_id=user_id, registrar=registrar).first()
        if account is None:
            account = RegistrarAccount(user_id=user_id, registrar=registrar)
            db.session.add(account)

        account.credentials = self._seal(payload)
        account.connection_status = CONNECTION_PENDING
        account.sync_mode = sync_mode
        account.updated_at = utc_now()
        db.session.commit()

        logger.info(f"Credentials stored for {registrar} (account {account.id}, mode {sync_mode})")
        return account.id

    def get_credentials(self, account_id: int) -> Dict[str, Any]:
        """Return decrypted credentials plus the registrar code.

        Raises:
            CredentialError: If the account does not exist or cannot be decoded
        """
        account = db.session.get(RegistrarAccount, account_id)
        if account is None:
            raise CredentialError(f"Registrar account {account_id} not found")

        credentials = self._unseal(account.credentials)
        credentials['registrar'] = account.registrar
        return credentials

    def update_connection_status(self, account_id: int, status: str, error: Optional[str] = None):
        """Persist connection status (and the error text, cleared on success)."""
        if status not in CONNECTION_STATUSES:
            raise ValueError(f"Invalid connection status: {status}")
        try:
            account = db.session.get(RegistrarAccount, account_id)
            if account is None:
                logger.warning(f"Cannot update status of missing registrar account {account_id}")
                return
            account.connection_status = status
            account.last_sync_error = error
            account.updated_at = utc_now()
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error updating connection status for account {account_id}: {e}")

    def delete_credentials(self, user_id: int, account_id: int) -> bool:
        """Delete a user's registrar account row.

        Returns:
            True if a row owned by user_id was deleted
        """
        account = RegistrarAccount.query.filter_by(id=account_id, user_id=user_id).first()
        if account is None:
            return False

        registrar = account.registrar
        db.session.delete(account)
        db.session.commit()

        if self.audit is not None:
            self.audit.log_verification(
                'N/A', user_id, EVENT_REGISTRAR_DISCONNECTED,
                {'registrar_account_id': account_id,
                 'reason': f'User disconnected {registrar} registrar account'},
            )

        logger.info(f"Deleted {registrar} credentials for user {user_id}")
        return True
