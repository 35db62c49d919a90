"""
Tests for the file + database audit logger.
"""
from registrar_sync.audit_logger import AuditLogger, get_audit_logger
from registrar_sync.models import SyncHistory, VerificationEvent, db


def test_log_sync_maps_full_stats(app):
    audit = AuditLogger()

    audit.log_sync(7, 'partial', {'found': 5, 'added': 2, 'updated': 2, 'removed': 1, 'errors': ['x']},
                   error='1 domain(s) failed', sync_mode='full', duration_ms=42)

    row = SyncHistory.query.one()
    assert row.registrar_account_id == 7
    assert row.sync_status == 'partial'
    assert row.domains_found == 5
    assert row.domains_added == 2
    assert row.domains_updated == 2
    assert row.domains_removed == 1
    assert row.errors_count == 1
    assert row.error_message == '1 domain(s) failed'
    assert row.api_response_time_ms == 42


def test_log_sync_maps_verify_only_stats(app):
    AuditLogger().log_sync(3, 'success', {'total_in_database': 4, 'verified': 3, 'not_found': 1, 'errors': []},
                           sync_mode='verify_only')

    row = SyncHistory.query.one()
    assert row.domains_found == 4
    assert row.domains_updated == 3
    assert row.domains_not_found == 1
    assert row.domains_added == 0


def test_file_log(app, tmp_path):
    log_path = tmp_path / 'audit' / 'registrar_audit.log'
    audit = AuditLogger(log_file_path=str(log_path), enable_db=False)

    audit.log_verification('example.com', 1, 'revoked', {
        'method': 'registrar_api', 'registrar_account_id': 9, 'reason': 'Domain no longer found at registrar (godaddy)',
    })
    audit.log_sync(9, 'failed', {'found': 0, 'errors': ['boom']}, error='boom', sync_mode='full')
    for handler in audit.file_logger.handlers:
        handler.flush()

    content = log_path.read_text()
    assert 'VERIFICATION event=revoked domain=example.com user_id=1 method=registrar_api account=9' in content
    assert 'SYNC account=9 mode=full result=FAILED found=0' in content
    assert VerificationEvent.query.count() == 0


def test_history_newest_first(app):
    audit = AuditLogger()
    for event_type in ('verified', 'revoked', 'verified'):
        audit.log_verification('example.com', 1, event_type)
    audit.log_verification('other.com', 1, 'verified')

    history = audit.get_verification_history('example.com')

    assert [entry['event_type'] for entry in history] == ['verified', 'revoked', 'verified']
    assert history[0]['id'] > history[-1]['id']
    assert len(audit.get_verification_history('example.com', limit=1)) == 1


def test_database_failure_is_swallowed(app, monkeypatch):
    audit = AuditLogger()

    def broken_commit(self):
        raise RuntimeError('database is locked')

    monkeypatch.setattr(type(db.session), 'commit', broken_commit)

    audit.log_verification('example.com', 1, 'verified')
    audit.log_sync(1, 'success', {'found': 1, 'errors': []})


def test_get_audit_logger_reads_config(app, monkeypatch, tmp_path):
    log_path = tmp_path / 'from_env.log'
    monkeypatch.setenv('AUDIT_LOG_FILE', str(log_path))

    audit = get_audit_logger()

    assert audit.log_file_path == str(log_path)
    assert audit.file_logger is not None
