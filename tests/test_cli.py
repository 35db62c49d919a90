"""
Tests for the registrar-sync command line.
"""
import json

import pytest

from registrar_sync import cli


@pytest.fixture
def run_cli(tmp_path, monkeypatch, capsys):
    """Run main() against a throwaway SQLite file and parse its JSON output."""
    monkeypatch.setenv('REGISTRAR_SYNC_DB_PATH', str(tmp_path / 'cli.db'))
    monkeypatch.delenv('DATABASE_URL', raising=False)
    monkeypatch.setattr(cli, 'setup_logging', lambda level=None, log_file=None: None)

    def _run(*argv):
        code = cli.main(list(argv))
        out = capsys.readouterr().out
        return code, json.loads(out) if out.strip() else None

    return _run


def test_registrars(run_cli):
    code, output = run_cli('registrars')

    assert code == 0
    assert {entry['code'] for entry in output} >= {'godaddy', 'cloudflare', 'namecheap'}


def test_sync_all_without_accounts(run_cli):
    assert run_cli('sync-all') == (0, [])


def test_unknown_account_exit_code(run_cli):
    code, output = run_cli('sync-account', '999')

    assert code == 2
    assert output is None


def test_connect_unsupported_registrar(run_cli):
    code, output = run_cli('connect', '42', 'dynadot', '--api-key', 'key')

    assert code == 1
    assert output['success'] is False
    assert 'supported_registrars' in output


def test_instructions_then_can_perform(run_cli):
    code, instructions = run_cli('instructions', 'Example.com', '42')

    assert code == 0
    assert instructions['domain'] == 'example.com'
    assert instructions['token'].startswith('domain-verify-')

    code, gate = run_cli('can-perform', 'example.com', '42', '--level', '2')
    assert code == 1
    assert gate['allowed'] is False


def test_cleanup_tokens(run_cli):
    assert run_cli('cleanup-tokens') == (0, {'deleted': 0})


def test_history_of_unknown_account_is_empty(run_cli):
    assert run_cli('history', '5', '--limit', '3') == (0, [])


def test_parser_rejects_unknown_mode():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(['connect', '1', 'godaddy', '--api-key', 'k', '--mode', 'sometimes'])


def test_connect_extras_are_parsed():
    args = cli.build_parser().parse_args([
        'connect', '1', 'namecheap', '--api-key', 'user', '--api-secret', 'key',
        '--username', 'nc-user', '--client-ip', '203.0.113.5', '--mode', 'full',
    ])

    assert args.username == 'nc-user'
    assert args.client_ip == '203.0.113.5'
    assert args.mode == 'full'
    assert args.cf_account_id is None


def test_sync_all_reports_skip(app, services, capsys):
    args = cli.build_parser().parse_args(['sync-all'])

    services.sync_engine._bulk_lock.acquire()
    try:
        code = cli.run_command(args, app)
    finally:
        services.sync_engine._bulk_lock.release()

    assert code == 1
    assert capsys.readouterr().out == ''


def test_sync_account_through_run_command(app, services, registrar, make_account, capsys):
    account_id = make_account()
    registrar.domains = ['a.com']
    args = cli.build_parser().parse_args(['sync-account', str(account_id)])

    code = cli.run_command(args, app)

    assert code == 0
    assert json.loads(capsys.readouterr().out)['added'] == 1


def test_scheduler_command_uses_app_scheduler(app, services, monkeypatch):
    started = []

    def fake_start():
        started.append(services.scheduler)
        return True

    monkeypatch.setattr(services.scheduler, 'start', fake_start)
    args = cli.build_parser().parse_args(['scheduler'])

    assert cli.run_command(args, app) == 0
    assert started == [services.scheduler]
