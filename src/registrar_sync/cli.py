"""
registrar-sync command line.

Runs the sync and verification services against the configured database:

    registrar-sync sync-all
    registrar-sync connect 42 godaddy --api-key KEY --api-secret SECRET --mode full
    registrar-sync verify-domain example.com 42 --token domain-verify-...
    registrar-sync scheduler

Results are printed as JSON.
"""
import argparse
import json
import logging
import sys
from typing import Any, List, Optional

from .adapters.registry import get_supported_registrars
from .adapters.base import RegistrarError
from .app import create_app, get_services
from .config_defaults import get_default
from .credentials import CredentialError
from .models import SYNC_MODES, SYNC_MODE_VERIFY_ONLY
from .sync_engine import AccountNotFound

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None):
    """Configure the root logger (stream handler plus optional file)."""
    level_name = (level or get_default('LOG_LEVEL', 'INFO')).upper()
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def _print(data: Any):
    print(json.dumps(data, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='registrar-sync',
        description='Sync domain inventories with registrars and verify domain ownership',
    )
    parser.add_argument('--log-level', help='Log level (default: LOG_LEVEL or INFO)')
    parser.add_argument('--log-file', help='Also write logs to this file')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('registrars', help='List supported registrars')
    sub.add_parser('sync-all', help='Sync every active account (single-flight)')

    for name, help_text in (
        ('sync-account', 'Sync one account per its sync mode'),
        ('verify-account', 'Verify-only pass for one account'),
        ('test', 'Test account credentials and update connection status'),
        ('history', 'Show sync history for an account'),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument('account_id', type=int)
        if name == 'history':
            cmd.add_argument('--limit', type=int, default=50)

    for name, help_text in (
        ('sync-user', "Sync all of a user's active accounts"),
        ('verify-user', "Verify-only pass over all of a user's active accounts"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument('user_id', type=int)

    stats = sub.add_parser('stats', help='Account statistics for a user')
    stats.add_argument('user_id', type=int)
    stats.add_argument('--account-id', type=int)

    connect = sub.add_parser('connect', help='Connect a registrar account')
    connect.add_argument('user_id', type=int)
    connect.add_argument('registrar')
    connect.add_argument('--api-key', required=True)
    connect.add_argument('--api-secret')
    connect.add_argument('--mode', choices=sorted(SYNC_MODES), default=SYNC_MODE_VERIFY_ONLY)
    connect.add_argument('--username', help='Namecheap API user')
    connect.add_argument('--client-ip', help='Namecheap whitelisted client IP')
    connect.add_argument('--account-id', dest='cf_account_id', help='Cloudflare account id')

    disconnect = sub.add_parser('disconnect', help='Disconnect a registrar account')
    disconnect.add_argument('user_id', type=int)
    disconnect.add_argument('account_id', type=int)

    verify = sub.add_parser('verify-domain', help='Run the verification method chain')
    verify.add_argument('domain')
    verify.add_argument('user_id', type=int)
    verify.add_argument('--token', help='DNS TXT challenge token')
    verify.add_argument('--nameserver', action='append', dest='nameservers',
                        help='Expected nameserver (repeatable)')

    instructions = sub.add_parser('instructions', help='Issue a token and print verification instructions')
    instructions.add_argument('domain')
    instructions.add_argument('user_id', type=int)

    can = sub.add_parser('can-perform', help='Check the verification level gate')
    can.add_argument('domain')
    can.add_argument('user_id', type=int)
    can.add_argument('--level', type=int, default=1)

    sub.add_parser('cleanup-tokens', help='Delete expired verification tokens')
    sub.add_parser('scheduler', help='Run the hourly/daily sync scheduler in the foreground')

    return parser


def run_command(args: argparse.Namespace, app) -> int:
    services = get_services(app)
    engine = services.sync_engine
    verification = services.verification
    command = args.command

    if command == 'registrars':
        _print(get_supported_registrars())
        return 0

    if command == 'scheduler':
        scheduler = services.scheduler
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            scheduler.stop()
        return 0

    with app.app_context():
        if command == 'sync-all':
            results = engine.sync_all_accounts()
            if results is None:
                logger.warning("Bulk sync already in progress")
                return 1
            _print(results)
        elif command == 'sync-account':
            _print(engine.sync_registrar_account(args.account_id))
        elif command == 'verify-account':
            _print(engine.verify_existing_domains(args.account_id))
        elif command == 'sync-user':
            _print(engine.sync_user_domains(args.user_id))
        elif command == 'verify-user':
            _print(engine.verify_user_domains(args.user_id))
        elif command == 'test':
            result = engine.test_connection(args.account_id)
            _print(result)
            return 0 if result['success'] else 1
        elif command == 'history':
            _print(engine.get_sync_history(args.account_id, limit=args.limit))
        elif command == 'stats':
            _print(engine.get_account_stats(args.user_id, args.account_id))
        elif command == 'connect':
            extra = {}
            if args.username:
                extra['username'] = args.username
            if args.client_ip:
                extra['client_ip'] = args.client_ip
            if args.cf_account_id:
                extra['account_id'] = args.cf_account_id
            result = engine.connect_account(args.user_id, args.registrar, args.api_key,
                                            args.api_secret, args.mode, extra or None)
            _print(result)
            return 0 if result['success'] else 1
        elif command == 'disconnect':
            _print(engine.disconnect_account(args.user_id, args.account_id))
        elif command == 'verify-domain':
            result = verification.verify_domain(args.domain, args.user_id,
                                                 token=args.token, nameservers=args.nameservers)
            _print(result)
            return 0 if result['success'] else 1
        elif command == 'instructions':
            _print(verification.get_verification_instructions(args.domain, args.user_id))
        elif command == 'can-perform':
            result = verification.can_perform_action(args.domain, args.user_id, args.level)
            _print(result)
            return 0 if result['allowed'] else 1
        elif command == 'cleanup-tokens':
            _print({'deleted': verification.cleanup_expired_tokens()})
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    app = create_app(blocking_scheduler=args.command == 'scheduler')
    try:
        return run_command(args, app)
    except AccountNotFound as e:
        logger.error(str(e))
        return 2
    except (RegistrarError, CredentialError) as e:
        logger.error(f"Registrar operation failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
