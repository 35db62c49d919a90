"""
Tests for DomainVerificationEngine: method chain, token lifecycle, gating.
"""
from datetime import timedelta

import dns.resolver

from registrar_sync.models import (
    Domain,
    VerificationEvent,
    VerificationToken,
    db,
    utc_now,
)
from registrar_sync.verification import DomainVerificationEngine


def get_domain(name):
    return Domain.query.filter_by(name=name).first()


def issue_token(services, domain, user_id=1):
    return services.verification.get_verification_instructions(domain, user_id)['token']


class TestMethodChain:

    def test_registrar_api_wins_without_dns(self, services, resolver, make_account, make_domain):
        account_id = make_account()
        make_domain('linked.com', account_id=account_id)

        result = services.verification.verify_domain('linked.com', 1)

        assert result['success'] is True
        assert result['verification']['method'] == 'registrar_api'
        assert result['verification']['registrar'] == 'godaddy'
        assert result['domain']['verification_level'] == 3
        assert result['domain']['registrar_account_id'] == account_id
        assert resolver.queries == []

    def test_dns_txt_with_issued_token(self, services, resolver):
        token = issue_token(services, 'example.com')
        resolver.add_txt('example.com', 'v=spf1 -all', token)

        result = services.verification.verify_domain('example.com', 1, token=token)

        assert result['success'] is True
        assert result['verification']['method'] == 'dns_txt'
        domain = get_domain('example.com')
        assert domain.verification_level == 1
        assert domain.user_id == 1
        assert domain.auto_synced is False
        assert domain.registrar_account_id is None

    def test_nameserver_beats_nothing(self, services, resolver):
        resolver.add_ns('example.com', 'NS1.Example-Verify.net', 'ns2.example-verify.net')

        result = services.verification.verify_domain(
            'example.com', 1, nameservers=['ns1.example-verify.net']
        )

        assert result['success'] is True
        assert result['verification']['method'] == 'nameserver'
        assert get_domain('example.com').verification_level == 2

    def test_txt_is_tried_before_nameserver(self, services, resolver):
        token = issue_token(services, 'example.com')
        resolver.add_txt('example.com', token)
        resolver.add_ns('example.com', 'ns1.example-verify.net')

        result = services.verification.verify_domain(
            'example.com', 1, token=token, nameservers=['ns1.example-verify.net']
        )

        assert result['verification']['method'] == 'dns_txt'
        assert ('example.com', 'NS') not in resolver.queries

    def test_all_methods_fail(self, services, resolver):
        token = issue_token(services, 'example.com')
        resolver.add_txt('example.com', 'something-else')

        result = services.verification.verify_domain('example.com', 1, token=token)

        assert result['success'] is False
        assert [attempt['method'] for attempt in result['attempts']] == [
            'registrar_api', 'dns_txt', 'nameserver',
        ]
        assert result['attempts'][1]['message'] == 'Verification token not found in DNS records'
        assert get_domain('example.com') is None

    def test_txt_skipped_without_token(self, services, resolver):
        result = services.verification.verify_domain('example.com', 1)

        assert [attempt['method'] for attempt in result['attempts']] == ['registrar_api', 'nameserver']
        assert ('example.com', 'TXT') not in resolver.queries

    def test_input_is_normalized(self, services, resolver):
        resolver.add_ns('example.com', 'ns1.example-verify.net')

        result = services.verification.verify_domain(
            'WWW.Example.com', 1, nameservers=['ns1.example-verify.net.']
        )

        assert result['success'] is True
        assert result['domain']['name'] == 'example.com'


class TestTokens:

    def test_token_not_issued(self, services, resolver):
        resolver.add_txt('example.com', 'domain-verify-forged')

        result = services.verification.verify_domain('example.com', 1, token='domain-verify-forged')

        assert result['success'] is False
        assert result['attempts'][1]['message'] == 'No verification token was issued for this domain'
        assert ('example.com', 'TXT') not in resolver.queries

    def test_superseded_token_is_rejected(self, services, resolver):
        old_token = issue_token(services, 'example.com')
        new_token = issue_token(services, 'example.com')
        resolver.add_txt('example.com', old_token)

        result = services.verification.verify_domain('example.com', 1, token=old_token)

        assert old_token != new_token
        assert result['success'] is False
        assert 'latest issued token' in result['attempts'][1]['message']
        assert VerificationToken.query.count() == 1

    def test_expired_token_is_rejected(self, services, resolver):
        token = issue_token(services, 'example.com')
        record = VerificationToken.query.filter_by(domain_name='example.com').one()
        record.expires_at = utc_now() - timedelta(minutes=1)
        db.session.commit()
        resolver.add_txt('example.com', token)

        result = services.verification.verify_domain('example.com', 1, token=token)

        assert result['success'] is False
        assert 'expired' in result['attempts'][1]['message']

    def test_token_of_another_user_is_rejected(self, services, resolver):
        token = issue_token(services, 'example.com', user_id=2)
        resolver.add_txt('example.com', token)

        result = services.verification.verify_domain('example.com', 1, token=token)

        assert result['success'] is False

    def test_token_shape(self, services):
        token = services.verification.generate_verification_token(1, 'example.com')

        assert token.startswith('domain-verify-')
        assert len(token) == len('domain-verify-') + 32
        assert token != services.verification.generate_verification_token(1, 'example.com')

    def test_cleanup_expired_tokens(self, services):
        issue_token(services, 'fresh.com')
        issue_token(services, 'stale.com')
        stale = VerificationToken.query.filter_by(domain_name='stale.com').one()
        stale.expires_at = utc_now() - timedelta(days=1)
        db.session.commit()

        deleted = services.verification.cleanup_expired_tokens()

        assert deleted == 1
        assert [t.domain_name for t in VerificationToken.query.all()] == ['fresh.com']


class TestIndividualMethods:

    def test_dns_failure_is_data(self, services):
        result = services.verification.verify_via_dns('missing.com', 'token')

        assert result['success'] is False
        assert result['error'] == 'NXDOMAIN'

    def test_dns_timeout_is_data(self, services, resolver):
        def timeout(name, rdtype):
            raise dns.resolver.LifetimeTimeout(timeout=10.0, errors={})
        resolver.resolve = timeout

        result = services.verification.verify_via_dns('slow.com', 'token')

        assert result['success'] is False
        assert result['error'] == 'LifetimeTimeout'

    def test_multi_string_txt_record_is_joined(self, services, resolver):
        resolver.records[('split.com', 'TXT')] = [
            type('Rdata', (), {'strings': (b'domain-verify-', b'abc')})(),
        ]

        result = services.verification.verify_via_dns('split.com', 'domain-verify-abc')

        assert result['success'] is True

    def test_nameserver_without_expectation_is_informational(self, services, resolver):
        resolver.add_ns('example.com', 'ns1.provider.net')

        result = services.verification.verify_via_nameserver('example.com')

        assert result['success'] is False
        assert result['informational'] is True
        assert result['nameservers'] == ['ns1.provider.net']

    def test_nameserver_mismatch(self, services, resolver):
        resolver.add_ns('example.com', 'ns1.provider.net')

        result = services.verification.verify_via_nameserver('example.com', ['ns1.example-verify.net'])

        assert result['success'] is False
        assert result['message'] == 'Nameservers do not match expected values'

    def test_registrar_api_requires_verified_status(self, services, make_account, make_domain):
        account_id = make_account()
        make_domain('revoked.com', account_id=account_id)
        domain = get_domain('revoked.com')
        domain.verification_status = 'revoked'
        db.session.commit()

        result = services.verification.verify_via_registrar_api('revoked.com', 1)

        assert result['success'] is False

    def test_registrar_api_checks_owner(self, services, make_account, make_domain):
        account_id = make_account(user_id=1)
        make_domain('mine.com', account_id=account_id)

        assert services.verification.verify_via_registrar_api('mine.com', 2)['success'] is False


class TestSaveVerification:

    def test_reverification_overwrites(self, services, resolver):
        resolver.add_ns('example.com', 'ns1.example-verify.net')
        token = issue_token(services, 'example.com')
        resolver.add_txt('example.com', token)

        services.verification.verify_domain('example.com', 1, token=token)
        result = services.verification.verify_domain('example.com', 1, token=token)

        assert result['success'] is True
        assert Domain.query.filter_by(name='example.com').count() == 1
        assert VerificationEvent.query.filter_by(domain_name='example.com').count() == 2

    def test_non_registrar_method_clears_link(self, services, make_account, make_domain):
        account_id = make_account()
        make_domain('linked.com', account_id=account_id)

        result = services.verification.save_verification_result(
            'linked.com', 1, {'success': True, 'method': 'nameserver', 'message': 'ok'}
        )

        assert result['success'] is True
        domain = get_domain('linked.com')
        assert domain.verification_method == 'nameserver'
        assert domain.verification_level == 2
        assert domain.registrar_account_id is None

    def test_domain_of_another_user_is_refused(self, services, make_domain):
        make_domain('taken.com', user_id=2, method='dns_txt')

        result = services.verification.save_verification_result(
            'taken.com', 1, {'success': True, 'method': 'nameserver', 'message': 'ok'}
        )

        assert result['success'] is False
        domain = get_domain('taken.com')
        assert domain.user_id == 2
        assert domain.verification_method == 'dns_txt'

    def test_event_is_logged(self, services):
        services.verification.save_verification_result(
            'new.com', 4, {'success': True, 'method': 'dns_txt', 'message': 'Domain verified via DNS TXT record'}
        )

        event = VerificationEvent.query.filter_by(domain_name='new.com').one()
        assert event.event_type == 'verified'
        assert event.verification_method == 'dns_txt'
        assert event.user_id == 4
        assert event.old_status is None
        assert event.new_status == 'verified'


class TestInstructions:

    def test_instructions_describe_every_method(self, services):
        instructions = services.verification.get_verification_instructions('Example.com', 1)

        assert instructions['domain'] == 'example.com'
        assert instructions['expires_in_days'] == 7
        methods = [entry['method'] for entry in instructions['methods']]
        assert methods == ['registrar_api', 'dns_txt', 'nameserver']
        txt = instructions['methods'][1]
        assert txt['record']['value'] == instructions['token']
        assert txt['record']['type'] == 'TXT'
        assert instructions['methods'][0]['recommended'] is True

    def test_instructions_persist_token(self, services):
        instructions = services.verification.get_verification_instructions('example.com', 1)

        record = VerificationToken.query.filter_by(domain_name='example.com', user_id=1).one()
        assert record.token == instructions['token']
        assert record.expires_at > utc_now() + timedelta(days=6)

    def test_custom_nameservers_and_ttl(self, app, resolver):
        engine = DomainVerificationEngine(resolver=resolver, token_ttl_days=2,
                                          token_prefix='verify-', nameservers=['ns.mine.net'])

        instructions = engine.get_verification_instructions('example.com', 1)

        assert instructions['token'].startswith('verify-')
        assert instructions['expires_in_days'] == 2
        assert instructions['methods'][2]['nameservers'] == ['ns.mine.net']


class TestCanPerformAction:

    def test_unknown_domain(self, services):
        result = services.verification.can_perform_action('nope.com', 1)

        assert result == {'allowed': False, 'reason': 'Domain not found or not owned by user'}

    def test_other_users_domain(self, services, make_domain):
        make_domain('theirs.com', user_id=2, method='registrar_api')

        assert services.verification.can_perform_action('theirs.com', 1)['allowed'] is False

    def test_revoked_domain(self, services, make_account, make_domain, registrar):
        account_id = make_account()
        make_domain('gone.com', account_id=account_id)
        registrar.domains = []
        services.sync_engine.sync_registrar_account(account_id)

        result = services.verification.can_perform_action('gone.com', 1, required_level=1)

        assert result == {'allowed': False, 'reason': 'Domain verification expired or revoked'}

    def test_level_too_low(self, services, make_domain):
        make_domain('txt.com', method='dns_txt')

        result = services.verification.can_perform_action('txt.com', 1, required_level=2)

        assert result['allowed'] is False
        assert result['current_level'] == 1
        assert result['required_level'] == 2

    def test_allowed(self, services, make_domain):
        make_domain('ns.com', method='nameserver')

        result = services.verification.can_perform_action('ns.com', 1, required_level=2)

        assert result == {'allowed': True, 'verification_level': 2}
