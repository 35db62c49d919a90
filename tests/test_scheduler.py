"""
Tests for the APScheduler-driven bulk sync jobs.
"""
import pytest

from registrar_sync.app import create_app, get_services
from registrar_sync.scheduler import DAILY_JOB_ID, HOURLY_JOB_ID, RegistrarSyncScheduler


@pytest.fixture
def scheduler(app, services):
    scheduler = RegistrarSyncScheduler(app, services.sync_engine, hourly='15 * * * *',
                                       daily='0 3 * * *', timezone='UTC')
    yield scheduler
    scheduler.stop()


def test_defaults_come_from_config(app, services):
    scheduler = RegistrarSyncScheduler(app, services.sync_engine)

    assert scheduler.hourly == '0 * * * *'
    assert scheduler.daily == '0 2 * * *'
    assert scheduler.timezone == 'UTC'


def test_start_registers_both_jobs(scheduler):
    assert scheduler.start() is True

    status = scheduler.get_status()
    assert status['is_running'] is True
    assert status['sync_in_progress'] is False
    assert status['schedules'] == {'hourly': '15 * * * *', 'daily': '0 3 * * *'}
    assert sorted(job['id'] for job in status['jobs']) == sorted([DAILY_JOB_ID, HOURLY_JOB_ID])
    assert all(job['next_run_time'] for job in status['jobs'])


def test_start_twice_is_refused(scheduler):
    scheduler.start()

    assert scheduler.start() is False


def test_stop(scheduler):
    scheduler.start()
    scheduler.stop()

    status = scheduler.get_status()
    assert status['is_running'] is False
    assert status['jobs'] == []


def test_jobs_do_not_overlap(scheduler):
    scheduler.start()

    for job in scheduler._scheduler.get_jobs():
        assert job.max_instances == 1
        assert job.coalesce is True


def test_manual_sync_runs_bulk_sync(scheduler, registrar, make_account):
    make_account(user_id=1, api_key='first')
    make_account(user_id=2, api_key='second')

    results = scheduler.trigger_manual_sync()

    assert len(results) == 2
    assert all(result['success'] for result in results)
    assert sorted(registrar.fetched_keys) == ['first', 'second']


def test_manual_sync_skipped_while_bulk_running(scheduler, services):
    services.sync_engine._bulk_lock.acquire()
    try:
        assert scheduler.get_status()['sync_in_progress'] is True
        assert scheduler.trigger_manual_sync() is None
    finally:
        services.sync_engine._bulk_lock.release()


def test_job_failure_is_contained(app, monkeypatch, services):
    def explode():
        raise RuntimeError('database unavailable')

    monkeypatch.setattr(services.sync_engine, 'sync_all_accounts', explode)
    scheduler = RegistrarSyncScheduler(app, services.sync_engine)

    assert scheduler.trigger_manual_sync() is None


def test_app_scheduler_runs_in_background_by_default(services):
    assert services.scheduler.blocking is False


def test_app_can_build_foreground_scheduler(tmp_path, registrar, resolver):
    app = create_app(
        test_config={'TESTING': True, 'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'fg.db'}"},
        adapter_factory=registrar.factory,
        resolver=resolver,
        blocking_scheduler=True,
    )

    assert get_services(app).scheduler.blocking is True
