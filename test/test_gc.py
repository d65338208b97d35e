import logging
from datetime import datetime, timedelta
from threading import Event

import pytest

from blitz.maintenance.config import GarbageCollectorConfig
from blitz.maintenance.db import sqlite, PersistenceConfig, create_store, DatabaseNotFoundError
from blitz.maintenance.err import StoreUnavailableError
from blitz.maintenance.gc import GarbageCollector, PassOutcome, create_garbage_collector, run_retention_pass
from blitz.maintenance.retention import RetentionPolicy
from blitz.maintenance.test.execution import fake_executions
from blitz.maintenance.test.store import RecordingStore, FailingCommitStore, UnavailableStore

NOW = datetime(2024, 5, 1, 12, 0)


@pytest.fixture
def db():
    with sqlite.create(database=':memory:') as db:
        yield db


def collector(store, min_age_minutes=1440, min_kept_recent_executions=15):
    return GarbageCollector(store, RetentionPolicy(min_age_minutes, min_kept_recent_executions), clock=lambda: NOW)


def test_keeps_recent_executions(db):
    db.store_executions(*fake_executions('A', 20, now=NOW, start_offset=timedelta(days=1, minutes=1)))

    result = collector(db).run_retention_pass()

    assert result.outcome == PassOutcome.COMMITTED
    assert result.ok
    assert result.deleted == {'A': 5}
    assert [e.id for e in db.read_executions('A')] == [f"A-{i}" for i in range(15)]


def test_deletes_all_stale_when_nothing_kept(db):
    db.store_executions(*fake_executions('B', 10, now=NOW, start_offset=timedelta(hours=2), step=timedelta(seconds=1)))

    result = collector(db, min_age_minutes=60, min_kept_recent_executions=0).run_retention_pass()

    assert result.total_deleted == 10
    assert db.count_executions('B') == 0


def test_nothing_to_do(db):
    db.store_executions(*fake_executions('A', 30, now=NOW, step=timedelta(minutes=1)))
    store = RecordingStore(db)

    result = collector(store).run_retention_pass()

    assert result.outcome == PassOutcome.NOTHING_TO_DO
    assert result.ok
    assert not result.committed
    assert store.transactions == 0
    assert store.deleted_ids == []
    assert db.count_executions() == 30


def test_nothing_to_do_on_empty_store(db):
    assert collector(db).run_retention_pass().outcome == PassOutcome.NOTHING_TO_DO


def test_multiple_job_types(db):
    db.store_executions(
        *fake_executions('A', 5, now=NOW, start_offset=timedelta(days=2)),
        *fake_executions('B', 5, now=NOW, step=timedelta(minutes=1)),
        *fake_executions('C', 4, now=NOW, step=timedelta(hours=12)))
    store = RecordingStore(db)

    result = collector(store, min_kept_recent_executions=2).run_retention_pass()

    assert store.read_job_type_ids == ['A', 'C']  # B has no stale executions
    assert store.transactions == 1
    assert result.deleted == {'A': 3}
    assert db.count_executions('A') == 2
    assert db.count_executions('B') == 5
    assert db.count_executions('C') == 4


def test_second_pass_deletes_nothing(db):
    db.store_executions(*fake_executions('A', 20, now=NOW, start_offset=timedelta(days=1, minutes=1)))
    sut = collector(db)
    sut.run_retention_pass()

    result = sut.run_retention_pass()

    assert result.ok
    assert result.total_deleted == 0
    assert db.count_executions() == 15


def test_failed_commit_deletes_nothing(db):
    db.store_executions(*fake_executions('A', 20, now=NOW, start_offset=timedelta(days=2)))

    result = collector(FailingCommitStore(db), min_kept_recent_executions=0).run_retention_pass()

    assert result.outcome == PassOutcome.FAILED
    assert not result.ok
    assert isinstance(result.error, StoreUnavailableError)
    assert result.total_deleted == 0
    assert db.count_executions() == 20


def test_unavailable_store(db):
    result = collector(UnavailableStore(db)).run_retention_pass()

    assert result.outcome == PassOutcome.FAILED
    assert isinstance(result.error, StoreUnavailableError)


def test_cancelled_before_start(db):
    db.store_executions(*fake_executions('A', 20, now=NOW, start_offset=timedelta(days=2)))
    cancel = Event()
    cancel.set()

    result = collector(db, min_kept_recent_executions=0).run_retention_pass(cancel)

    assert result.outcome == PassOutcome.CANCELLED
    assert not result.ok
    assert db.count_executions() == 20


class _CancellingStore(RecordingStore):

    def __init__(self, store, cancel_event):
        super().__init__(store)
        self.cancel_event = cancel_event

    def read_executions(self, job_type_id, *, until=None):
        self.cancel_event.set()
        return super().read_executions(job_type_id, until=until)


def test_cancelled_between_job_types(db):
    db.store_executions(
        *fake_executions('A', 3, now=NOW, start_offset=timedelta(days=2)),
        *fake_executions('B', 3, now=NOW, start_offset=timedelta(days=2)))
    cancel = Event()
    store = _CancellingStore(db, cancel)

    result = collector(store, min_kept_recent_executions=0).run_retention_pass(cancel)

    assert result.outcome == PassOutcome.CANCELLED
    assert store.read_job_type_ids == ['A']
    assert store.transactions == 0
    assert db.count_executions() == 6


def test_create_from_config(db):
    config = GarbageCollectorConfig(min_age_minutes=10, min_kept_recent_executions=3)

    sut = create_garbage_collector(config, db)

    assert sut.policy == RetentionPolicy(10, 3)


def test_run_retention_pass_opens_configured_store(tmp_path):
    persistence = PersistenceConfig(database=str(tmp_path / 'executions.db'))
    with create_store(persistence) as db:
        db.store_executions(*fake_executions('A', 5, start_offset=timedelta(days=3)))

    config = GarbageCollectorConfig(min_kept_recent_executions=1, persistence=persistence)
    result = run_retention_pass(config)

    assert result.deleted == {'A': 4}
    with create_store(persistence) as db:
        assert db.count_executions() == 1


def test_run_retention_pass_store_cannot_be_opened(tmp_path):
    persistence = PersistenceConfig(database=str(tmp_path / 'missing' / 'executions.db'))

    result = run_retention_pass(GarbageCollectorConfig(persistence=persistence))

    assert result.outcome == PassOutcome.FAILED
    assert isinstance(result.error, StoreUnavailableError)


def test_run_retention_pass_unknown_store_type():
    # Bypasses validation to simulate a config not checked at load time
    persistence = PersistenceConfig.model_construct(type='mongo', database=None, params={})
    config = GarbageCollectorConfig.model_construct(
        schedule='*/5 * * * *', min_age_minutes=1440, min_kept_recent_executions=15, enabled=True,
        persistence=persistence)

    result = run_retention_pass(config)

    assert result.outcome == PassOutcome.FAILED
    assert isinstance(result.error, DatabaseNotFoundError)


def test_log_lines_of_committed_pass(db, caplog):
    db.store_executions(*fake_executions('A', 3, now=NOW, start_offset=timedelta(days=2)))

    with caplog.at_level(logging.INFO, logger='blitz.maintenance.gc'):
        collector(db, min_kept_recent_executions=1).run_retention_pass()

    messages = [r.getMessage() for r in caplog.records]
    assert messages[0].startswith('event=[gc_pass_started]')
    assert 'event=[gc_job_type_cleanup] job_type_id=[A]' in messages
    assert messages[-1] == 'event=[gc_pass_completed] outcome=[committed] deleted=[2] committed=[True]'


def test_log_lines_of_nothing_to_do_pass(db, caplog):
    with caplog.at_level(logging.INFO, logger='blitz.maintenance.gc'):
        collector(db).run_retention_pass()

    messages = [r.getMessage() for r in caplog.records]
    assert messages[0].startswith('event=[gc_pass_started]')
    assert any(m.startswith('event=[gc_nothing_to_do]') for m in messages)
    assert not any(m.startswith('event=[gc_job_type_cleanup]') for m in messages)
    assert messages[-1] == 'event=[gc_pass_completed] outcome=[nothing_to_do] deleted=[0] committed=[False]'
