"""
Garbage collection of old job executions.

A retention pass removes, for every job type with stale executions, the executions which are both older than
the configured minimal age and outside the window of the most recent executions kept for the job type.
All deletions of a single pass are committed in one transaction.

The collector expects at most one pass to run at a time. Overlapping invocations must be prevented by the caller,
see :class:`blitz.maintenance.scheduling.InProcessJobManager`.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from threading import Event
from types import MappingProxyType
from typing import Callable, Dict, Optional, Mapping

from blitz.maintenance import db
from blitz.maintenance.db import ExecutionStore
from blitz.maintenance.err import PassCancelled
from blitz.maintenance.retention import RetentionPolicy, evaluate
from blitz.maintenance.util import utc_now

log = logging.getLogger(__name__)


class PassOutcome(Enum):
    COMMITTED = 'committed'
    NOTHING_TO_DO = 'nothing_to_do'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


@dataclass(frozen=True)
class PassResult:
    outcome: PassOutcome
    deleted: Mapping[str, int] = field(default_factory=dict)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (PassOutcome.COMMITTED, PassOutcome.NOTHING_TO_DO)

    @property
    def committed(self) -> bool:
        return self.outcome == PassOutcome.COMMITTED

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values()) if self.committed else 0


class GarbageCollector:

    def __init__(self, store: ExecutionStore, policy: RetentionPolicy, *, clock: Callable[[], datetime] = utc_now):
        """
        Args:
            store: Opened execution store
            policy: Retention limits applied to every job type
            clock: Provides the current time in naive UTC
        """
        self._store = store
        self._policy = policy
        self._clock = clock

    @property
    def policy(self) -> RetentionPolicy:
        return self._policy

    def run_retention_pass(self, cancel_event: Optional[Event] = None) -> PassResult:
        """
        Executes a single retention pass.

        Failures and cancellation are reported in the returned result; in both cases no deletion is committed.
        The pass is not retried, the next scheduled invocation simply runs a new pass.

        Args:
            cancel_event: Optional event; when set before the commit the pass ends without deleting anything

        Returns:
            PassResult: Outcome of the pass with number of deleted executions per job type
        """
        log.info("event=[gc_pass_started] min_age_minutes=[%d] min_kept_recent_executions=[%d]",
                 self._policy.min_age_minutes, self._policy.min_kept_recent_executions)
        try:
            result = self._run(cancel_event)
        except PassCancelled:
            result = PassResult(PassOutcome.CANCELLED)
        except Exception as e:
            log.exception("event=[gc_pass_failed] error=[%s]", e)
            result = PassResult(PassOutcome.FAILED, error=e)

        log.info("event=[gc_pass_completed] outcome=[%s] deleted=[%d] committed=[%s]",
                 result.outcome.value, result.total_deleted, result.committed)
        return result

    def _run(self, cancel_event) -> PassResult:
        now = self._clock()
        cutoff = self._policy.cutoff(now)

        stale_job_type_ids = self._store.read_stale_job_type_ids(cutoff)
        if not stale_job_type_ids:
            log.info("event=[gc_nothing_to_do] cutoff=[%s]", cutoff)
            return PassResult(PassOutcome.NOTHING_TO_DO)

        staged: Dict[str, list] = {}
        for job_type_id in stale_job_type_ids:
            _check_cancelled(cancel_event)
            log.info("event=[gc_job_type_cleanup] job_type_id=[%s]", job_type_id)
            to_delete = evaluate(now, self._policy, self._store.read_executions(job_type_id, until=cutoff))
            if to_delete:
                staged[job_type_id] = to_delete

        _check_cancelled(cancel_event)
        with self._store.transaction() as tx:
            deleted = {job_type_id: tx.delete_executions(ids) for job_type_id, ids in staged.items()}
            _check_cancelled(cancel_event)
            tx.commit()

        return PassResult(PassOutcome.COMMITTED, MappingProxyType(deleted))


def _check_cancelled(cancel_event):
    if cancel_event is not None and cancel_event.is_set():
        log.info("event=[gc_pass_cancelled]")
        raise PassCancelled("Retention pass cancelled before commit")


def run_retention_pass(config, cancel_event: Optional[Event] = None) -> PassResult:
    """
    Opens the store defined by the configuration, runs one retention pass and closes the store again.
    This is the entry point registered with the job manager.
    """
    try:
        store = db.create_store(config.persistence)
        store.open()
    except Exception as e:
        log.exception("event=[gc_pass_failed] reason=[store_open_failed] error=[%s]", e)
        return PassResult(PassOutcome.FAILED, error=e)

    try:
        return create_garbage_collector(config, store).run_retention_pass(cancel_event)
    finally:
        store.close()


def create_garbage_collector(config, store: Optional[ExecutionStore] = None, **kwargs) -> GarbageCollector:
    """
    Creates a garbage collector for the given configuration.

    Args:
        config (GarbageCollectorConfig): Retention limits and persistence configuration
        store: Store to use instead of the one defined by `config.persistence`; the caller is responsible for
            opening and closing it
        **kwargs: Passed to the GarbageCollector constructor

    Returns:
        GarbageCollector: A collector; its store is not opened when created from the configuration
    """
    if store is None:
        store = db.create_store(config.persistence)
    return GarbageCollector(store, config.policy(), **kwargs)
