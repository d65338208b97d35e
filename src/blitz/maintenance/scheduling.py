"""
Integration with recurring job managers.

The job manager owns the schedule: it parses the cron expression, fires the registered callbacks and decides
about retries. This module defines the contract the garbage collector is registered with and a simple in-process
manager which executes jobs on demand and suppresses overlapping invocations of the same job.
"""

import functools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from threading import Lock
from types import MappingProxyType
from typing import Callable, Any, Optional, Mapping

from blitz.maintenance import gc
from blitz.maintenance.err import MaintenanceException
from blitz.maintenance.util.lock import default_memory_lock_factory

log = logging.getLogger(__name__)

GC_JOB_ID = 'GarbageCollector'


@dataclass(frozen=True)
class RecurringJob:
    job_id: str
    callback: Callable[..., Any]
    schedule: str


class TriggerStatus(Enum):
    EXECUTED = auto()
    SKIPPED = auto()


@dataclass(frozen=True)
class TriggerResult:
    status: TriggerStatus
    value: Any = None

    @property
    def executed(self) -> bool:
        return self.status == TriggerStatus.EXECUTED


class JobNotFoundError(MaintenanceException):

    def __init__(self, job_id):
        super().__init__(f"No recurring job registered with ID `{job_id}`")
        self.job_id = job_id


class RecurringJobManager(ABC):

    @abstractmethod
    def add_or_update(self, job_id: str, callback: Callable[..., Any], schedule: str):
        """
        Registers the callback to be invoked according to the cron schedule, replacing an existing job with the same ID.
        """

    @abstractmethod
    def remove_if_exists(self, job_id: str) -> bool:
        """
        Returns:
            bool: True if a job was removed
        """

    @abstractmethod
    def trigger(self, job_id: str, *args, **kwargs) -> TriggerResult:
        """
        Invokes the job immediately, outside its schedule.
        """


class InProcessJobManager(RecurringJobManager):
    """
    Keeps registered jobs in memory and runs them in the calling thread when triggered.

    An invocation is skipped when the previous invocation of the same job still runs. The lock factory decides
    the scope of this guarantee: memory locks (default) for threads of this process, file locks for all processes
    sharing the lock directory.
    """

    def __init__(self, lock_factory=None):
        self._jobs = {}
        self._jobs_lock = Lock()
        self._lock_factory = lock_factory or default_memory_lock_factory()

    @property
    def jobs(self) -> Mapping[str, RecurringJob]:
        with self._jobs_lock:
            return MappingProxyType(dict(self._jobs))

    def get_job(self, job_id) -> Optional[RecurringJob]:
        with self._jobs_lock:
            return self._jobs.get(job_id)

    def add_or_update(self, job_id, callback, schedule):
        with self._jobs_lock:
            self._jobs[job_id] = RecurringJob(job_id, callback, schedule)
        log.debug("event=[job_registered] job_id=[%s] schedule=[%s]", job_id, schedule)

    def remove_if_exists(self, job_id) -> bool:
        with self._jobs_lock:
            removed = self._jobs.pop(job_id, None) is not None
        if removed:
            log.debug("event=[job_removed] job_id=[%s]", job_id)
        return removed

    def trigger(self, job_id, *args, **kwargs) -> TriggerResult:
        job = self.get_job(job_id)
        if not job:
            raise JobNotFoundError(job_id)

        lock = self._lock_factory(job_id)
        if not lock.acquire(blocking=False):
            log.warning("event=[job_skipped] reason=[already_running] job_id=[%s]", job_id)
            return TriggerResult(TriggerStatus.SKIPPED)
        try:
            log.debug("event=[job_triggered] job_id=[%s]", job_id)
            return TriggerResult(TriggerStatus.EXECUTED, job.callback(*args, **kwargs))
        finally:
            lock.release()


def register_garbage_collector(job_manager: RecurringJobManager, config, collector_factory=None):
    """
    Registers the retention pass as a recurring job. Any previous registration is removed first and
    the job is added again only when the garbage collector is enabled.

    Args:
        job_manager: Manager owning the schedule
        config (GarbageCollectorConfig): Schedule, enabled flag and retention limits
        collector_factory: Optional callable returning a `GarbageCollector` for each invocation;
            by default each invocation opens the store from `config.persistence`
    """
    log.info("event=[gc_registering] cron=[%s] enabled=[%s]", config.schedule, config.enabled)
    job_manager.remove_if_exists(GC_JOB_ID)
    if not config.enabled:
        return

    if collector_factory:
        def callback(cancel_event=None):
            return collector_factory().run_retention_pass(cancel_event)
    else:
        callback = functools.partial(gc.run_retention_pass, config)

    job_manager.add_or_update(GC_JOB_ID, callback, config.schedule)
