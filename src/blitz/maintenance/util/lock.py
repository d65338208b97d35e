"""
Locks used to prevent overlapping invocations of recurring jobs.
Both lock types support non-blocking acquisition so a busy job can be skipped instead of queued.
"""

import logging
import time
import weakref
from threading import RLock, Lock

import portalocker

from blitz.maintenance import paths
from blitz.maintenance.err import InvalidStateError

log = logging.getLogger(__name__)


class FileLock:
    """
    A file-based lock implementation using Portalocker.
    Guards a job across processes. The lock can be reused within the same thread but cannot be shared between threads.
    """

    def __init__(self, lock_file, *, timeout=0):
        self.lock_file = lock_file
        self.timeout = timeout
        self._file_lock = None
        self._start_time = None

    def acquire(self, blocking=True) -> bool:
        """
        Acquire the lock.

        Args:
            blocking: If False, returns immediately when the lock is held by someone else

        Returns:
            bool: True if the lock was acquired

        Raises:
            InvalidStateError: If the lock has already been acquired
        """
        if self._file_lock:
            raise InvalidStateError("Lock is already acquired")

        timeout = self.timeout if blocking else 0
        file_lock = portalocker.Lock(self.lock_file, timeout=timeout, fail_when_locked=not blocking)
        self._start_time = time.time()
        try:
            file_lock.acquire()
        except portalocker.LockException:
            if blocking:
                raise
            log.debug(f'event=[file_lock_busy] file=[{self.lock_file}]')
            return False

        self._file_lock = file_lock
        log.debug(
            f'event=[file_lock_acquired] file=[{self.lock_file}] wait=[{(time.time() - self._start_time) * 1000 :.2f} ms]')
        return True

    def release(self):
        """
        Release the lock.

        Raises:
            InvalidStateError: If the lock hasn't been acquired
        """
        if not self._file_lock:
            raise InvalidStateError("Lock is not acquired")

        self._file_lock.release()
        self._file_lock = None

        lock_time_ms = (time.time() - self._start_time) * 1000
        log.debug(f'event=[lock_released] file=[{self.lock_file}] locked=[{lock_time_ms:.2f} ms]')

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class FileLockFactory:
    """
    Produces file locks placed in the lock directory, one file per lock ID.
    """

    def __init__(self, lock_dir=None, *, timeout=0):
        self._lock_dir = lock_dir
        self.timeout = timeout

    def __call__(self, lock_id):
        lock_dir = self._lock_dir or paths.lock_dir(create=True)
        return FileLock(lock_dir / f"{lock_id}.lock", timeout=self.timeout)


class MemoryLockFactory:
    """
    Factory class that produces and manages non-reentrant locks.
    Locks are shared by ID and cleaned up when no longer referenced.
    """

    def __init__(self):
        self._locks = weakref.WeakValueDictionary()
        self._dict_lock = RLock()

    def __call__(self, lock_id):
        """
        Get or create a lock for the given ID.

        Args:
            lock_id: Identifier for the lock

        Returns:
            _MemoryLock: A lock instance shared by all holders of the ID
        """
        with self._dict_lock:
            # Keep a strong reference before returning
            lock = self._locks.get(lock_id)
            if lock is None:
                lock = _MemoryLock()
                self._locks[lock_id] = lock
            return lock


class _MemoryLock:
    """Weak-referenceable wrapper of `threading.Lock`"""

    def __init__(self):
        self._lock = Lock()

    def acquire(self, blocking=True) -> bool:
        return self._lock.acquire(blocking)

    def release(self):
        self._lock.release()

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


def default_memory_lock_factory():
    return MemoryLockFactory()
