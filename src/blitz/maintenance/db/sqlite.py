"""
Execution store implementation using SQLite.
"""

import logging
import sqlite3
from functools import wraps
from threading import RLock
from typing import List, Optional, Iterable

from blitz.maintenance import paths
from blitz.maintenance.db import ExecutionStore, Transaction
from blitz.maintenance.err import InvalidStateError, StoreUnavailableError
from blitz.maintenance.execution import Execution
from blitz.maintenance.util import format_dt_sql, parse_dt_sql

log = logging.getLogger(__name__)

# Max number of IDs bound to a single DELETE statement
DEFAULT_BATCH_SIZE = 500


def create(database=None, **kwargs):
    """
    Creates SQLite execution store with configurable connection parameters.

    Args:
        database: Database path or ':memory:' for in-memory database.
        **kwargs: Any valid keyword arguments for sqlite3.connect()
            Common options include:
            - timeout: Float timeout value in seconds (default: 5.0)
            - cached_statements: Number of statements to cache (default: 128)
            - uri: True if database parameter is a URI (default: False)
            - batch_size: Number of IDs deleted per statement (default: 500)

    Returns:
        SQLite: Configured SQLite store instance
    """
    batch_size = kwargs.pop('batch_size', DEFAULT_BATCH_SIZE)

    # Force check_same_thread to False since we're using _conn_lock
    kwargs['check_same_thread'] = False

    def connection_factory():
        return sqlite3.connect(database or paths.sqlite_db_path(create=True), **kwargs)

    return SQLite(connection_factory, batch_size)


def ensure_open(f):
    @wraps(f)
    def wrapper(self, *args, **kwargs):
        with self._conn_lock:
            if not self._conn:
                raise InvalidStateError("Database connection not opened")
            try:
                return f(self, *args, **kwargs)
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"SQLite operation `{f.__name__}` failed: {e}") from e

    return wrapper


def _to_execution(row):
    return Execution(row[0], row[1], parse_dt_sql(row[2]))


class SQLiteTransaction(Transaction):
    """
    Holds the connection lock of the store from `BEGIN IMMEDIATE` until commit or rollback,
    therefore it must be finished by the thread which started it.
    """

    def __init__(self, store):
        self._store = store
        self._active = False

    def begin(self):
        self._store._conn_lock.acquire()
        try:
            if not self._store._conn:
                raise InvalidStateError("Database connection not opened")
            self._store._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            self._store._conn_lock.release()
            raise StoreUnavailableError(f"Cannot begin transaction: {e}") from e
        except BaseException:
            self._store._conn_lock.release()
            raise
        self._active = True
        log.debug('event=[transaction_started]')
        return self

    @property
    def active(self) -> bool:
        return self._active

    def _check_active(self):
        if not self._active:
            raise InvalidStateError("Transaction is not active")

    def delete_executions(self, execution_ids: Iterable[str]) -> int:
        self._check_active()
        ids = list(execution_ids)
        deleted = 0
        batch_size = self._store._batch_size
        try:
            for i in range(0, len(ids), batch_size):
                batch = ids[i:i + batch_size]
                placeholders = ', '.join('?' * len(batch))
                c = self._store._conn.execute(f"DELETE FROM executions WHERE id IN ({placeholders})", batch)
                deleted += c.rowcount
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot delete executions: {e}") from e
        return deleted

    def commit(self):
        self._check_active()
        try:
            self._store._conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot commit transaction: {e}") from e
        self._finish()
        log.debug('event=[transaction_committed]')

    def rollback(self):
        self._check_active()
        try:
            self._store._conn.rollback()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot rollback transaction: {e}") from e
        finally:
            self._finish()
        log.debug('event=[transaction_rolled_back]')

    def _finish(self):
        self._active = False
        self._store._conn_lock.release()


class SQLite(ExecutionStore):

    def __init__(self, connection_factory, batch_size=DEFAULT_BATCH_SIZE):
        """
        Args:
            connection_factory: Callable that returns a sqlite3.Connection
            batch_size: Number of IDs deleted per statement
        """
        self._connection_factory = connection_factory
        self._conn = None
        self._conn_lock = RLock()
        self._batch_size = batch_size

    def open(self):
        if self._conn is not None:
            raise InvalidStateError("Database connection already opened")
        try:
            self._conn = self._connection_factory()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open SQLite database: {e}") from e
        try:
            self.check_tables_exist()
        except BaseException:
            self.close()
            raise

    def is_open(self):
        return self._conn is not None

    @ensure_open
    def check_tables_exist(self):
        c = self._conn.cursor()
        c.execute(''' SELECT count(name) FROM sqlite_master WHERE type='table' AND name='executions' ''')
        if c.fetchone()[0] != 1:
            c.execute('''CREATE TABLE executions
                         (id text PRIMARY KEY,
                         job_type_id text NOT NULL,
                         created_at timestamp NOT NULL)
                         ''')
            c.execute('''CREATE INDEX job_type_id_created_at_index ON executions (job_type_id, created_at)''')
            c.execute('''CREATE INDEX created_at_index ON executions (created_at)''')
            log.debug('event=[table_created] table=[executions]')
            self._conn.commit()

    @ensure_open
    def read_stale_job_type_ids(self, cutoff) -> List[str]:
        c = self._conn.execute(
            "SELECT DISTINCT job_type_id FROM executions WHERE created_at < ? ORDER BY job_type_id",
            (format_dt_sql(cutoff),))
        try:
            return [row[0] for row in c.fetchall()]
        finally:
            c.close()

    @ensure_open
    def read_executions(self, job_type_id, *, until=None) -> List[Execution]:
        statement = "SELECT id, job_type_id, created_at FROM executions WHERE job_type_id = ?"
        params = [job_type_id]
        if until:
            statement += " AND created_at < ?"
            params.append(format_dt_sql(until))
        statement += " ORDER BY created_at DESC, rowid DESC"

        log.debug("event=[executing_query] statement=[%s] job_type_id=[%s]", statement, job_type_id)
        c = self._conn.execute(statement, params)
        try:
            return [_to_execution(row) for row in c.fetchall()]
        finally:
            c.close()

    @ensure_open
    def store_executions(self, *executions):
        rows = [(e.id, e.job_type_id, format_dt_sql(e.created_at)) for e in executions]
        self._conn.executemany("INSERT INTO executions VALUES (?, ?, ?)", rows)
        self._conn.commit()

    @ensure_open
    def count_executions(self, job_type_id: Optional[str] = None) -> int:
        if job_type_id is None:
            c = self._conn.execute("SELECT COUNT(*) FROM executions")
        else:
            c = self._conn.execute("SELECT COUNT(*) FROM executions WHERE job_type_id = ?", (job_type_id,))
        return c.fetchone()[0]

    def transaction(self) -> SQLiteTransaction:
        return SQLiteTransaction(self).begin()

    def close(self):
        with self._conn_lock:
            if self._conn:
                self._conn.close()
                self._conn = None
