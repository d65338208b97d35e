"""
The execution store contract and the lookup of its implementations.

Modules providing a `create(database, **params)` function returning an `ExecutionStore` are discovered using
the package name pattern: `blitz.maintenance.db.{type}`.
"""

import importlib
import logging
import pkgutil
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Any, Optional, List, Iterable

from pydantic import BaseModel, Field, field_validator

from blitz.maintenance.err import MaintenanceException
from blitz.maintenance.execution import Execution

log = logging.getLogger(__name__)

_db_modules = {}


def load_database_module(db_type):
    """
    Loads the database module specified by the parameter.

    Args:
        db_type (str): Type of the database to be loaded
    """
    db_module = _db_modules.get(db_type)
    if db_module:
        return db_module

    for finder, name, is_pkg in pkgutil.iter_modules(__path__, __name__ + "."):
        if name == __name__ + "." + db_type:
            db_module = importlib.import_module(name)
            _db_modules[db_type] = db_module
            return db_module

    raise DatabaseNotFoundError(__name__ + "." + db_type)


def create_store(persistence_config):
    """
    Creates a new, not yet opened, execution store for the given persistence configuration.
    """
    return load_database_module(persistence_config.type).create(persistence_config.database,
                                                                 **persistence_config.params)


class DatabaseNotFoundError(MaintenanceException):

    def __init__(self, module_):
        super().__init__(f'Cannot find database module {module_}. Ensure this module is installed '
                         f'or check that the provided persistence type value is correct.')


class PersistenceConfig(BaseModel):
    type: str = "sqlite"
    database: Optional[str] = Field(default=None, description="Database path; uses the data directory if None")
    params: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('type')
    @classmethod
    def database_module_exists(cls, value: str) -> str:
        try:
            load_database_module(value)
        except DatabaseNotFoundError as e:
            raise ValueError(str(e)) from e
        return value

    @classmethod
    def default_sqlite(cls):
        return cls(type="sqlite")

    @classmethod
    def in_memory_sqlite(cls):
        return cls(type="sqlite", database=":memory:")


class Transaction(ABC):
    """
    A unit of work deleting executions. Nothing is visible to other store users until `commit` succeeds.
    When used as a context manager the transaction is rolled back on exit unless it was committed.
    """

    @abstractmethod
    def delete_executions(self, execution_ids: Iterable[str]) -> int:
        """
        Stages deletion of the executions with the given IDs.

        Returns:
            int: Number of deleted records
        """

    @abstractmethod
    def commit(self):
        pass

    @abstractmethod
    def rollback(self):
        pass

    @property
    @abstractmethod
    def active(self) -> bool:
        """True until the transaction is committed or rolled back"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.active:
            return
        try:
            self.rollback()
        except Exception as e:
            if exc_type is None:
                raise
            # Keep the original exception propagating
            log.warning("event=[rollback_failed] error=[%s] original_error=[%s]", e, exc_val)


class ExecutionStore(ABC):

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def open(self):
        pass

    @abstractmethod
    def read_stale_job_type_ids(self, cutoff: datetime) -> List[str]:
        """
        Returns distinct IDs of job types having at least one execution created before the cutoff.
        Timestamps are compared with millisecond precision, so an execution stale by less than a millisecond
        waits for the next pass.
        """

    @abstractmethod
    def read_executions(self, job_type_id: str, *, until: Optional[datetime] = None) -> List[Execution]:
        """
        Fetches executions of a single job type.

        Args:
            job_type_id: Job type whose executions are read
            until: If provided, only executions created before this time are returned

        Returns:
            List[Execution]: Executions ordered by creation time, most recent first
        """

    @abstractmethod
    def store_executions(self, *executions: Execution):
        pass

    @abstractmethod
    def count_executions(self, job_type_id: Optional[str] = None) -> int:
        pass

    @abstractmethod
    def transaction(self) -> Transaction:
        pass

    @abstractmethod
    def close(self):
        pass
