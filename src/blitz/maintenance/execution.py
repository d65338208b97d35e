"""
Execution records are the history of a recurring job. A record is appended each time a job of some job type fires
and is never updated afterwards. The garbage collector is the only component allowed to remove records.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Any, Optional

from blitz.maintenance.util import utc_now, unique_timestamp_hex, to_naive_utc, format_dt_iso


@dataclass(frozen=True)
class Execution:
    """
    A single execution of a recurring job.

    Attributes:
        id: Unique identifier of the execution
        job_type_id: Identifier grouping executions of the same recurring job (cronjob)
        created_at: Creation timestamp in naive UTC
    """
    id: str
    job_type_id: str
    created_at: datetime

    def __post_init__(self):
        if not self.id:
            raise ValueError("Execution ID cannot be empty")
        if not self.job_type_id:
            raise ValueError("Job type ID cannot be empty")
        object.__setattr__(self, 'created_at', to_naive_utc(self.created_at))

    @classmethod
    def deserialize(cls, as_dict: Dict[str, Any]) -> 'Execution':
        return cls(as_dict['id'], as_dict['job_type_id'], datetime.fromisoformat(as_dict['created_at']))

    def serialize(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'job_type_id': self.job_type_id,
            'created_at': format_dt_iso(self.created_at),
        }

    def __str__(self):
        return f"{self.job_type_id}@{self.id}"


def new_execution(job_type_id: str, created_at: Optional[datetime] = None) -> Execution:
    return Execution(unique_timestamp_hex(), job_type_id, created_at or utc_now())
