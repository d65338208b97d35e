from dataclasses import dataclass
from datetime import datetime, timedelta
from operator import attrgetter
from typing import Iterable, List

from blitz.maintenance.execution import Execution


@dataclass(frozen=True)
class RetentionPolicy:
    """
    Retention limits for the execution history of each job type.

    An execution is kept if it is younger than `min_age_minutes` or if it is one of the
    `min_kept_recent_executions` most recent executions older than that.
    """
    min_age_minutes: int = 1440
    min_kept_recent_executions: int = 15

    def __post_init__(self):
        for name in ('min_age_minutes', 'min_kept_recent_executions'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"`{name}` must be an integer, got: {value!r}")
            if value < 0:
                raise ValueError(f"`{name}` cannot be negative, got: {value}")

    @property
    def min_age(self) -> timedelta:
        return timedelta(minutes=self.min_age_minutes)

    def cutoff(self, now: datetime) -> datetime:
        return now - self.min_age


def evaluate(now: datetime, policy: RetentionPolicy, executions: Iterable[Execution]) -> List[str]:
    """
    Computes which executions of a single job type are eligible for deletion.

    Only executions created before the cutoff (`now - min_age`) are candidates. From those, the most recent
    `min_kept_recent_executions` are retained and the rest is returned.

    Args:
        now: Current time (naive UTC)
        policy: Retention limits
        executions: Executions of one job type, expected in descending `created_at` order

    Returns:
        List[str]: IDs of the executions to delete, most recent first
    """
    cutoff = policy.cutoff(now)
    stale = [e for e in sorted(executions, key=attrgetter('created_at'), reverse=True) if e.created_at < cutoff]
    return [e.id for e in stale[policy.min_kept_recent_executions:]]
