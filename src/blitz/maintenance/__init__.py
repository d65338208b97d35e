"""
Maintenance jobs of the Blitz job runner, most notably the garbage collection of old job executions.
"""

__version__ = "0.1.0"

from blitz.maintenance.config import GarbageCollectorConfig, load_config
from blitz.maintenance.execution import Execution, new_execution
from blitz.maintenance.gc import GarbageCollector, PassOutcome, PassResult, create_garbage_collector, \
    run_retention_pass
from blitz.maintenance.retention import RetentionPolicy, evaluate
from blitz.maintenance.scheduling import register_garbage_collector, InProcessJobManager, RecurringJobManager


def init_garbage_collector(job_manager: RecurringJobManager, config_path=None, **overrides) -> GarbageCollectorConfig:
    """
    Loads the configuration and registers the garbage collector with the job manager.
    Intended to be called once at application startup.

    Returns:
        GarbageCollectorConfig: The configuration the collector was registered with
    """
    config = load_config(config_path, **overrides)
    register_garbage_collector(job_manager, config)
    return config
