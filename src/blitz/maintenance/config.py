import logging
from pathlib import Path
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from blitz.maintenance import paths
from blitz.maintenance.db import PersistenceConfig
from blitz.maintenance.err import InvalidConfiguration
from blitz.maintenance.retention import RetentionPolicy
from blitz.maintenance.util import files

log = logging.getLogger(__name__)

CONFIG_SECTION = 'garbage_collector'
DEFAULT_SCHEDULE = '*/5 * * * *'


class GarbageCollectorConfig(BaseModel):
    schedule: str = Field(default=DEFAULT_SCHEDULE, description="Cron expression passed to the job manager")
    min_age_minutes: int = Field(default=1440, ge=0, description="Executions younger than this are never deleted")
    min_kept_recent_executions: int = Field(
        default=15, ge=0,
        description="Number of most recent executions kept per job type regardless of their age"
    )
    enabled: bool = True
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig.default_sqlite)

    @field_validator('schedule')
    @classmethod
    def schedule_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("schedule cannot be blank")
        return value.strip()

    def policy(self) -> RetentionPolicy:
        return RetentionPolicy(self.min_age_minutes, self.min_kept_recent_executions)


def config_from_dict(conf: Dict[str, Any]) -> GarbageCollectorConfig:
    """
    Create a validated configuration model from a dict.

    Raises:
        InvalidConfiguration: If the provided dict cannot be validated against the model.
    """
    try:
        return GarbageCollectorConfig.model_validate(conf)
    except ValidationError as e:
        raise InvalidConfiguration(f"Invalid `{CONFIG_SECTION}` configuration: {e}") from e


def load_config(path: Optional[Path] = None, **overrides) -> GarbageCollectorConfig:
    """
    Load the garbage collector configuration from the `[garbage_collector]` table of a TOML file.

    If no path is provided the config file is looked up in the config search path and defaults are used
    when none is found. Keyword arguments override values read from the file.

    Args:
        path: Explicit path of the config file
        **overrides: Field values taking precedence over the file

    Returns:
        A validated GarbageCollectorConfig model instance.

    Raises:
        ConfigFileNotFoundError: If an explicitly provided file does not exist.
        InvalidConfiguration: If the resulting configuration fails validation.
    """
    if path:
        path = Path(path)
        if not path.exists():
            raise paths.ConfigFileNotFoundError(str(path))
    else:
        path = paths.find_config_file()

    conf = {}
    if path:
        conf = dict(files.read_toml_file(path).get(CONFIG_SECTION, {}))
        log.debug("event=[config_loaded] file=[%s]", path)
    else:
        log.debug("event=[config_file_not_found] using=[defaults]")

    conf.update(overrides)
    return config_from_dict(conf)
