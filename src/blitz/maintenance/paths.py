"""
Followed conventions:
 - https://specifications.freedesktop.org/basedir-spec/basedir-spec-latest.html
 - https://refspecs.linuxfoundation.org/FHS_3.0/fhs/ch03s15.html
"""

import getpass
import os
import re
from pathlib import Path
from typing import List, Optional

from blitz.maintenance.err import MaintenanceException

CONFIG_DIR = 'blitz'
CONFIG_FILE = 'blitz.toml'
_LOG_FILE = 'maintenance.log'


def _is_root():
    return os.geteuid() == 0


def find_config_file(file=CONFIG_FILE) -> Optional[Path]:
    """Returns config found in the search path
    :return: config file path or None when the file is not present in any directory of the search path
    """
    for config_dir in blitz_config_file_search_path():
        config = config_dir / file
        if config.exists():
            return config

    return None


def blitz_config_file_search_path() -> List[Path]:
    search_path = config_file_search_path()
    return [search_path[0]] + [path / CONFIG_DIR for path in search_path[1:]]


def config_file_search_path() -> List[Path]:
    """Sorted list of directories in which the program should look for configuration files:

    1. Current working directory
    2. ${XDG_CONFIG_HOME} or defaults to ${HOME}/.config
    3. ${XDG_CONFIG_DIRS} or defaults to /etc/xdg
    4. /etc

    :return: list of directories for configuration file lookup
    """
    search_path = [Path.cwd()]
    search_path.append(xdg_config_home())
    search_path += xdg_config_dirs()
    search_path.append(Path('/etc'))

    return search_path


def xdg_config_home() -> Path:
    if os.environ.get('XDG_CONFIG_HOME'):
        return Path(os.environ['XDG_CONFIG_HOME'])
    else:
        return Path.home() / '.config'


def xdg_config_dirs() -> List[Path]:
    if os.environ.get('XDG_CONFIG_DIRS'):
        return [Path(path) for path in re.split(r":", os.environ['XDG_CONFIG_DIRS'])]
    else:
        return [Path('/etc/xdg')]


def log_file_path(create: bool) -> Path:
    """
    1. Root user: /var/log/blitz/{log-file}
    2. Non-root user: ${XDG_CACHE_HOME}/blitz/{log-file} or default to ${HOME}/.cache/blitz

    :param create: create path directories if not exist
    :return: log file path
    """

    if _is_root():
        path = Path('/var/log')
    else:
        if os.environ.get('XDG_CACHE_HOME'):
            path = Path(os.environ['XDG_CACHE_HOME'])
        else:
            path = Path.home() / '.cache'

    if create:
        os.makedirs(path / CONFIG_DIR, exist_ok=True)

    return path / CONFIG_DIR / _LOG_FILE


def lock_dir(create: bool) -> Path:
    """
    1. Root user: /run/lock/blitz
    2. Non-root user: /tmp/blitz_${USER}

    :param create: create path directories if not exist
    :return: directory path for file locks
    """

    if _is_root():
        path = Path('/run/lock/blitz')
    else:
        path = Path(f"/tmp/blitz_{getpass.getuser()}")

    if create:
        path.mkdir(mode=0o700, exist_ok=True, parents=True)

    return path


def get_data_dir(*, create: bool = False) -> Path:
    """
    Determines the appropriate data directory for persistent application data based on user privileges.

    Follows XDG standards for data storage locations.

    Args:
        create: If True, ensures the directory exists

    Returns:
        Path to the application data directory
    """
    if _is_root():
        data_path = Path('/var/lib/blitz')
    elif os.environ.get('XDG_DATA_HOME'):
        data_path = Path(os.environ['XDG_DATA_HOME']) / CONFIG_DIR
    else:
        data_path = Path.home() / '.local' / 'share' / CONFIG_DIR

    if create:
        data_path.mkdir(parents=True, exist_ok=True)

    return data_path


def sqlite_db_path(*, create: bool = False) -> Path:
    return get_data_dir(create=create) / "executions.db"


class ConfigFileNotFoundError(MaintenanceException, FileNotFoundError):

    def __init__(self, file):
        self.file = file
        super().__init__(f"Config file `{file}` not found")
