from pathlib import Path

import tomli_w

from blitz.maintenance import paths
from blitz.maintenance.config import CONFIG_SECTION


def create_test_config(config, *, directory=None):
    return create_custom_test_config(paths.CONFIG_FILE, {CONFIG_SECTION: config}, directory=directory)


def create_custom_test_config(filename, config, *, directory=None):
    path = _custom_test_config_path(filename, directory)
    with open(path, 'wb') as outfile:
        tomli_w.dump(config, outfile)
    return path


def remove_test_config(*, directory=None):
    config = _custom_test_config_path(paths.CONFIG_FILE, directory)
    if config.exists():
        config.unlink()


def _custom_test_config_path(filename, directory=None) -> Path:
    return (directory or Path.cwd()) / filename
