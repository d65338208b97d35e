import logging
import sys

from blitz.maintenance import paths

DEFAULT_FORMAT = '%(asctime)s - %(levelname)-5s - %(name)s - %(message)s'

_root_logger = logging.getLogger('blitz')
_handlers = []


def configure(stdout_level='warn', *, file_level='off', file_path=None):
    """
    Attaches handlers to the `blitz` logger. Calling this function again replaces previously attached handlers.

    Args:
        stdout_level: Level name of the stdout handler or 'off'
        file_level: Level name of the file handler or 'off'
        file_path: Log file path; uses the default log location if None
    """
    reset()

    if not is_off(stdout_level):
        _add_handler(logging.StreamHandler(stream=sys.stdout), stdout_level)

    if not is_off(file_level):
        _add_handler(logging.FileHandler(file_path or paths.log_file_path(create=True)), file_level)

    levels = [h.level for h in _handlers]
    _root_logger.setLevel(min(levels) if levels else logging.NOTSET)


def reset():
    for handler in _handlers:
        _root_logger.removeHandler(handler)
        handler.close()
    _handlers.clear()


def is_off(level):
    return not level or str(level).lower() in ('off', 'none')


def _add_handler(handler, level):
    handler.setLevel(level_value(level))
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
    _root_logger.addHandler(handler)
    _handlers.append(handler)


def level_value(level):
    if isinstance(level, int):
        return level
    name = str(level).upper()
    if name == 'WARN':
        name = 'WARNING'
    value = logging.getLevelName(name)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value
