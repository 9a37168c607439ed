"""Configuration of the PanelGround engine.

Provides the engine logger and the defaults used by operations
when the caller doesn't explicitly provide a value.

The defaults can be changed globally::

    >>> from panelground import config
    >>> config.set_join_nulls(False)
    >>> config.get_join_nulls()
    False

or only for a block of code using :func:`option_context`::

    >>> with config.option_context(skip_nulls=True):
    ...     config.get_skip_nulls()
    True
    >>> config.get_skip_nulls()
    False
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator

# Name of the logger used by all the engine components.
LOGGER_NAME = "panelground"

LOG_FORMATS = {
    "simple": "%(levelname).1s %(message)s",
    "verbose": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}

_logger: logging.Logger | None = None
_log_level: int = logging.WARNING
_log_format: str = "simple"


def _get_formatter() -> logging.Formatter:
    """Get formatter based on current format setting."""
    fmt = LOG_FORMATS[_log_format]
    if _log_format == "verbose":
        return logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")
    return logging.Formatter(fmt)


def get_logger() -> logging.Logger:
    """Get the engine logger, configuring it on first use."""
    global _logger

    if _logger is None:
        _logger = logging.getLogger(LOGGER_NAME)
        _logger.setLevel(_log_level)

        if not _logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(_log_level)
            handler.setFormatter(_get_formatter())
            _logger.addHandler(handler)

    return _logger


def set_log_level(level: int) -> None:
    """Set the logging level of the engine.

    :param level: A logging level like ``logging.DEBUG``.
    """
    global _log_level

    _log_level = level
    if _logger is not None:
        _logger.setLevel(level)
        for handler in _logger.handlers:
            handler.setLevel(level)


def enable_debug() -> None:
    """Log every operation executed by the engine."""
    set_log_level(logging.DEBUG)


def disable_debug() -> None:
    """Only log warnings and errors."""
    set_log_level(logging.WARNING)


def set_log_format(format_name: str) -> None:
    """Set the log output format, either ``simple`` or ``verbose``."""
    global _log_format

    if format_name not in LOG_FORMATS:
        raise ValueError(f"Unknown format: {format_name}. Use 'simple' or 'verbose'")
    _log_format = format_name
    if _logger is not None:
        for handler in _logger.handlers:
            handler.setFormatter(_get_formatter())


# Whether null join keys match each other in equality joins.
# SQL semantics: they never do.
_join_nulls: bool = False

# Whether reductions ignore nulls. When disabled a group
# containing any null reduces to null.
_skip_nulls: bool = False

# Suffix appended to right columns that collide with left ones in joins.
_join_suffix: str = "_right"


def get_join_nulls() -> bool:
    """If null keys match each other in equality joins."""
    return _join_nulls


def set_join_nulls(value: bool) -> None:
    """Set if null keys match each other in equality joins."""
    global _join_nulls
    _join_nulls = bool(value)


def get_skip_nulls() -> bool:
    """If aggregations skip null values by default."""
    return _skip_nulls


def set_skip_nulls(value: bool) -> None:
    """Set if aggregations skip null values by default."""
    global _skip_nulls
    _skip_nulls = bool(value)


def get_join_suffix() -> str:
    """Suffix for right columns colliding with left columns."""
    return _join_suffix


def set_join_suffix(value: str) -> None:
    """Set the suffix for right columns colliding with left columns."""
    global _join_suffix
    if not value:
        raise ValueError("Join suffix can't be empty")
    _join_suffix = value


_SETTERS = {
    "join_nulls": (get_join_nulls, set_join_nulls),
    "skip_nulls": (get_skip_nulls, set_skip_nulls),
    "join_suffix": (get_join_suffix, set_join_suffix),
}


@contextmanager
def option_context(**overrides: Any) -> Iterator[None]:
    """Temporarily override engine defaults.

    The previous values are restored when the block exits,
    even if it exits with an error.
    """
    unknown = set(overrides) - set(_SETTERS)
    if unknown:
        raise ValueError(f"Unknown options: {sorted(unknown)}")

    previous = {name: _SETTERS[name][0]() for name in overrides}
    try:
        for name, value in overrides.items():
            _SETTERS[name][1](value)
        yield
    finally:
        for name, value in previous.items():
            _SETTERS[name][1](value)


def resolve(value: Any, getter: Any) -> Any:
    """Return ``value`` unless it's ``None``, in such case the configured default."""
    if value is None:
        return getter()
    return value
