"""
Logging configuration for Hostsharing DynDNS.

This module provides logging setup with support for console and file output.
Sensitive information is automatically masked in log messages.
"""

from __future__ import annotations

import copy
import logging
import logging.handlers
import re
import sys
from typing import TYPE_CHECKING

from uvicorn.config import LOGGING_CONFIG

if TYPE_CHECKING:
    from pathlib import Path
    from typing import Final

    from hostsharing_dyndns.config import LoggingConfig


# Pattern to match sensitive tokens/keys in log messages
# Each tuple is (pattern, replacement)
# Capture the prefix to keep and mask the rest
SENSITIVE_PATTERNS: Final[list[tuple[re.Pattern[str], str]]] = [
    # "passwd" query parameter (uvicorn access log request line)
    # Mask completely
    (
        re.compile(r"(?<![\w])(passwd=)([^\s&\"']*)", re.IGNORECASE),
        r"\1******",
    ),
    # Stored credential (TOML snippet or model repr)
    # Supports: key = "...", salt = '...', key=b'...'
    # Mask completely
    (
        re.compile(r'(?<![\w])((?:key|salt)\s*=\s*b?")([^"]*)"', re.IGNORECASE),
        r'\1******"',
    ),
    (
        re.compile(r"(?<![\w])((?:key|salt)\s*=\s*b?')([^']*)'", re.IGNORECASE),
        r"\1******'",
    ),
]


# Constants
LOG_FORMAT: Final[str] = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

# Name of the package logger configured by "setup_logging()"
PACKAGE_LOGGER: Final[str] = "hostsharing_dyndns"


def mask_sensitive(value: str) -> str:
    """
    Apply all sensitive patterns to a string.

    Parameters
    ----------
    value : str
        The string to process.

    Returns
    -------
    str
        The string with credentials replaced by asterisks.
    """
    for pattern, replacement in SENSITIVE_PATTERNS:
        value = pattern.sub(replacement, value)
    return value


class SensitiveFilter(logging.Filter):
    """
    A logging filter that masks passwords and stored keys.

    Uvicorn's access logger passes the request path, including the query
    string, as a positional argument, so both the message and its
    arguments are masked.
    """

    # Attributes custom formatters may attach to a record
    _SENSITIVE_ATTRS: tuple[str, ...] = (
        "request_line",
        "full_path",
        "path",
        "url",
        "query_string",
    )

    @staticmethod
    def _mask_arg(arg: object) -> object:
        if isinstance(arg, str):
            return mask_sensitive(arg)
        return arg

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Mask credentials in a log record in place.

        Parameters
        ----------
        record : logging.LogRecord
            The log record to process.

        Returns
        -------
        bool
            Always True; records are never dropped.
        """
        if record.msg:
            record.msg = mask_sensitive(str(record.msg))

        if isinstance(record.args, dict):
            record.args = {k: self._mask_arg(v) for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(self._mask_arg(arg) for arg in record.args)

        for attr in self._SENSITIVE_ATTRS:
            value = getattr(record, attr, None)
            if isinstance(value, str):
                setattr(record, attr, mask_sensitive(value))

        return True


def _prepare_log_file(config: LoggingConfig) -> Path:
    """
    Create the log file (and its directory) if file logging is enabled.

    Parameters
    ----------
    config : LoggingConfig
        Logging configuration.

    Returns
    -------
    Path
        The log file path.

    Raises
    ------
    SystemExit
        If the log file cannot be created.
    """
    log_path = config.file_path_as_path
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.touch(exist_ok=True)
    except OSError as e:
        logging.getLogger(PACKAGE_LOGGER).critical(
            'Failed to create log file "%s": %s', log_path, e,
        )
        sys.exit(1)
    return log_path


def setup_logging(config: LoggingConfig) -> None:
    """
    Configure the package logger.

    Logs always go to the console; a watched log file is added when
    ``config.file_enabled`` is set.

    Parameters
    ----------
    config : LoggingConfig
        Logging configuration.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    logger.handlers.clear()

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.file_enabled:
        log_path = _prepare_log_file(config)
        handlers.append(
            logging.handlers.WatchedFileHandler(str(log_path), encoding="utf-8"),
        )

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(SensitiveFilter())
        logger.addHandler(handler)

    logger.propagate = False

    if config.file_enabled:
        logger.info('File logging enabled: "%s".', config.file_path)


def build_uvicorn_log_config(config: LoggingConfig) -> dict:
    """
    Build the uvicorn log configuration.

    Starts from uvicorn's default configuration, attaches the sensitive
    filter to its console handlers, and adds a file handler for the
    server and access loggers when file logging is enabled.

    Parameters
    ----------
    config : LoggingConfig
        Logging configuration.

    Returns
    -------
    dict
        A uvicorn-compatible ``dictConfig`` dictionary.
    """
    log_config = copy.deepcopy(LOGGING_CONFIG)

    log_config.setdefault("filters", {})["sensitive"] = {
        "()": f"{__name__}.SensitiveFilter",
    }
    for handler_name in ("default", "access"):
        log_config["handlers"][handler_name].setdefault("filters", []).append(
            "sensitive",
        )

    if config.file_enabled:
        log_path = _prepare_log_file(config)
        log_config.setdefault("formatters", {})["file"] = {
            "format": LOG_FORMAT,
            "datefmt": DATE_FORMAT,
        }
        log_config["handlers"]["file"] = {
            "class": "logging.handlers.WatchedFileHandler",
            "filename": str(log_path),
            "encoding": "utf-8",
            "formatter": "file",
            "filters": ["sensitive"],
        }
        # "uvicorn.error" propagates to "uvicorn"
        for logger_name in ("uvicorn", "uvicorn.access"):
            log_config["loggers"][logger_name]["handlers"].append("file")

    return log_config
