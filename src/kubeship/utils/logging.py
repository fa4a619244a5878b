"""Logging setup for release operations.

Records carry structured release fields (release, namespace, version,
operation, hook) set by LogContext. The console shows them as a short
prefix and the JSON log file keeps them as separate keys.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

# Structured fields copied from log records into JSON output
STRUCTURED_FIELDS = ('release', 'namespace', 'version', 'operation', 'hook', 'duration')

LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
RESET = '\033[0m'

# Loggers of cluster client libraries that are too chatty below WARNING
NOISY_LOGGERS = ('urllib3', 'kubernetes', 'websocket')

_log_fields: ContextVar[Dict[str, Any]] = ContextVar('kubeship_log_fields', default={})


def structured_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the structured release fields present on a record."""
    return {name: getattr(record, name) for name in STRUCTURED_FIELDS if hasattr(record, name)}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log files."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(structured_fields(record))
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Lines logged inside a LogContext are prefixed with the release identity,
    e.g. ``[web.v3 upgrade]``.
    """

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console.

        Args:
            record: The log record to format

        Returns:
            Formatted log string
        """
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime('%H:%M:%S')
        level = f"{record.levelname:8}"
        if self.use_color:
            level = f"{LEVEL_COLORS.get(record.levelname, '')}{level}{RESET}"

        line = f"{timestamp} {level} {self._prefix(record)}{record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    @staticmethod
    def _prefix(record: logging.LogRecord) -> str:
        release = getattr(record, 'release', None)
        if release is None:
            return ''
        identity = str(release)
        version = getattr(record, 'version', None)
        if version is not None:
            identity = f"{identity}.v{version}"
        operation = getattr(record, 'operation', None)
        if operation:
            identity = f"{identity} {operation}"
        return f"[{identity}] "


def _context_record_factory(base_factory):
    def factory(*args, **kwargs):
        record = base_factory(*args, **kwargs)
        for key, value in _log_fields.get().items():
            setattr(record, key, value)
        return record

    factory.kubeship_context = True
    return factory


def _install_record_factory() -> None:
    current = logging.getLogRecordFactory()
    if not getattr(current, 'kubeship_context', False):
        logging.setLogRecordFactory(_context_record_factory(current))


def setup_logging(
    log_level: str = 'info',
    log_dir: Optional[Union[str, Path]] = '.kubeship/logs',
    quiet_loggers: Iterable[str] = NOISY_LOGGERS
) -> Optional[Path]:
    """Configure console and JSON file logging on the root logger.

    Args:
        log_level: Console level (debug, info, warning, error)
        log_dir: Directory for daily JSON log files, None to disable them
        quiet_loggers: Loggers raised to WARNING

    Returns:
        Path of the JSON log file, if one is written
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if log_dir is not None else level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ConsoleFormatter(use_color=sys.stdout.isatty()))
    root_logger.addHandler(console_handler)

    log_file = None
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        log_file = log_path / f"kubeship-{datetime.now(timezone.utc):%Y%m%d}.jsonl"
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Name of the logger (typically __name__)

    Returns:
        Logger instance
    """
    _install_record_factory()
    return logging.getLogger(name)


class LogContext:
    """Context manager adding structured release fields to log records.

    Fields are held per execution context, so concurrent operations on
    different threads keep their own fields. Nested contexts add to the
    fields of the enclosing one.
    """

    def __init__(self, logger: logging.Logger, **fields: Any):
        """Initialize log context.

        Args:
            logger: Logger the fields are meant for
            **fields: Structured fields, e.g. release="web", operation="install"
        """
        self.logger = logger
        self.fields = fields
        self._token = None

    def __enter__(self) -> "LogContext":
        _install_record_factory()
        self._token = _log_fields.set({**_log_fields.get(), **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            _log_fields.reset(self._token)
            self._token = None
