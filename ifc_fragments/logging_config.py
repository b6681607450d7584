"""
Logging for the ifc_fragments package.

Every module logs through ``logging.getLogger(__name__)`` and attaches
structured fields with ``extra={}``. The entry point calls
``setup_logging`` once; records then go to stderr (readable lines) and,
optionally, to a JSON-lines file. Numpy values in the extra fields are
converted so that both outputs stay printable.

    setup_logging(level=logging.DEBUG, json_file="fragments.log.json")
    logger.info("Merged bucket", extra={"category": 2391406946, "floor": 12})
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, Union

import numpy as np

F = TypeVar('F', bound=Callable[..., Any])

LOGGER_NAMESPACE = "ifc_fragments"

# Attributes every LogRecord carries; anything else came in through extra={}
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {'message', 'asctime', 'taskName'}


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value for key, value in vars(record).items()
        if key not in _RECORD_ATTRIBUTES
    }


def _to_jsonable(value: Any) -> Any:
    """Plain Python for numpy values; str() for anything json cannot encode."""
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: timestamp, level, logger, message; ``location`` for DEBUG and
    WARNING or above; ``exception`` when exc_info is set; then the extra
    fields unless ``include_extra`` is off.
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.levelno <= logging.DEBUG or record.levelno >= logging.WARNING:
            entry["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if self.include_extra:
            entry.update(
                (key, _to_jsonable(value))
                for key, value in _extra_fields(record).items()
            )
        return json.dumps(entry, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """``[HH:MM:SS] LEVEL module: message [key=value, ...]``

    The ``ifc_fragments.`` prefix is dropped from logger names. Arrays and
    long sequences in the extra fields are summarized, not printed.
    """

    LEVEL_COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True, show_extra: bool = True):
        super().__init__()
        self.use_colors = use_colors
        self.show_extra = show_extra

    @staticmethod
    def _format_value(key: str, value: Any) -> str:
        if isinstance(value, float):
            return f"{key}={value:.3g}"
        if isinstance(value, np.ndarray):
            return f"{key}=<array {value.shape}>"
        if isinstance(value, (list, tuple, set)) and len(value) > 3:
            return f"{key}=[...{len(value)} items]"
        return f"{key}={value}"

    def _level(self, levelname: str) -> str:
        color = self.LEVEL_COLORS.get(levelname) if self.use_colors else None
        if color is None:
            return f"{levelname:8}"
        return f"{color}{levelname:8}{self.RESET}"

    def format(self, record: logging.LogRecord) -> str:
        name = record.name
        if name.startswith(LOGGER_NAMESPACE + "."):
            name = name[len(LOGGER_NAMESPACE) + 1:]

        line = "[{}] {} {}: {}".format(
            datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
            self._level(record.levelname),
            name,
            record.getMessage(),
        )
        if self.show_extra:
            extras = [self._format_value(k, v) for k, v in _extra_fields(record).items()]
            if extras:
                line += " [" + ", ".join(extras) + "]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: int = logging.INFO,
    json_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """Configure the ``ifc_fragments`` logger and return it.

    Existing handlers are replaced, so calling this twice does not
    duplicate output. Records do not propagate to the root logger.

    Args:
        level: threshold for the logger and its handlers.
        json_file: also write JSON lines to this file.
        console: write readable lines to stderr.
        use_colors: ANSI colors on the console.
    """
    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    handlers = []
    if console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ConsoleFormatter(use_colors=use_colors))
        handlers.append(handler)
    if json_file:
        handler = logging.FileHandler(Path(json_file), encoding='utf-8')
        handler.setFormatter(JSONFormatter())
        handlers.append(handler)

    for handler in handlers:
        handler.setLevel(level)
        logger.addHandler(handler)
    return logger


@contextmanager
def log_timing(
    logger: logging.Logger,
    operation: str,
    level: int = logging.DEBUG,
    **extra_fields: Any
) -> Iterator[Dict[str, Any]]:
    """Log the start, end and duration of a phase.

    The yielded dict is merged into the completion record, so counts
    known only at the end can be reported:

        with log_timing(logger, "Edge generation", fragments=len(targets)) as info:
            ...
            info["segments"] = total

    A failing phase is logged at ERROR and the exception re-raised.
    """
    info: Dict[str, Any] = {}
    fields = {"operation": operation, **extra_fields}
    started = time.perf_counter()
    logger.log(level, "Starting: %s", operation, extra={"event": "start", **fields})

    try:
        yield info
    except Exception as e:
        elapsed = time.perf_counter() - started
        logger.error("Failed: %s (%.3fs) - %s", operation, elapsed, e, extra={
            "event": "error", "elapsed_seconds": elapsed, "error": str(e), **fields,
        })
        raise

    info['elapsed_seconds'] = time.perf_counter() - started
    logger.log(level, "Completed: %s (%.3fs)", operation, info['elapsed_seconds'],
               extra={"event": "complete", **fields, **info})


def timed(
    logger: Optional[logging.Logger] = None,
    level: int = logging.DEBUG,
    operation: Optional[str] = None,
) -> Callable[[F], F]:
    """Decorator form of log_timing.

    Defaults to the logger of the function's module and the function name.
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with log_timing(logger or logging.getLogger(func.__module__),
                            operation or func.__name__, level):
                return func(*args, **kwargs)

        return wrapper  # type: ignore
    return decorator


class _ContextFilter(logging.Filter):
    """Copies the fields of a LogContext onto every record it sees."""

    def __init__(self, fields: Dict[str, Any]):
        super().__init__()
        self.fields = fields

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.fields.items():
            setattr(record, key, value)
        return True


class LogContext:
    """Stamp fields onto every package record while the block runs.

    The loader wraps each conversion in ``LogContext(model=name)``.
    Contexts nest; ``current()`` is the innermost one.
    """

    _current: Optional['LogContext'] = None

    def __init__(self, **fields: Any):
        self.fields = fields
        self._previous: Optional['LogContext'] = None
        self._filter = _ContextFilter(fields)

    @staticmethod
    def _targets() -> list:
        # A logger's own filters skip records from child loggers, so the
        # package handlers get the filter as well.
        package_logger = logging.getLogger(LOGGER_NAMESPACE)
        return [package_logger, *package_logger.handlers]

    def __enter__(self) -> 'LogContext':
        self._previous = LogContext._current
        LogContext._current = self
        for target in self._targets():
            target.addFilter(self._filter)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        for target in self._targets():
            target.removeFilter(self._filter)
        LogContext._current = self._previous

    @classmethod
    def current(cls) -> Optional['LogContext']:
        return cls._current
