"""LinQR structured logging: audit events, call tracing, console/JSON output."""

import functools
import json
import logging
import os
import sys
import time
import traceback
from datetime import datetime, timezone

# Custom AUDIT level (between WARNING=30 and ERROR=40)
AUDIT = 35
logging.addLevelName(AUDIT, "AUDIT")

ROOT_LOGGER = "linqr"
LEVEL_ENV = "LINQR_LOG_LEVEL"


def _truncate(value: object, max_len: int = 80) -> str:
    """Truncate a string for safe logging."""
    s = str(value)
    if len(s) > max_len:
        return s[:max_len] + "..."
    return s


def _summarize(value: object) -> str:
    """Short description of a value; never dumps pixels, bytes or payload text."""
    type_name = type(value).__name__
    if isinstance(value, (bytes, bytearray)):
        return f"<{type_name}[{len(value)}]>"
    if isinstance(value, (str, int, float, bool)) or value is None:
        return _truncate(repr(value), 80)

    # Payloads first: they also expose their text as ``data``.
    length = getattr(value, "byte_length", None)
    if isinstance(length, int):
        return f"<{type_name} {length}B>"
    data = getattr(value, "data", None)
    if isinstance(data, (bytes, bytearray)):
        return f"<{type_name} {getattr(value, 'media_type', '?')} {len(data)}B>"
    size = getattr(value, "size", None)
    if isinstance(size, tuple) and len(size) == 2:
        return f"<{type_name} {size[0]}x{size[1]}>"

    if isinstance(value, (list, tuple)):
        return f"{type_name}[{len(value)}]"
    if isinstance(value, dict):
        return f"dict[{len(value)} keys]"
    return f"<{type_name}>"


def _timestamp(record: logging.LogRecord, fmt: str) -> str:
    return datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(fmt)[:-3]


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record):
        entry = {
            "ts": _timestamp(record, "%Y-%m-%dT%H:%M:%S.%f") + "Z",
            "level": record.levelname,
            "src": record.name,
        }
        event = getattr(record, "event", None)
        if event:
            entry["event"] = event
        if hasattr(record, "duration_ms"):
            entry["duration_ms"] = round(record.duration_ms, 2)
        if getattr(record, "ctx", None):
            entry["ctx"] = record.ctx
        if not event and record.getMessage():
            entry["msg"] = record.getMessage()
        if record.exc_info and record.exc_info[1]:
            entry["traceback"] = traceback.format_exception(*record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable coloured console output."""

    COLORS = {
        "DEBUG": "\033[36m",    # cyan
        "INFO": "\033[32m",     # green
        "AUDIT": "\033[35m",    # magenta
        "WARNING": "\033[33m",  # yellow
        "ERROR": "\033[31m",    # red
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record):
        level = f"{record.levelname:5s}"
        if self.color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        parts = [_timestamp(record, "%H:%M:%S.%f"), level, f"[{record.name}]"]

        event = getattr(record, "event", None)
        if event:
            parts.append(event)
        if hasattr(record, "duration_ms"):
            parts.append(f"({record.duration_ms:.1f}ms)")

        ctx = getattr(record, "ctx", None)
        if ctx:
            parts.append(" ".join(f"{k}={_truncate(v)}" for k, v in ctx.items()))
        elif not event and record.getMessage():
            parts.append(record.getMessage())

        if record.exc_info and record.exc_info[1]:
            parts.append(f"\n{''.join(traceback.format_exception(*record.exc_info))}")
        return " ".join(parts)


def setup_logging(level: str | None = None, log_file: str | None = None, json_format: bool = False):
    """Configure the ``linqr`` logger.

    Args:
        level: DEBUG, INFO, AUDIT, WARNING or ERROR. Falls back to the
            ``LINQR_LOG_LEVEL`` environment variable, then INFO.
        log_file: If set, also write JSON lines to this path.
        json_format: Use JSON on the console too.
    """
    level = (level or os.environ.get(LEVEL_ENV) or "INFO").upper()
    root = logging.getLogger(ROOT_LOGGER)
    numeric = logging.getLevelName(level)
    root.setLevel(numeric if isinstance(numeric, int) else logging.INFO)
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(color=sys.stderr.isatty()))
    root.addHandler(console)

    if log_file:
        fh = logging.FileHandler(log_file)
        fh.setFormatter(JsonFormatter())
        root.addHandler(fh)
    return root


def get_logger(module_name: str) -> logging.Logger:
    """Logger scoped under the linqr namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{module_name}")


def _emit(log: logging.Logger, level: int, event: str, ctx: dict, duration_ms: float | None = None, exc_info=None):
    record = log.makeRecord(
        name=log.name, level=level, fn="", lno=0,
        msg="", args=(), exc_info=exc_info,
    )
    record.event = event
    record.ctx = ctx
    if duration_ms is not None:
        record.duration_ms = duration_ms
    log.handle(record)


def audit(event: str, logger: logging.Logger | None = None, **context):
    """Emit an AUDIT-level structured entry.

    Args:
        event: Machine-readable tag, e.g. ``"payload.capacity_exceeded"``.
        logger: Logger to use. Defaults to the linqr root.
        **context: Key-value pairs attached to the event.
    """
    log = logger or logging.getLogger(ROOT_LOGGER)
    if log.isEnabledFor(AUDIT):
        _emit(log, AUDIT, event, context)


def trace(func=None, *, logger_name: str | None = None):
    """Decorator that logs entry (DEBUG), exit with timing (INFO) and errors (ERROR).

    Exceptions are logged with their traceback and re-raised unchanged.
    """
    def decorator(fn):
        _logger_name = logger_name or fn.__module__.replace(f"{ROOT_LOGGER}.", "")
        log = get_logger(_logger_name)

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            fn_name = fn.__name__

            if log.isEnabledFor(logging.DEBUG):
                _emit(log, logging.DEBUG, f"{fn_name}.enter", {
                    "args": [_summarize(a) for a in args],
                    "kwargs": {k: _summarize(v) for k, v in kwargs.items()},
                })

            start = time.perf_counter()
            try:
                result = fn(*args, **kwargs)
            except Exception:
                elapsed = (time.perf_counter() - start) * 1000
                _emit(log, logging.ERROR, f"{fn_name}.error", {"function": fn_name},
                      duration_ms=elapsed, exc_info=sys.exc_info())
                raise

            elapsed = (time.perf_counter() - start) * 1000
            if log.isEnabledFor(logging.INFO):
                _emit(log, logging.INFO, f"{fn_name}.done", {"result": _summarize(result)},
                      duration_ms=elapsed)
            return result

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
