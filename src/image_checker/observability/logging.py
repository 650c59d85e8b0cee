"""
image-checker — structured logging.

File: src/image_checker/observability/logging.py
Last updated: 2026-10-19

Purpose
- One JSON object per line for every record under the ``image_checker`` logger,
  whether it came from stdlib ``logging`` or from ``structlog``.

Design
- Emitting threads only enqueue; a ``QueueListener`` thread formats and writes.
- Formatting is a ``structlog.stdlib.ProcessorFormatter`` chain: record fields,
  correlation context, redaction, then ``JSONRenderer``.
- Correlation fields (run, provider label, image id) live in a contextvar and
  are captured on the emitting thread before the record is queued.
"""

from __future__ import annotations

import atexit
import contextvars
import logging
import logging.handlers
import queue
import re
import threading
import time
from collections.abc import Callable, Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]
EventDict = MutableMapping[str, Any]

REDACTED: Final[str] = "***REDACTED***"
DEFAULT_LOGGER_NAME: Final[str] = "image_checker"
DEFAULT_LOG_FILENAME: Final[str] = "image-checker.jsonl"

_CORRELATION_KEYS: Final[frozenset[str]] = frozenset(
    {"run_id", "correlation_id", "provider_label", "image_id"}
)
_SECRET_KEY = re.compile(
    r"(?i)(secret|token|password|api_?key|authorization|credential|cookie|private_key)"
)
_SECRET_ASSIGNMENT = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b(\s*[:=]\s*)[^\s,;]+"
)
_BEARER = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

# Attributes every LogRecord has; anything else on a record came in via ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "correlation"}

_correlation: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "image_checker_correlation", default=()
)

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Settings for one queue-backed logging session."""

    run_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = DEFAULT_LOG_FILENAME
    log_to_stderr: bool = True
    log_to_file: bool = True
    redactor: LogRedactor | None = None


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = DEFAULT_LOGGER_NAME,
) -> logging.Logger:
    """Start logging from an ``[observability]`` table and route ``structlog`` into it."""

    cfg = dict(observability_config or {})
    level = cfg.get("log_level", "INFO")
    base_dir = log_dir if log_dir is not None else cfg.get("log_dir", "logs")
    redact = cfg.get("redact_secrets", True) is not False

    handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=base_dir if isinstance(base_dir, (str, Path)) else "logs",
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stderr=bool(cfg.get("log_to_stderr", True)),
            log_to_file=bool(cfg.get("log_to_file", True)),
            redactor=None if redact else _keep,
        )
    )
    configure_structlog()
    return handle.logger


def configure_structlog() -> None:
    """Hand ``structlog`` events to stdlib logging, fields travelling as ``extra``."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="logged_at"),
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class _ContextQueueHandler(logging.handlers.QueueHandler):
    """Enqueue without blocking; count what a full queue forces us to drop."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self.dropped = 0
        self._dropped_lock = threading.Lock()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        context = get_correlation_context()
        if context:
            record.correlation = context
        return super().prepare(record)  # type: ignore[no-any-return]

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self.dropped += 1


def _json_formatter(run_id: str, redactor: LogRedactor) -> logging.Formatter:
    def record_fields(_: object, __: str, event_dict: EventDict) -> EventDict:
        record: logging.LogRecord = event_dict["_record"]
        out: EventDict = {
            "_record": record,
            "_from_structlog": event_dict.get("_from_structlog", False),
            "timestamp": _utc_millis(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": str(event_dict.get("event", "")),
            "run_id": run_id,
        }
        for key, value in getattr(record, "correlation", {}).items():
            out[key] = value
        extras: dict[str, object] = {}
        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES or key.startswith("_"):
                continue
            if key in _CORRELATION_KEYS and isinstance(value, str) and value.strip():
                out[key] = value.strip()
            elif key not in _CORRELATION_KEYS:
                extras[key] = value
        if extras:
            out["fields"] = extras
        return out

    def redact(_: object, __: str, event_dict: EventDict) -> EventDict:
        event_dict["message"] = redactor(event_dict["message"])
        if "fields" in event_dict:
            event_dict["fields"] = redactor(_jsonable(event_dict["fields"]))
        return event_dict

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[record_fields],
        processors=[
            redact,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(
                sort_keys=True, separators=(",", ":"), ensure_ascii=False
            ),
        ],
    )


class StructuredLoggingHandle:
    """A running logging session: the logger, its sinks, and the listener thread."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path | None,
        queue_handler: _ContextQueueHandler,
        sinks: tuple[logging.Handler, ...],
        listener: logging.handlers.QueueListener,
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._queue_handler = queue_handler
        self._sinks = sinks
        self._listener = listener
        self._lock = threading.Lock()
        self._closed = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        pending = self._queue_handler.queue
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while getattr(pending, "unfinished_tasks", 0) and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            # stop() drains whatever is still queued before joining the thread.
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for sink in self._sinks:
                sink.flush()
                sink.close()
            self._closed = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Replace any active session with a new one described by ``config``."""

    global _active

    shutdown_logging()

    run_id = _text(config.run_id, "run_id")
    logger_name = _text(config.logger_name, "logger_name")
    filename = _text(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must be a bare file name")
    if isinstance(config.queue_size, bool) or not isinstance(config.queue_size, int):
        raise ValueError("queue_size must be an integer")
    if config.queue_size < 1:
        raise ValueError("queue_size must be > 0")
    level = _level(config.level)

    sinks: list[logging.Handler] = []
    log_path: Path | None = None
    if config.log_to_file:
        log_path = Path(config.base_log_dir) / run_id / filename
        log_path.parent.mkdir(parents=True, exist_ok=True)
        sinks.append(logging.FileHandler(log_path, encoding="utf-8"))
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler())
    if not sinks:
        sinks.append(logging.NullHandler())

    formatter = _json_formatter(run_id, config.redactor or default_log_redactor)
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _ContextQueueHandler(log_queue)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        queue_handler=queue_handler,
        sinks=tuple(sinks),
        listener=listener,
    )
    with _active_lock:
        _active = handle
    _hook_atexit()
    return handle


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Stop ``handle`` (default: the active session) and close its sinks."""

    global _active

    target = handle if handle is not None else get_active_logging_handle()
    if target is None:
        return
    target.shutdown(timeout_seconds=timeout_seconds)
    with _active_lock:
        if _active is target:
            _active = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


def set_correlation_fields(
    **fields: str | None,
) -> contextvars.Token[tuple[tuple[str, str], ...]]:
    """Bind (or, with ``None``, unbind) correlation fields; returns a reset token."""

    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            state.pop(key, None)
        else:
            state[_text(key, "correlation key")] = _text(value, "correlation value")
    return _correlation.set(tuple(state.items()))


def reset_correlation_fields(token: contextvars.Token[tuple[tuple[str, str], ...]]) -> None:
    _correlation.reset(token)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Mask values under secret-looking keys and inline ``key=value`` credentials."""

    if isinstance(value, str):
        masked = _SECRET_ASSIGNMENT.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", value)
        return _BEARER.sub(f"Bearer {REDACTED}", masked)
    if isinstance(value, list):
        return [default_log_redactor(item) for item in value]
    if isinstance(value, dict):
        return {
            key: REDACTED if _SECRET_KEY.search(key) else default_log_redactor(item)
            for key, item in value.items()
        }
    return value


def _keep(value: JSONValue) -> JSONValue:
    return value


def _jsonable(value: object) -> JSONValue:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Path):
        return value.as_posix()
    return repr(value)


def _utc_millis(epoch_seconds: float) -> str:
    stamp = datetime.fromtimestamp(epoch_seconds, tz=UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def _hook_atexit() -> None:
    global _atexit_hooked
    if not _atexit_hooked:
        atexit.register(shutdown_logging)
        _atexit_hooked = True


def _text(value: object, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value.strip()


def _level(value: int | str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        resolved = logging.getLevelName(value.strip().upper())
        if isinstance(resolved, int):
            return resolved
    raise ValueError(f"unsupported logging level {value!r}")


__all__ = [
    "DEFAULT_LOGGER_NAME",
    "JSONScalar",
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "REDACTED",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
