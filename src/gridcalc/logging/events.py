"""Unified event schema and module-level emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context -- failures are
swallowed and printed to stderr.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Sheet I/O
    sheet_loaded = "sheet_loaded"
    sheet_exported = "sheet_exported"
    sheet_load_failed = "sheet_load_failed"
    record_rejected = "record_rejected"

    # Recalculation
    cycle_detected = "cycle_detected"

    # Interactive loop
    command_failed = "command_failed"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

INVALID_ADDRESS = "invalid_address"
BAD_RECORD = "bad_record"
CYCLICAL_DEPENDENCY = "cyclical_dependency"


# ---------------------------------------------------------------------------
# Context truncation
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 256


def truncate_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with long strings cut to 256 chars.

    Cell contents may be up to 4096 bytes; the log keeps only a prefix.
    """
    out: dict[str, Any] = {}
    for k, v in context.items():
        if isinstance(v, dict):
            out[k] = truncate_context(v)
        elif isinstance(v, list):
            out[k] = [_truncate_value(item) for item in v]
        else:
            out[k] = _truncate_value(v)
    return out


def _truncate_value(v: Any) -> Any:
    if isinstance(v, dict):
        return truncate_context(v)
    if isinstance(v, str) and len(v) > _MAX_VALUE_LEN:
        return v[:_MAX_VALUE_LEN] + "...[truncated]"
    return v


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class SheetEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Module-level sink reference
# ---------------------------------------------------------------------------

# Set by ``set_log_dir``; ``None`` means events are discarded.
_sink: Any = None  # EventSink | None


def set_log_dir(log_dir: Any, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
    """Configure the module-level event sink.

    This should be called early in a CLI command.  If it is never called
    (or called with ``None``), ``emit()`` silently discards events.
    """
    global _sink
    from pathlib import Path

    from gridcalc.logging.sink import EventSink

    if log_dir is None:
        _sink = None
        return
    _sink = EventSink(Path(log_dir), fsync=fsync, tail_bytes=tail_bytes)


def _get_sink() -> Any:
    """Return the module-level sink, or None."""
    return _sink


# ---------------------------------------------------------------------------
# Rate-limited stderr warnings
# ---------------------------------------------------------------------------

_last_stderr_ts: float = 0.0
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Print a warning to stderr, rate-limited to one per 60 seconds."""
    global _last_stderr_ts
    now = time.monotonic()
    if now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[gridcalc] {msg}", file=sys.stderr)
    except Exception:
        pass


# ---------------------------------------------------------------------------
# Safe emit helpers
# ---------------------------------------------------------------------------


def emit(event: SheetEvent) -> None:
    """Write an event to the configured log.

    **Never raises.**  On failure, prints a rate-limited warning to stderr.
    """
    try:
        sink = _get_sink()
        if sink is None:
            return
        event = event.model_copy(update={"context": truncate_context(event.context)})
        sink.write(event)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
) -> None:
    """Convenience: emit an info-level event."""
    emit(
        SheetEvent(
            level=EventLevel.info,
            event_type=event_type,
            message=message,
            context=context or {},
        )
    )


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    """Convenience: emit a warning-level event."""
    emit(
        SheetEvent(
            level=EventLevel.warning,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        )
    )


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    """Convenience: emit an error-level event."""
    emit(
        SheetEvent(
            level=EventLevel.error,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        )
    )
