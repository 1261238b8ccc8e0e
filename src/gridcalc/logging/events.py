"""Structured events emitted by the spreadsheet engine.

Events describe cell edits, rejected edits and sheet file I/O.  They are
written through a module-level ``EventSink`` that ``set_project_dir``
installs; until then ``emit()`` drops everything.  Timestamps are UTC
ISO-8601 with a ``Z`` suffix.

Emitting never raises into the caller.  A failing sink produces a warning
on stderr, at most once a minute.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums and error codes
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    cell_updated = "cell_updated"
    circular_rejected = "circular_rejected"
    formula_rejected = "formula_rejected"
    sheet_saved = "sheet_saved"
    sheet_loaded = "sheet_loaded"
    sheet_io_failed = "sheet_io_failed"


FORMULA_FORMAT = "formula_format"
CIRCULAR_REFERENCE = "circular_reference"
SHEET_READ_FAILED = "sheet_read_failed"
SHEET_WRITE_FAILED = "sheet_write_failed"
VERSION_MISMATCH = "version_mismatch"


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class GridcalcEvent(BaseModel):
    """One line of the project event log."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


def make_cell_event(
    event_type: EventType,
    level: EventLevel,
    message: str,
    *,
    cell: str,
    contents: str | None = None,
    error_code: str | None = None,
    extra: dict[str, Any] | None = None,
) -> GridcalcEvent:
    """Build an event about one cell.  ``cell`` is always in the context."""
    context: dict[str, Any] = {"cell": cell}
    if contents is not None:
        context["contents"] = contents
    context.update(extra or {})
    return GridcalcEvent(
        level=level, event_type=event_type, message=message, context=context, error_code=error_code
    )


def make_sheet_event(
    event_type: EventType,
    level: EventLevel,
    message: str,
    *,
    path: str | None = None,
    version: str | None = None,
    error_code: str | None = None,
    extra: dict[str, Any] | None = None,
) -> GridcalcEvent:
    """Build an event about a sheet file."""
    context: dict[str, Any] = {}
    if path is not None:
        context["path"] = path
    if version is not None:
        context["version"] = version
    context.update(extra or {})
    return GridcalcEvent(
        level=level, event_type=event_type, message=message, context=context, error_code=error_code
    )


# ---------------------------------------------------------------------------
# Context clipping and attribution
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 256
_TRUNCATED = "...[truncated]"


def clip_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with strings over 256 characters cut short.

    Nested dicts and lists are clipped recursively.
    """
    return {key: _clip(value) for key, value in context.items()}


def _clip(value: Any) -> Any:
    if isinstance(value, str):
        return value if len(value) <= _MAX_VALUE_LEN else value[:_MAX_VALUE_LEN] + _TRUNCATED
    if isinstance(value, dict):
        return clip_context(value)
    if isinstance(value, list):
        return [_clip(item) for item in value]
    return value


# sheet_io_failed carries no requirement: the path may be what failed.
_REQUIRED_CONTEXT: dict[EventType, frozenset[str]] = {
    EventType.cell_updated: frozenset({"cell"}),
    EventType.circular_rejected: frozenset({"cell"}),
    EventType.formula_rejected: frozenset({"cell"}),
    EventType.sheet_saved: frozenset({"path"}),
    EventType.sheet_loaded: frozenset({"path"}),
}


def _check_attribution(event: GridcalcEvent) -> GridcalcEvent:
    """Downgrade *event* to a warning when required context keys are missing."""
    missing = _REQUIRED_CONTEXT.get(event.event_type, frozenset()) - set(event.context)
    if not missing:
        return event
    context = {**event.context, "_missing_attribution": sorted(missing)}
    return event.model_copy(update={"level": EventLevel.warning, "context": context})


# ---------------------------------------------------------------------------
# Module-level sink
# ---------------------------------------------------------------------------

_sink: Any = None  # EventSink | None


def set_project_dir(project_dir: Any) -> None:
    """Send subsequent events to the log of the project at *project_dir*.

    ``logging_fsync`` and ``logging_tail_bytes`` are taken from the
    project's ``gridcalc.yaml``; an unreadable config falls back to the
    sink defaults with a stderr warning.
    """
    global _sink
    from gridcalc.logging.sink import EventSink
    from gridcalc.project import load_project_config

    options: dict[str, Any] = {}
    try:
        config = load_project_config(Path(project_dir))
        options["fsync"] = bool(config.get("logging_fsync", False))
        if config.get("logging_tail_bytes") is not None:
            options["tail_bytes"] = int(config["logging_tail_bytes"])
    except Exception:
        _stderr_warning(f"could not read logging config: {traceback.format_exc()}")

    _sink = EventSink(Path(project_dir), **options)


def reset_sink() -> None:
    """Drop the module-level sink; ``emit()`` discards events again."""
    global _sink
    _sink = None


_STDERR_INTERVAL_SECS = 60.0
_last_stderr_ts = float("-inf")


def _stderr_warning(msg: str) -> None:
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
# Emitting
# ---------------------------------------------------------------------------


def emit(event: GridcalcEvent) -> None:
    """Clip, check and append *event* to the project log.  Never raises."""
    sink = _sink
    if sink is None:
        return
    try:
        event = event.model_copy(update={"context": clip_context(event.context)})
        sink.write(_check_attribution(event))
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")
