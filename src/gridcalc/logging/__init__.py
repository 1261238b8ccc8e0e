"""Event logging for spreadsheet edits and sheet file I/O.

Events are pydantic models appended as NDJSON to ``logs/events.ndjson``
under the project directory.
"""

from gridcalc.logging.events import (
    EventLevel,
    EventType,
    GridcalcEvent,
    clip_context,
    emit,
    make_cell_event,
    make_sheet_event,
    reset_sink,
    set_project_dir,
)
from gridcalc.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "GridcalcEvent",
    "clip_context",
    "emit",
    "make_cell_event",
    "make_sheet_event",
    "reset_sink",
    "set_project_dir",
]
