"""Tests for the gridcalc structured event logging system."""

from __future__ import annotations

import json
from pathlib import Path

import pytest


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create a minimal project directory."""
    (tmp_path / "logs").mkdir()
    return tmp_path


@pytest.fixture
def sink(project_dir: Path):
    from gridcalc.logging.sink import EventSink

    return EventSink(project_dir)


def _logged(project_dir: Path) -> list[dict]:
    log_path = project_dir / "logs" / "events.ndjson"
    if not log_path.exists():
        return []
    return [json.loads(line) for line in log_path.read_text().splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# A) Event schema
# ---------------------------------------------------------------------------


class TestGridcalcEvent:
    def test_event_defaults(self):
        from gridcalc.logging.events import EventLevel, EventType, GridcalcEvent

        evt = GridcalcEvent(
            level=EventLevel.info,
            event_type=EventType.cell_updated,
            message="hello",
        )
        assert evt.schema_version == 1
        assert evt.ts.endswith("Z")
        assert evt.level == "info"
        assert evt.event_type == "cell_updated"
        assert evt.context == {}
        assert evt.error_code is None

    def test_all_event_types_exist(self):
        from gridcalc.logging.events import EventType

        assert {e.value for e in EventType} == {
            "cell_updated",
            "circular_rejected",
            "formula_rejected",
            "sheet_saved",
            "sheet_loaded",
            "sheet_io_failed",
        }

    def test_make_cell_event(self):
        from gridcalc.logging.events import (
            FORMULA_FORMAT,
            EventLevel,
            EventType,
            make_cell_event,
        )

        evt = make_cell_event(
            EventType.formula_rejected,
            EventLevel.warning,
            "bad",
            cell="A1",
            contents="=1+",
            error_code=FORMULA_FORMAT,
            extra={"hint": "x"},
        )
        assert evt.context == {"cell": "A1", "contents": "=1+", "hint": "x"}
        assert evt.error_code == "formula_format"

    def test_make_sheet_event(self):
        from gridcalc.logging.events import EventLevel, EventType, make_sheet_event

        evt = make_sheet_event(
            EventType.sheet_saved, EventLevel.info, "ok", path="/tmp/s.sprd", version="v1"
        )
        assert evt.context == {"path": "/tmp/s.sprd", "version": "v1"}


class TestClipping:
    def test_long_strings_truncated(self):
        from gridcalc.logging.events import clip_context

        clipped = clip_context({"contents": "x" * 1000, "nested": {"v": ["y" * 300]}})
        assert clipped["contents"].endswith("...[truncated]")
        assert len(clipped["contents"]) == 256 + len("...[truncated]")
        assert clipped["nested"]["v"][0].endswith("...[truncated]")

    def test_short_values_unchanged(self):
        from gridcalc.logging.events import clip_context

        ctx = {"cell": "A1", "n": 3, "order": ["A1", "B1"]}
        assert clip_context(ctx) == ctx


# ---------------------------------------------------------------------------
# B) Sink
# ---------------------------------------------------------------------------


class TestEventSink:
    def test_write_appends_sorted_json(self, sink, project_dir):
        from gridcalc.logging.events import EventLevel, EventType, GridcalcEvent

        sink.write(GridcalcEvent(level=EventLevel.info, event_type=EventType.cell_updated, message="a"))
        sink.write(GridcalcEvent(level=EventLevel.info, event_type=EventType.cell_updated, message="b"))

        lines = (project_dir / "logs" / "events.ndjson").read_text().splitlines()
        assert len(lines) == 2
        keys = list(json.loads(lines[0]).keys())
        assert keys == sorted(keys)

    def test_read_most_recent_first(self, sink):
        from gridcalc.logging.events import EventLevel, EventType, GridcalcEvent

        for i in range(3):
            sink.write(GridcalcEvent(level=EventLevel.info, event_type=EventType.cell_updated, message=f"m{i}"))
        assert [e["message"] for e in sink.read_events()] == ["m2", "m1", "m0"]

    def test_read_filters(self, sink):
        from gridcalc.logging.events import EventLevel, EventType, make_cell_event

        sink.write(make_cell_event(EventType.cell_updated, EventLevel.info, "a", cell="A1"))
        sink.write(make_cell_event(EventType.circular_rejected, EventLevel.warning, "b", cell="B1"))
        sink.write(make_cell_event(EventType.cell_updated, EventLevel.info, "c", cell="B1"))

        assert [e["message"] for e in sink.read_events(level="warning")] == ["b"]
        assert [e["message"] for e in sink.read_events(event_type="cell_updated")] == ["c", "a"]
        assert [e["message"] for e in sink.read_events(cell="B1")] == ["c", "b"]
        assert len(sink.read_events(limit=1)) == 1

    def test_read_missing_log_returns_empty(self, tmp_path):
        from gridcalc.logging.sink import EventSink

        sink = EventSink(tmp_path / "fresh")
        assert sink.read_events() == []

    def test_invalid_lines_skipped(self, sink, project_dir):
        log_path = project_dir / "logs" / "events.ndjson"
        log_path.write_text('not json\n{"message": "ok", "level": "info"}\n')
        assert [e["message"] for e in sink.read_events()] == ["ok"]

    def test_tail_read_drops_partial_line(self, project_dir):
        from gridcalc.logging.events import EventLevel, EventType, GridcalcEvent
        from gridcalc.logging.sink import EventSink

        sink = EventSink(project_dir, tail_bytes=400)
        for i in range(20):
            sink.write(GridcalcEvent(level=EventLevel.info, event_type=EventType.cell_updated, message=f"m{i}"))
        events = sink.read_events()
        assert 0 < len(events) < 20
        assert events[0]["message"] == "m19"


# ---------------------------------------------------------------------------
# C) Emit
# ---------------------------------------------------------------------------


class TestEmit:
    def test_emit_without_project_dir_is_noop(self):
        from gridcalc.logging.events import EventLevel, EventType, emit, make_cell_event

        emit(make_cell_event(EventType.cell_updated, EventLevel.info, "test", cell="A1"))

    def test_set_project_dir_enables_logging(self, project_dir):
        from gridcalc.logging.events import (
            EventLevel,
            EventType,
            emit,
            make_sheet_event,
            set_project_dir,
        )

        set_project_dir(project_dir)
        emit(make_sheet_event(EventType.sheet_saved, EventLevel.info, "hello from test", path="x"))

        events = _logged(project_dir)
        assert len(events) == 1
        assert events[0]["message"] == "hello from test"
        assert events[0]["level"] == "info"

    def test_emit_keeps_error_code(self, project_dir):
        from gridcalc.logging.events import (
            SHEET_READ_FAILED,
            EventLevel,
            EventType,
            emit,
            make_sheet_event,
            set_project_dir,
        )

        set_project_dir(project_dir)
        emit(make_sheet_event(
            EventType.sheet_io_failed, EventLevel.error, "boom", error_code=SHEET_READ_FAILED
        ))

        parsed = _logged(project_dir)[0]
        assert parsed["error_code"] == "sheet_read_failed"
        assert parsed["level"] == "error"

    def test_emit_clips_long_contents(self, project_dir):
        from gridcalc.logging.events import EventLevel, EventType, emit, make_cell_event, set_project_dir

        set_project_dir(project_dir)
        emit(make_cell_event(EventType.cell_updated, EventLevel.info, "m", cell="A1", contents="x" * 500))

        assert _logged(project_dir)[0]["context"]["contents"].endswith("...[truncated]")

    def test_missing_attribution_downgrades_to_warning(self, project_dir):
        from gridcalc.logging.events import EventLevel, EventType, GridcalcEvent, emit, set_project_dir

        set_project_dir(project_dir)
        emit(GridcalcEvent(level=EventLevel.info, event_type=EventType.cell_updated, message="no cell"))

        parsed = _logged(project_dir)[0]
        assert parsed["level"] == "warning"
        assert parsed["context"]["_missing_attribution"] == ["cell"]

    def test_emit_never_raises(self, project_dir, monkeypatch):
        import gridcalc.logging.events as mod
        from gridcalc.logging.events import EventLevel, EventType, emit, make_cell_event, set_project_dir

        set_project_dir(project_dir)

        def broken_write(event):
            raise OSError("disk full")

        monkeypatch.setattr(mod._sink, "write", broken_write)
        emit(make_cell_event(EventType.formula_rejected, EventLevel.warning, "x", cell="A1"))

    def test_reset_sink_disables_logging(self, project_dir):
        from gridcalc.logging.events import (
            EventLevel,
            EventType,
            emit,
            make_sheet_event,
            reset_sink,
            set_project_dir,
        )

        set_project_dir(project_dir)
        reset_sink()
        emit(make_sheet_event(EventType.sheet_saved, EventLevel.info, "dropped", path="x"))
        assert _logged(project_dir) == []



# ---------------------------------------------------------------------------
# D) Spreadsheet events
# ---------------------------------------------------------------------------


class TestSpreadsheetEvents:
    def test_cell_updated(self, project_dir):
        from gridcalc import Spreadsheet
        from gridcalc.logging.events import set_project_dir

        set_project_dir(project_dir)
        sheet = Spreadsheet()
        sheet.set_contents("A1", "1")
        sheet.set_contents("B1", "=A1")
        sheet.set_contents("A1", "2")

        last = _logged(project_dir)[-1]
        assert last["event_type"] == "cell_updated"
        assert last["context"]["cell"] == "A1"
        assert last["context"]["contents"] == "2"
        assert last["context"]["recalculated"] == ["A1", "B1"]

    def test_formula_rejected(self, project_dir):
        from gridcalc import FormulaFormatError, Spreadsheet
        from gridcalc.logging.events import set_project_dir

        set_project_dir(project_dir)
        with pytest.raises(FormulaFormatError):
            Spreadsheet().set_contents("A1", "=1+")

        (evt,) = _logged(project_dir)
        assert evt["event_type"] == "formula_rejected"
        assert evt["level"] == "warning"
        assert evt["error_code"] == "formula_format"

    def test_circular_rejected(self, project_dir):
        from gridcalc import CircularError, Spreadsheet
        from gridcalc.logging.events import set_project_dir

        set_project_dir(project_dir)
        with pytest.raises(CircularError):
            Spreadsheet().set_contents("A1", "=A1")

        (evt,) = _logged(project_dir)
        assert evt["event_type"] == "circular_rejected"
        assert evt["error_code"] == "circular_reference"
        assert evt["context"]["cycle"] == ["A1", "A1"]

    def test_save_and_load(self, project_dir):
        from gridcalc import Spreadsheet
        from gridcalc.logging.events import set_project_dir

        path = project_dir / "s.sprd"
        sheet = Spreadsheet()
        sheet.set_contents("A1", "1")
        set_project_dir(project_dir)
        sheet.save(path)
        Spreadsheet.load(path)

        types = [e["event_type"] for e in _logged(project_dir)]
        assert types == ["sheet_saved", "sheet_loaded"]

    def test_load_does_not_log_each_cell(self, project_dir):
        from gridcalc import Spreadsheet
        from gridcalc.logging.events import set_project_dir

        path = project_dir / "s.sprd"
        sheet = Spreadsheet()
        for i in range(1, 6):
            sheet.set_contents(f"A{i}", str(i))
        sheet.save(path)

        set_project_dir(project_dir)
        Spreadsheet.load(path)
        assert [e["event_type"] for e in _logged(project_dir)] == ["sheet_loaded"]

    def test_version_mismatch_logged(self, project_dir):
        from gridcalc import Spreadsheet, SpreadsheetReadWriteError
        from gridcalc.logging.events import set_project_dir

        path = project_dir / "s.sprd"
        Spreadsheet(version="a").save(path)
        set_project_dir(project_dir)
        with pytest.raises(SpreadsheetReadWriteError):
            Spreadsheet.load(path, version="b")

        (evt,) = _logged(project_dir)
        assert evt["event_type"] == "sheet_io_failed"
        assert evt["error_code"] == "version_mismatch"

    def test_read_failure_logged(self, project_dir):
        from gridcalc import Spreadsheet, SpreadsheetReadWriteError
        from gridcalc.logging.events import set_project_dir

        set_project_dir(project_dir)
        with pytest.raises(SpreadsheetReadWriteError):
            Spreadsheet.load(project_dir / "missing.sprd")

        (evt,) = _logged(project_dir)
        assert evt["error_code"] == "sheet_read_failed"

    def test_write_failure_logged(self, project_dir):
        from gridcalc import Spreadsheet, SpreadsheetReadWriteError
        from gridcalc.logging.events import set_project_dir

        set_project_dir(project_dir)
        with pytest.raises(SpreadsheetReadWriteError):
            Spreadsheet().save(project_dir / "no" / "such" / "s.sprd")

        (evt,) = _logged(project_dir)
        assert evt["error_code"] == "sheet_write_failed"
