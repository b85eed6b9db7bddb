"""Structured event logging for sheetcalc.

Provides the sheet event schema, the per-project NDJSON sink, and the
recorders used during editing and recalculation.
"""

from sheetcalc.logging.events import (
    EventLevel,
    EventType,
    SheetEvent,
    emit,
    record_cell_error,
    record_cycle,
    record_parse_error,
    record_recalc_completed,
    record_recalc_started,
    reset_sink,
    set_project_dir,
)
from sheetcalc.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "SheetEvent",
    "emit",
    "record_cell_error",
    "record_cycle",
    "record_parse_error",
    "record_recalc_completed",
    "record_recalc_started",
    "reset_sink",
    "set_project_dir",
]
