"""Sheet event schema and the recorders the recalculation layer calls.

Events describe what happened to cells during editing and recalculation.
They are written to the project log only after :func:`set_project_dir`
has been called; otherwise they are dropped.  Recording never raises, a
failing sink is reported through the module logger instead.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Sequence

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    recalc_started = "recalc_started"
    recalc_completed = "recalc_completed"
    cell_error = "cell_error"
    cycle_detected = "cycle_detected"
    formula_parse_error = "formula_parse_error"


CELL_EVAL_ERROR = "cell_eval_error"
CELL_CIRCULAR_REFERENCE = "cell_circular_reference"
FORMULA_PARSE_FAILED = "formula_parse_failed"

# Context keys that tie each event type back to the cells involved.
_CELL_KEYS: dict[EventType, tuple[str, ...]] = {
    EventType.recalc_started: ("cells",),
    EventType.recalc_completed: ("evaluated",),
    EventType.cell_error: ("label", "error"),
    EventType.cycle_detected: ("labels",),
    EventType.formula_parse_error: ("label", "formula"),
}


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class SheetEvent(BaseModel):
    """A single structured log event.

    An event missing any of the cell keys its type needs is annotated
    with ``_missing_attribution``; if it was an error it is downgraded to
    a warning, since it cannot be traced to a cell.
    """

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None

    @model_validator(mode="after")
    def _check_cell_keys(self) -> SheetEvent:
        missing = [key for key in _CELL_KEYS[self.event_type] if key not in self.context]
        if missing:
            self.context = {**self.context, "_missing_attribution": missing}
            if self.level is EventLevel.error:
                self.level = EventLevel.warning
        return self


# ---------------------------------------------------------------------------
# Project sink
# ---------------------------------------------------------------------------

_sink: Any = None  # EventSink | None


def set_project_dir(project_dir: Path, config: dict[str, Any] | None = None) -> None:
    """Start recording events to *project_dir*'s log.

    *config* is the loaded ``sheetcalc.yaml``; it is read from the project
    when not given.  ``logging_fsync`` and ``logging_tail_bytes`` configure
    the sink.
    """
    global _sink
    from sheetcalc.config import load_project_config
    from sheetcalc.logging.sink import EventSink

    project_dir = Path(project_dir)
    if config is None:
        config = load_project_config(project_dir)
    tail_bytes = config.get("logging_tail_bytes")
    _sink = EventSink(
        project_dir,
        fsync=bool(config.get("logging_fsync", False)),
        tail_bytes=int(tail_bytes) if tail_bytes is not None else None,
    )


def reset_sink() -> None:
    """Stop recording events."""
    global _sink
    _sink = None


def emit(event: SheetEvent) -> None:
    """Write *event* to the project log, if one is configured. Never raises."""
    if _sink is None:
        return
    try:
        _sink.write(event)
    except Exception as exc:
        logger.warning("could not record %s event: %s", event.event_type.value, exc)


# ---------------------------------------------------------------------------
# Recorders
# ---------------------------------------------------------------------------


def record_recalc_started(labels: Sequence[str]) -> None:
    emit(SheetEvent(
        level=EventLevel.info,
        event_type=EventType.recalc_started,
        message=f"Recalculating {len(labels)} cell(s)",
        context={"cells": len(labels)},
    ))


def record_recalc_completed(evaluated: int, errors: int, cycles: int, elapsed_ms: float) -> None:
    emit(SheetEvent(
        level=EventLevel.info,
        event_type=EventType.recalc_completed,
        message=f"Recalculated {evaluated} cell(s)",
        context={
            "evaluated": evaluated,
            "errors": errors,
            "cycles": cycles,
            "elapsed_ms": elapsed_ms,
        },
    ))


def record_cycle(labels: Sequence[str]) -> None:
    """Record cells that could not be ordered because of a reference cycle."""
    emit(SheetEvent(
        level=EventLevel.error,
        event_type=EventType.cycle_detected,
        message=f"Circular reference among {', '.join(labels)}",
        context={"labels": list(labels)},
        error_code=CELL_CIRCULAR_REFERENCE,
    ))


def record_cell_error(label: str, formula: str, error: str) -> None:
    """Record a cell left in an error state by the last recalculation."""
    emit(SheetEvent(
        level=EventLevel.warning,
        event_type=EventType.cell_error,
        message=f"{label}: {error}",
        context={"label": label, "formula": formula, "error": error},
        error_code=CELL_EVAL_ERROR,
    ))


def record_parse_error(label: str, formula: str, exc: Exception) -> None:
    """Record formula text that could not be tokenized for *label*."""
    context: dict[str, Any] = {"label": label, "formula": formula}
    position = getattr(exc, "position", None)
    if position is not None:
        context["position"] = position
    emit(SheetEvent(
        level=EventLevel.error,
        event_type=EventType.formula_parse_error,
        message=str(exc),
        context=context,
        error_code=FORMULA_PARSE_FAILED,
    ))
