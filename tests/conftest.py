"""Shared pytest fixtures."""

from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _no_event_sink():
    """Keep the module-level event sink from leaking between tests."""
    from sheetcalc.logging.events import reset_sink

    reset_sink()
    yield
    reset_sink()
