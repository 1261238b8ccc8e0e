"""Shared fixtures for the gridcalc test suite."""

from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _detach_event_sink():
    """Start and finish every test with event logging disabled."""
    from gridcalc.logging.events import reset_sink

    reset_sink()
    yield
    reset_sink()
