from __future__ import annotations

import pytest

from fakes import SleepRecorder


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch):
    """Capture ``_scraper_event`` calls from the modules passed to the returned hook."""

    events: list[tuple[str, dict]] = []

    def _record(event_phase: str = "", **fields: object) -> None:
        events.append((event_phase, fields))

    def _install(*modules) -> list[tuple[str, dict]]:
        for module in modules:
            monkeypatch.setattr(module, "_scraper_event", _record)
        return events

    return _install
