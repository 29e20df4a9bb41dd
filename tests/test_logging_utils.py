from uccharvest.scraper import logging_utils


def test_scraper_event_label_and_phase(monkeypatch):
    events: list[str] = []
    monkeypatch.setattr(logging_utils, "log_line", lambda msg: events.append(msg))

    logging_utils._scraper_event("state", phase="retry_decision", kind="capped")

    assert events
    line = events[-1]
    assert line.startswith("[SCRAPER][STATE]")
    assert "phase='retry_decision'" in line
    assert "kind='capped'" in line


def test_scraper_event_phase_only_becomes_label(monkeypatch):
    events: list[str] = []
    monkeypatch.setattr(logging_utils, "log_line", lambda msg: events.append(msg))

    logging_utils._scraper_event(phase="queue", step="dispatch", pending=0)

    assert events[-1] == "[SCRAPER][QUEUE] pending=0, step='dispatch'"


def test_scraper_event_never_raises(monkeypatch):
    def _boom(msg: str) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(logging_utils, "log_line", _boom)

    logging_utils._scraper_event("error", phase="pagination")


def test_secret_fields_are_masked(monkeypatch):
    events: list[str] = []
    monkeypatch.setattr(logging_utils, "log_line", lambda msg: events.append(msg))

    logging_utils._scraper_event("nav", step="login", username="clerk", password="hunter2", api_key="abc")

    assert "hunter2" not in events[-1]
    assert "abc" not in events[-1]
    assert "username='clerk'" in events[-1]
    assert "password='***'" in events[-1]


def test_long_values_are_truncated(monkeypatch):
    events: list[str] = []
    monkeypatch.setattr(logging_utils, "log_line", lambda msg: events.append(msg))

    logging_utils._scraper_event("error", error="x" * 1000)

    assert len(events[-1]) < 400
    assert events[-1].endswith("...")


def test_label_can_be_passed_as_a_payload_field(monkeypatch):
    events: list[str] = []
    monkeypatch.setattr(logging_utils, "log_line", lambda msg: events.append(msg))

    logging_utils._scraper_event("state", phase="retry_decision", label="CA search")

    assert events[-1].startswith("[SCRAPER][STATE]")
    assert "label='CA search'" in events[-1]
