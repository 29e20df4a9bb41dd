from __future__ import annotations

import asyncio
from pathlib import Path

from uccharvest.scraper.diagnostics import capture_diagnostics

from fakes import FakePage


def test_screenshot_failure_still_saves_markup(tmp_path: Path) -> None:
    page = FakePage("<html><body>broken portal</body></html>")
    page.screenshot_error = RuntimeError("Target crashed")

    artifacts = asyncio.run(capture_diagnostics(page, tmp_path, "ca_acme"))

    assert artifacts.to_dict() == {"html_path": str(tmp_path / "ca_acme.html")}
    assert "screenshot_path" not in artifacts.to_dict()
    assert (tmp_path / "ca_acme.html").read_text(encoding="utf-8") == page.html


def test_markup_failure_still_saves_screenshot(tmp_path: Path) -> None:
    page = FakePage()
    page.content_error = RuntimeError("Execution context was destroyed")

    artifacts = asyncio.run(capture_diagnostics(page, tmp_path / "nested", "tx run"))

    assert artifacts.html_path is None
    assert artifacts.screenshot_path == tmp_path / "nested" / "tx_run.png"
    assert artifacts.screenshot_path.exists()


def test_both_captures_written(tmp_path: Path) -> None:
    artifacts = asyncio.run(capture_diagnostics(FakePage("<p>x</p>"), tmp_path, "ny"))

    assert set(artifacts.to_dict()) == {"screenshot_path", "html_path"}
    assert artifacts.captured is True


def test_closed_or_missing_page_is_a_no_op(tmp_path: Path) -> None:
    page = FakePage()
    page.closed = True

    assert asyncio.run(capture_diagnostics(page, tmp_path, "x")).to_dict() == {}
    assert asyncio.run(capture_diagnostics(None, tmp_path, "x")).captured is False
    assert list(tmp_path.iterdir()) == []
