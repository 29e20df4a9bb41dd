"""Best-effort failure artifacts (screenshot + markup) for human triage."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .browser import PageHandle
from .logging_utils import _scraper_event
from .utils import log_line, sanitize_filename, short_error_message


@dataclass
class DiagnosticsArtifacts:
    screenshot_path: Optional[Path] = None
    html_path: Optional[Path] = None

    @property
    def captured(self) -> bool:
        return self.screenshot_path is not None or self.html_path is not None

    def to_dict(self) -> Dict[str, str]:
        payload: Dict[str, str] = {}
        if self.screenshot_path is not None:
            payload["screenshot_path"] = str(self.screenshot_path)
        if self.html_path is not None:
            payload["html_path"] = str(self.html_path)
        return payload


def _page_is_live(page: Optional[PageHandle]) -> bool:
    if page is None:
        return False
    try:
        return not page.is_closed()
    except Exception:  # noqa: BLE001
        return False


async def capture_diagnostics(
    page: Optional[PageHandle],
    output_dir: Path | str,
    basename: str,
) -> DiagnosticsArtifacts:
    """Save ``<output_dir>/<basename>.png`` and ``.html`` from ``page``.

    Each capture is attempted independently; a failure is logged and the
    corresponding path is left unset. Never raises.
    """

    artifacts = DiagnosticsArtifacts()
    if not _page_is_live(page):
        log_line("[DIAGNOSTICS] No live page available; skipping capture")
        return artifacts

    directory = Path(output_dir)
    stem = sanitize_filename(basename)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        log_line(f"[DIAGNOSTICS] Unable to create {directory}: {short_error_message(exc)}")
        return artifacts

    screenshot_path = directory / f"{stem}.png"
    try:
        await page.screenshot(path=str(screenshot_path), full_page=True)
    except Exception as exc:  # noqa: BLE001
        log_line(f"[DIAGNOSTICS] Failed to save screenshot: {short_error_message(exc)}")
    else:
        artifacts.screenshot_path = screenshot_path
        log_line(f"[DIAGNOSTICS] Saved screenshot -> {screenshot_path}")

    html_path = directory / f"{stem}.html"
    try:
        html = await page.content()
        html_path.write_text(html, encoding="utf-8")
    except Exception as exc:  # noqa: BLE001
        log_line(f"[DIAGNOSTICS] Failed to save page markup: {short_error_message(exc)}")
    else:
        artifacts.html_path = html_path
        log_line(f"[DIAGNOSTICS] Saved page markup -> {html_path}")

    _scraper_event("diagnostics", basename=stem, **artifacts.to_dict())
    return artifacts


__all__ = ["DiagnosticsArtifacts", "capture_diagnostics"]
