"""Structured ``[SCRAPER][LABEL] key=value`` event lines."""

from __future__ import annotations

from typing import Any

from .utils import log_line

# Field names whose values must never reach the log.
_SECRET_FIELDS = frozenset({"password", "api_key", "token", "authorization", "mfa_secret", "secret"})
_MAX_VALUE_CHARS = 300


def _render_value(key: str, value: Any) -> str:
    if key.lower() in _SECRET_FIELDS and value:
        return "'***'"
    rendered = repr(value)
    if len(rendered) > _MAX_VALUE_CHARS:
        rendered = rendered[: _MAX_VALUE_CHARS - 3] + "..."
    return rendered


def _scraper_event(label: str = "", /, *, phase: str | None = None, **fields: Any) -> None:
    """Emit one structured event line; logging failures are swallowed.

    ``phase`` alone acts as the label. With both, ``phase`` is kept as a
    payload field so the stage is still recorded.
    """

    try:
        if label and phase:
            fields.setdefault("phase", phase)
        tag = (label or phase or "event").upper()
        payload = ", ".join(f"{key}={_render_value(key, value)}" for key, value in sorted(fields.items()))
        log_line(f"[SCRAPER][{tag}] {payload}")
    except Exception:  # noqa: BLE001
        return


__all__ = ["_scraper_event"]
