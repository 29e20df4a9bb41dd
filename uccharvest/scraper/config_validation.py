from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _scraper_event
from .utils import log_line

Entrypoint = Literal["cli", "worker", "tests"]


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Soft knobs (``MAX_PAGES``) are clamped with a logged adjustment.
    """

    if config.SCRAPER_IMPLEMENTATION not in config.IMPLEMENTATIONS:
        _raise_config_error(
            f"SCRAPER_IMPLEMENTATION must be one of {', '.join(config.IMPLEMENTATIONS)}; "
            f"got {config.SCRAPER_IMPLEMENTATION!r}.",
            entrypoint=entrypoint,
            error="unknown_implementation",
        )

    if config.QUEUE_REQUESTS_PER_MINUTE <= 0:
        _raise_config_error(
            "QUEUE_REQUESTS_PER_MINUTE must be greater than zero.",
            entrypoint=entrypoint,
            error="invalid_queue_rate",
        )

    if config.MAX_PAGES < 1:
        adjusted = 1
        _scraper_event(
            "state",
            phase="config",
            context="runtime_validation",
            kind="config_adjustment",
            field="MAX_PAGES",
            value=config.MAX_PAGES,
            adjusted=adjusted,
            entrypoint=entrypoint,
        )
        log_line("[CONFIG] MAX_PAGES < 1; clamping to 1 so the first page is still collected.")
        config.MAX_PAGES = adjusted

    timeout_fields = [
        ("NAV_TIMEOUT_SECONDS", config.NAV_TIMEOUT_SECONDS),
        ("SELECTOR_TIMEOUT_SECONDS", config.SELECTOR_TIMEOUT_SECONDS),
        ("RESULTS_TIMEOUT_SECONDS", config.RESULTS_TIMEOUT_SECONDS),
        ("PAGINATION_NAV_TIMEOUT_SECONDS", config.PAGINATION_NAV_TIMEOUT_SECONDS),
        ("API_TIMEOUT_SECONDS", config.API_TIMEOUT_SECONDS),
    ]

    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )


__all__ = ["validate_runtime_config", "Entrypoint"]
