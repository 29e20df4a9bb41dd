from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from . import config
from .error_codes import ErrorCode
from .errors import classify_error
from .logging_utils import _scraper_event
from .utils import log_line, short_error_message

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]
RetryCallback = Callable[[int, BaseException, float], None]

RETRYABLE_ERROR_CODES = {
    ErrorCode.TIMEOUT,
    ErrorCode.NETWORK,
    ErrorCode.HTTP_5XX,
    ErrorCode.RATE_LIMITED,
}

NON_RETRYABLE_ERROR_CODES = {
    ErrorCode.INVALID_INPUT,
    ErrorCode.CAPTCHA,
    ErrorCode.AUTH_REQUIRED,
    ErrorCode.PORTAL_OFFLINE,
    ErrorCode.SITE_STRUCTURE,
    ErrorCode.HTTP_401,
    ErrorCode.HTTP_403,
    ErrorCode.HTTP_404,
    ErrorCode.HTTP_4XX,
}


def compute_backoff_seconds(
    attempt_index: int,
    *,
    base: float | None = None,
    cap: float | None = None,
) -> float:
    """Return a capped exponential backoff for the given attempt (1-based)."""

    base = config.RETRY_BACKOFF_BASE_SECONDS if base is None else base
    cap = config.RETRY_BACKOFF_CAP_SECONDS if cap is None else cap
    return float(min(base * 2 ** max(0, attempt_index - 1), cap))


def is_retryable_error(exc: BaseException) -> bool:
    return classify_error(exc) not in NON_RETRYABLE_ERROR_CODES


def decide_retry(
    attempt_index: int,
    max_attempts: int,
    error: BaseException | None = None,
    *,
    error_code: Optional[str] = None,
    label: Optional[str] = None,
) -> bool:
    """Decide whether a failed attempt should be retried."""

    code = (error_code or (classify_error(error) if error is not None else "")).strip()

    if code in NON_RETRYABLE_ERROR_CODES:
        _scraper_event(
            "state",
            phase="retry_decision",
            kind="non_retryable",
            operation=label,
            error_code=code,
            attempt=attempt_index,
            max_attempts=max_attempts,
            will_retry=False,
        )
        return False

    if attempt_index >= max_attempts:
        _scraper_event(
            "state",
            phase="retry_decision",
            kind="capped",
            operation=label,
            error_code=code or None,
            attempt=attempt_index,
            max_attempts=max_attempts,
            will_retry=False,
        )
        return False

    _scraper_event(
        "state",
        phase="retry_decision",
        kind="retryable" if code in RETRYABLE_ERROR_CODES else "unknown",
        operation=label,
        error_code=code or None,
        attempt=attempt_index,
        max_attempts=max_attempts,
        will_retry=True,
        error_repr=repr(error) if error is not None else None,
    )
    return True


@dataclass
class RetryOutcome(Generic[T]):
    result: T
    retry_count: int
    attempts: int


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    label: str,
    *,
    max_attempts: int | None = None,
    backoff_base: float | None = None,
    backoff_cap: float | None = None,
    sleep: SleepFn = asyncio.sleep,
    on_retry: Optional[RetryCallback] = None,
) -> RetryOutcome[T]:
    """Run ``operation`` until it succeeds, fails terminally or runs out of attempts.

    Attempts are strictly sequential: each awaited call completes before the
    backoff for the next one starts. The last error is re-raised unchanged
    when no further attempt is allowed.
    """

    effective_attempts = max(1, config.DEFAULT_RETRY_ATTEMPTS if max_attempts is None else max_attempts)
    retries_made = 0

    for attempt in range(1, effective_attempts + 1):
        attempt_kind = "initial attempt" if attempt == 1 else f"retry {attempt - 1}/{effective_attempts - 1}"
        log_line(f"[RETRY] {label} - {attempt_kind}")
        try:
            result = await operation()
        except Exception as exc:  # noqa: BLE001
            error_code = classify_error(exc)
            if not decide_retry(attempt, effective_attempts, exc, error_code=error_code, label=label):
                log_line(
                    f"[RETRY] {label} failed after {attempt} attempt(s): {short_error_message(exc)}"
                )
                raise

            delay = compute_backoff_seconds(attempt, base=backoff_base, cap=backoff_cap)
            retries_made += 1
            log_line(
                f"[RETRY] {label} failed: {short_error_message(exc)}. "
                f"Retrying in {delay:.1f}s (retry {retries_made}/{effective_attempts - 1})"
            )
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            await sleep(delay)
            continue

        if retries_made:
            log_line(f"[RETRY] {label} succeeded after {retries_made} retries")
        return RetryOutcome(result=result, retry_count=retries_made, attempts=attempt)

    raise RuntimeError("retry_with_backoff exhausted without returning a result")


__all__ = [
    "NON_RETRYABLE_ERROR_CODES",
    "RETRYABLE_ERROR_CODES",
    "RetryOutcome",
    "compute_backoff_seconds",
    "decide_retry",
    "is_retryable_error",
    "retry_with_backoff",
]
