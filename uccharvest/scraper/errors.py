"""Exception hierarchy raised inside scraper operations.

Only :class:`InputError` and exhausted transient failures are meant to reach
callers as failed results; the retry policy uses :func:`classify_error` to
decide which failures are worth another attempt.
"""

from __future__ import annotations

from typing import Optional

from .error_codes import ErrorCode


class ScraperError(Exception):
    error_code: str = ErrorCode.INTERNAL

    def __init__(self, message: str, *, error_code: Optional[str] = None) -> None:
        super().__init__(message)
        if error_code:
            self.error_code = error_code

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class InputError(ScraperError):
    error_code = ErrorCode.INVALID_INPUT


class TerminalPortalError(ScraperError):
    """The portal refused the search in a way retrying cannot change."""


class CaptchaDetectedError(TerminalPortalError):
    error_code = ErrorCode.CAPTCHA


class AuthenticationRequiredError(TerminalPortalError):
    error_code = ErrorCode.AUTH_REQUIRED


class PortalOfflineError(TerminalPortalError):
    error_code = ErrorCode.PORTAL_OFFLINE


class PortalStructureError(TerminalPortalError):
    error_code = ErrorCode.SITE_STRUCTURE


class TransientNetworkError(ScraperError):
    error_code = ErrorCode.NETWORK


class ApiError(ScraperError):
    def __init__(
        self, message: str, *, error_code: Optional[str] = None, http_status: int | None = None
    ) -> None:
        super().__init__(message, error_code=error_code)
        self.http_status = http_status


# Message fragments that mark a failure as terminal even when it arrives as a
# plain exception (e.g. raised from page scripts or third-party clients).
NON_RETRYABLE_MESSAGE_PATTERNS: dict[str, str] = {
    "captcha": ErrorCode.CAPTCHA,
    "authentication required": ErrorCode.AUTH_REQUIRED,
    "requires authentication": ErrorCode.AUTH_REQUIRED,
    "login required": ErrorCode.AUTH_REQUIRED,
    "invalid api key": ErrorCode.HTTP_401,
    "portal offline": ErrorCode.PORTAL_OFFLINE,
    "portal is offline": ErrorCode.PORTAL_OFFLINE,
    "temporarily unavailable": ErrorCode.PORTAL_OFFLINE,
    "service unavailable": ErrorCode.PORTAL_OFFLINE,
    "syntax error": ErrorCode.INTERNAL,
    "permission denied": ErrorCode.HTTP_403,
}

TRANSIENT_MESSAGE_PATTERNS: dict[str, str] = {
    "timeout": ErrorCode.TIMEOUT,
    "timed out": ErrorCode.TIMEOUT,
    "net::err_": ErrorCode.NETWORK,
    "econnreset": ErrorCode.NETWORK,
    "econnrefused": ErrorCode.NETWORK,
    "enotfound": ErrorCode.NETWORK,
    "socket hang up": ErrorCode.NETWORK,
    "network": ErrorCode.NETWORK,
    "rate limit": ErrorCode.RATE_LIMITED,
}

_TRANSIENT_TYPE_NAMES = {"TimeoutError", "ConnectionError", "Timeout", "ConnectTimeout", "ReadTimeout"}


def classify_error(exc: BaseException) -> str:
    """Map ``exc`` onto an :class:`ErrorCode` value.

    Typed scraper errors carry their own code. For anything else the type
    name is checked first, then the message is matched against the terminal
    patterns before the transient ones.
    """

    if isinstance(exc, ScraperError):
        return exc.error_code

    message = str(exc).lower()
    for pattern, code in NON_RETRYABLE_MESSAGE_PATTERNS.items():
        if pattern in message:
            return code

    if type(exc).__name__ in _TRANSIENT_TYPE_NAMES or isinstance(exc, TimeoutError):
        return ErrorCode.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorCode.NETWORK

    for pattern, code in TRANSIENT_MESSAGE_PATTERNS.items():
        if pattern in message:
            return code

    return ErrorCode.INTERNAL


__all__ = [
    "ApiError",
    "AuthenticationRequiredError",
    "CaptchaDetectedError",
    "InputError",
    "NON_RETRYABLE_MESSAGE_PATTERNS",
    "PortalOfflineError",
    "PortalStructureError",
    "ScraperError",
    "TerminalPortalError",
    "TransientNetworkError",
    "classify_error",
]
