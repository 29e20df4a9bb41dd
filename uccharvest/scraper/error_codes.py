from __future__ import annotations

"""Centralised error code taxonomy for scraper failures.

These codes are attached to raised scraper errors and included in structured
logs so that we can explain why a search failed. The taxonomy is
intentionally small and internal-only but should stay stable for reporting.
"""


class ErrorCode:
    INVALID_INPUT = "invalid_input"
    CAPTCHA = "captcha_detected"
    AUTH_REQUIRED = "auth_required"
    PORTAL_OFFLINE = "portal_offline"
    SITE_STRUCTURE = "site_structure_changed"
    TIMEOUT = "timeout"
    NETWORK = "network_error"
    HTTP_4XX = "http_4xx"
    HTTP_401 = "http_401_unauthorised"
    HTTP_403 = "http_403_forbidden"
    HTTP_404 = "http_404_not_found"
    HTTP_5XX = "http_5xx"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal_error"


def classify_http_status(status: int | None) -> str:
    if status is None:
        return ErrorCode.INTERNAL
    if status == 401:
        return ErrorCode.HTTP_401
    if status == 403:
        return ErrorCode.HTTP_403
    if status == 404:
        return ErrorCode.HTTP_404
    if status == 429:
        return ErrorCode.RATE_LIMITED
    if 400 <= status < 500:
        return ErrorCode.HTTP_4XX
    if status >= 500:
        return ErrorCode.HTTP_5XX
    return ErrorCode.INTERNAL


__all__ = ["ErrorCode", "classify_http_status"]
