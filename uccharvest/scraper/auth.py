"""Portal account credentials and the shared login routine.

Credentials come from ``<STATE>_UCC_USERNAME`` / ``<STATE>_UCC_PASSWORD``
(plus an optional ``<STATE>_UCC_MFA_SECRET``) and are never logged.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Tuple

from . import config
from .browser import PageHandle
from .errors import AuthenticationRequiredError, PortalStructureError
from .extraction import contains_any, page_text
from .logging_utils import _scraper_event


@dataclass(frozen=True)
class PortalCredentials:
    username: str
    password: str = field(repr=False)
    mfa_secret: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class LoginSelectors:
    username: Tuple[str, ...] = (
        "input[name*='user' i]",
        "input[id*='user' i]",
        "input[type='email']",
        "input[name*='login' i]",
    )
    password: Tuple[str, ...] = ("input[type='password']",)
    submit: Tuple[str, ...] = (
        "button[type='submit']",
        "input[type='submit']",
        'button:has-text("Log In")',
        'button:has-text("Sign In")',
    )
    # Text shown when the portal asks for a one-time code after the password.
    mfa_markers: Tuple[str, ...] = ("verification code", "one-time code", "authentication code")


DEFAULT_LOGIN_SELECTORS = LoginSelectors()


def credential_env_names(state: str) -> Tuple[str, str, str]:
    prefix = f"{state.strip().upper()}_UCC"
    return f"{prefix}_USERNAME", f"{prefix}_PASSWORD", f"{prefix}_MFA_SECRET"


def load_credentials(
    state: str, environ: Optional[Mapping[str, str]] = None
) -> Optional[PortalCredentials]:
    """Return credentials for ``state`` when both username and password are set."""

    env = os.environ if environ is None else environ
    user_var, password_var, mfa_var = credential_env_names(state)
    username = (env.get(user_var) or "").strip()
    password = env.get(password_var) or ""
    if not username or not password:
        return None
    return PortalCredentials(
        username=username,
        password=password,
        mfa_secret=(env.get(mfa_var) or "").strip() or None,
    )


def has_credentials(state: str, environ: Optional[Mapping[str, str]] = None) -> bool:
    return load_credentials(state, environ) is not None


def configured_states(states: Iterable[str], environ: Optional[Mapping[str, str]] = None) -> List[str]:
    return [state for state in states if has_credentials(state, environ)]


async def _first_match(page: PageHandle, candidates: Iterable[str]) -> Optional[str]:
    for selector in candidates:
        if await page.query_selector(selector) is not None:
            return selector
    return None


async def perform_login(
    page: PageHandle,
    credentials: PortalCredentials,
    *,
    portal: str,
    selectors: LoginSelectors = DEFAULT_LOGIN_SELECTORS,
    timeout_ms: Optional[float] = None,
) -> None:
    """Fill and submit the login form currently shown on ``page``."""

    user_selector = await _first_match(page, selectors.username)
    password_selector = await _first_match(page, selectors.password)
    if user_selector is None or password_selector is None:
        raise PortalStructureError(f"Login form fields not found on {portal} portal")

    _scraper_event("nav", step="login", portal=portal, username=credentials.username)
    await page.fill(user_selector, credentials.username, timeout=config.CLICK_TIMEOUT_MS)
    await page.fill(password_selector, credentials.password, timeout=config.CLICK_TIMEOUT_MS)

    submit_selector = await _first_match(page, selectors.submit)
    if submit_selector is not None:
        await page.click(submit_selector, timeout=config.CLICK_TIMEOUT_MS)
    else:
        await page.press(password_selector, "Enter", timeout=config.CLICK_TIMEOUT_MS)
    await page.wait_for_load_state("networkidle", timeout=timeout_ms)

    html = await page.content()
    if contains_any(page_text(html), selectors.mfa_markers):
        raise AuthenticationRequiredError(
            f"{portal} portal requested a verification code; interactive MFA is not supported"
        )
    if await page.query_selector(password_selector) is not None:
        raise AuthenticationRequiredError(f"{portal} portal rejected the configured credentials")


__all__ = [
    "DEFAULT_LOGIN_SELECTORS",
    "LoginSelectors",
    "PortalCredentials",
    "configured_states",
    "credential_env_names",
    "has_credentials",
    "load_credentials",
    "perform_login",
]
