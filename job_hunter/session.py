"""Obtain, validate and persist the authenticated LinkedIn session."""
from __future__ import annotations

from job_hunter.errors import AuthenticateError, ScrapingError, StorageError
from job_hunter.log import get_logger
from job_hunter.models import AuthSession, utcnow
from job_hunter.ports import Scraper, Storage

log = get_logger(__name__)


async def _load_session(storage: Storage) -> AuthSession | None:
    try:
        return await storage.get_session()
    except StorageError as exc:
        raise AuthenticateError(
            AuthenticateError.Kind.STORAGE_ERROR, f"Failed to get session: {exc.message}", exc,
        ) from exc


async def _session_accepted(scraper: Scraper, session: AuthSession) -> bool:
    if session.is_expired(utcnow()):
        log.info("Stored session %s expired at %s", session.id, session.expires_at.isoformat())
        return False
    try:
        return await scraper.is_logged_in(session)
    except ScrapingError as exc:
        raise AuthenticateError(
            AuthenticateError.Kind.SCRAPING_ERROR, f"Failed to check login status: {exc.message}", exc,
        ) from exc


async def authenticate(
    scraper: Scraper,
    storage: Storage,
    force_reauth: bool = False,
    allow_login: bool = True,
) -> AuthSession:
    """Return a usable session, logging in interactively when needed.

    A stored session is reused only if it is unexpired and the site still
    accepts it. Otherwise it is deleted and replaced by a fresh login; nothing
    is written unless the login produced a session.
    """
    if not force_reauth:
        existing = await _load_session(storage)
        if existing is not None and await _session_accepted(scraper, existing):
            log.info("Reusing stored session %s", existing.id)
            return existing
        if existing is not None:
            log.info("Stored session %s rejected, re-authenticating", existing.id)

    try:
        await storage.delete_session()
    except StorageError as exc:
        raise AuthenticateError(
            AuthenticateError.Kind.STORAGE_ERROR, f"Failed to delete session: {exc.message}", exc,
        ) from exc
    if not allow_login:
        raise AuthenticateError(AuthenticateError.Kind.SESSION_EXPIRED, "No valid stored session")

    log.info("Waiting for manual LinkedIn login in the browser window...")
    try:
        session = await scraper.login()
    except ScrapingError as exc:
        raise AuthenticateError(
            AuthenticateError.Kind.AUTH_FAILED, f"Authentication failed: {exc.message}", exc,
        ) from exc
    except KeyboardInterrupt as exc:
        raise AuthenticateError(
            AuthenticateError.Kind.USER_CANCELLED, "Login was cancelled by the user", exc,
        ) from exc

    try:
        await storage.save_session(session)
    except StorageError as exc:
        raise AuthenticateError(
            AuthenticateError.Kind.STORAGE_ERROR, f"Failed to save session: {exc.message}", exc,
        ) from exc
    log.info("Saved new session %s (expires %s)", session.id, session.expires_at.isoformat())
    return session
