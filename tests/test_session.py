"""Tests for session reuse and re-authentication."""
import pytest

from conftest import make_session
from job_hunter.errors import AuthenticateError, ScrapingError
from job_hunter.session import authenticate


@pytest.mark.asyncio
async def test_valid_session_is_reused(scraper, storage):
    stored = make_session()
    storage.session = stored

    result = await authenticate(scraper, storage)

    assert result is stored
    assert scraper.login_calls == 0
    assert storage.session is stored


@pytest.mark.asyncio
async def test_expired_session_skips_live_check_and_logs_in(scraper, storage):
    storage.session = make_session(hours_left=-1)

    result = await authenticate(scraper, storage)

    assert scraper.check_calls == 0
    assert scraper.login_calls == 1
    assert storage.session is result
    assert result.id == "session-new-1"


@pytest.mark.asyncio
async def test_rejected_session_is_replaced(scraper, storage):
    storage.session = make_session()
    scraper.accepts_session = False

    result = await authenticate(scraper, storage)

    assert scraper.login_calls == 1
    assert storage.session is result


@pytest.mark.asyncio
async def test_missing_session_triggers_login(scraper, storage):
    result = await authenticate(scraper, storage)
    assert scraper.login_calls == 1
    assert storage.session is result


@pytest.mark.asyncio
async def test_force_reauth_ignores_valid_session(scraper, storage):
    storage.session = make_session()

    result = await authenticate(scraper, storage, force_reauth=True)

    assert scraper.check_calls == 0
    assert scraper.login_calls == 1
    assert storage.session is result


@pytest.mark.asyncio
async def test_failed_login_persists_nothing(scraper, storage):
    storage.session = make_session(hours_left=-1)
    scraper.login_error = ScrapingError(ScrapingError.Kind.TIMEOUT, "login timed out")

    with pytest.raises(AuthenticateError) as exc_info:
        await authenticate(scraper, storage)

    assert exc_info.value.kind is AuthenticateError.Kind.AUTH_FAILED
    assert isinstance(exc_info.value.__cause__, ScrapingError)
    assert storage.session is None


@pytest.mark.asyncio
async def test_keyboard_interrupt_during_login_is_user_cancelled(scraper, storage):
    scraper.login_error = KeyboardInterrupt()

    with pytest.raises(AuthenticateError) as exc_info:
        await authenticate(scraper, storage)

    assert exc_info.value.kind is AuthenticateError.Kind.USER_CANCELLED


@pytest.mark.asyncio
async def test_live_check_failure_maps_to_scraping_error(scraper, storage):
    storage.session = make_session()
    scraper.check_error = ScrapingError(ScrapingError.Kind.NETWORK_ERROR, "offline")

    with pytest.raises(AuthenticateError) as exc_info:
        await authenticate(scraper, storage)

    assert exc_info.value.kind is AuthenticateError.Kind.SCRAPING_ERROR
    assert scraper.login_calls == 0


@pytest.mark.asyncio
async def test_storage_failure_maps_to_storage_error(scraper, storage):
    storage.fail_on.add("get_session")

    with pytest.raises(AuthenticateError) as exc_info:
        await authenticate(scraper, storage)

    assert exc_info.value.kind is AuthenticateError.Kind.STORAGE_ERROR


@pytest.mark.asyncio
async def test_save_failure_maps_to_storage_error(scraper, storage):
    storage.fail_on.add("save_session")

    with pytest.raises(AuthenticateError) as exc_info:
        await authenticate(scraper, storage)

    assert exc_info.value.kind is AuthenticateError.Kind.STORAGE_ERROR


@pytest.mark.asyncio
async def test_no_login_allowed_raises_session_expired(scraper, storage):
    storage.session = make_session(hours_left=-1)

    with pytest.raises(AuthenticateError) as exc_info:
        await authenticate(scraper, storage, allow_login=False)

    assert exc_info.value.kind is AuthenticateError.Kind.SESSION_EXPIRED
    assert scraper.login_calls == 0
    assert storage.session is None
