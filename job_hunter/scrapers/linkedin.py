"""LinkedIn job search scraper (Playwright async API, Chromium).

Login is manual: a headful browser opens the login page and we wait until the
operator lands on the feed. Searches reuse the session cookies.
"""
from __future__ import annotations

import asyncio
import re
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator
from urllib.parse import urlencode, urljoin

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from job_hunter.config import LinkedInConfig
from job_hunter.errors import ScrapingError
from job_hunter.log import get_logger
from job_hunter.models import (
    AuthSession,
    EmploymentType,
    Job,
    JobCriteria,
    RemotePolicy,
    Seniority,
    utcnow,
)
from job_hunter.ports import Scraper

log = get_logger(__name__)

SESSION_TTL = timedelta(hours=24)
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

# Selectors drift; keep them in one place
CARD_SELECTOR = "li[data-occludable-job-id], div.job-card-container, [data-test-id='job-card']"
TITLE_SELECTOR = "a.job-card-list__title, a.job-card-container__link, [data-test-id='job-title']"
COMPANY_SELECTOR = ".artdeco-entity-lockup__subtitle, .job-card-container__primary-description, [data-test-id='job-company']"
LOCATION_SELECTOR = ".job-card-container__metadata-item, .artdeco-entity-lockup__caption, [data-test-id='job-location']"
LINK_SELECTOR = "a[href*='/jobs/view/']"
NO_RESULTS_SELECTOR = ".jobs-search-no-results-banner, .jobs-search-two-pane__no-results-banner"
FEED_SELECTOR = "div.feed-shared-update-v2, [data-test-id='main-feed'], main.scaffold-layout__main"
DESCRIPTION_SELECTOR = "div.jobs-description__content, #job-details, div.show-more-less-html__markup"

_JOB_ID_RE = re.compile(r"/jobs/view/(?:[^/?#]*?-)?(\d+)")
_RELATIVE_RE = re.compile(r"(\d+)\s*(second|minute|min|hour|hr|day|week|month)s?\s+ago", re.IGNORECASE)
_UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "min": 60,
    "hour": 3600,
    "hr": 3600,
    "day": 86400,
    "week": 7 * 86400,
    "month": 30 * 86400,
}

_REMOTE_FILTER = {RemotePolicy.ONSITE: "1", RemotePolicy.REMOTE: "2", RemotePolicy.HYBRID: "3"}
_SENIORITY_FILTER = {
    Seniority.ENTRY: "2",
    Seniority.MID: "3",
    Seniority.SENIOR: "4",
    Seniority.LEAD: "5",
    Seniority.PRINCIPAL: "6",
}
_EMPLOYMENT_FILTER = {
    EmploymentType.FULL_TIME: "F",
    EmploymentType.PART_TIME: "P",
    EmploymentType.CONTRACT: "C",
    EmploymentType.INTERNSHIP: "I",
}


def build_search_url(config: LinkedInConfig, criteria: JobCriteria) -> str:
    params = {
        "keywords": " ".join(criteria.keywords),
        "location": criteria.location,
        "f_TPR": "r3600",
    }
    if criteria.remote_policy in _REMOTE_FILTER:
        params["f_WT"] = _REMOTE_FILTER[criteria.remote_policy]
    if criteria.seniority in _SENIORITY_FILTER:
        params["f_E"] = _SENIORITY_FILTER[criteria.seniority]
    if criteria.employment_type in _EMPLOYMENT_FILTER:
        params["f_JT"] = _EMPLOYMENT_FILTER[criteria.employment_type]
    return f"{config.jobs_url}?{urlencode(params)}"


def job_id_from_url(url: str) -> str | None:
    """``https://www.linkedin.com/jobs/view/123/`` → ``li-123``."""
    m = _JOB_ID_RE.search(url)
    return f"li-{m.group(1)}" if m else None


def parse_posted_at(text: str, now: datetime) -> datetime | None:
    """Turn LinkedIn's "5 minutes ago" style labels into a timestamp."""
    low = text.strip().lower()
    if low.startswith("just now") or low.startswith("moments ago"):
        return now
    m = _RELATIVE_RE.search(low)
    if not m:
        return None
    return now - timedelta(seconds=int(m.group(1)) * _UNIT_SECONDS[m.group(2).lower()])


def classify_page(url: str, status: int | None = None) -> ScrapingError.Kind | None:
    low = url.lower()
    if status == 429:
        return ScrapingError.Kind.RATE_LIMITED
    if "/checkpoint/" in low or "challenge" in low:
        return ScrapingError.Kind.CAPTCHA_REQUIRED
    if "/login" in low or "authwall" in low or "/uas/" in low:
        return ScrapingError.Kind.AUTH_REQUIRED
    if status is not None and status >= 500:
        return ScrapingError.Kind.NETWORK_ERROR
    return None


def job_from_card(
    href: str, title: str, company: str, location: str, posted_label: str, criteria_id: str, now: datetime,
) -> Job | None:
    """Build a search-result job; promoted cards without a time label count as posted now."""
    job_id = job_id_from_url(href)
    if job_id is None or not title:
        return None
    return Job(
        id=job_id,
        title=title,
        company=company,
        location=location,
        description=f"{title} at {company} in {location}",
        apply_url=href.split("?")[0],
        posted_at=parse_posted_at(posted_label, now) or now,
        criteria_id=criteria_id,
    )


def _cookie_params(session: AuthSession) -> list[dict]:
    return [
        {"name": name, "value": value, "domain": ".linkedin.com", "path": "/"}
        for name, value in session.cookie_pairs()
    ]


class LinkedInScraper(Scraper):
    def __init__(self, config: LinkedInConfig) -> None:
        self.config = config

    @asynccontextmanager
    async def _page(self, *, headless: bool, session: AuthSession | None = None) -> AsyncIterator[Page]:
        """Open a page; any Playwright failure inside surfaces as ScrapingError."""
        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(headless=headless)
                try:
                    context = await browser.new_context(
                        viewport={"width": 1280, "height": 900},
                        user_agent=session.user_agent if session and session.user_agent else USER_AGENT,
                    )
                    if session is not None:
                        await context.add_cookies(_cookie_params(session))
                    page = await context.new_page()
                    page.set_default_timeout(self.config.timeout * 1000)
                    yield page
                except PlaywrightTimeoutError as exc:
                    raise ScrapingError(ScrapingError.Kind.TIMEOUT, f"Browser operation timed out: {exc}", exc) from exc
                except PlaywrightError as exc:
                    raise ScrapingError(ScrapingError.Kind.UNKNOWN, f"Browser operation failed: {exc}", exc) from exc
                finally:
                    await browser.close()
        except PlaywrightError as exc:
            # Driver start, browser launch or close
            raise ScrapingError(ScrapingError.Kind.NETWORK_ERROR, f"Browser unavailable: {exc}", exc) from exc

    async def _goto(self, page: Page, url: str) -> None:
        try:
            resp = await page.goto(url, wait_until="domcontentloaded")
        except PlaywrightTimeoutError as exc:
            raise ScrapingError(ScrapingError.Kind.TIMEOUT, f"Timed out loading {url}", exc) from exc
        except PlaywrightError as exc:
            raise ScrapingError(ScrapingError.Kind.NETWORK_ERROR, f"Failed to load {url}: {exc}", exc) from exc
        kind = classify_page(page.url, resp.status if resp is not None else None)
        if kind is not None:
            raise ScrapingError(kind, f"LinkedIn refused {url} ({kind.value})")

    async def _on_feed(self, page: Page) -> bool:
        try:
            await self._goto(page, urljoin(self.config.base_url, "/feed/"))
        except ScrapingError as exc:
            if exc.kind is ScrapingError.Kind.AUTH_REQUIRED:
                return False
            raise
        return await page.locator(FEED_SELECTOR).first.is_visible()

    async def check_auth(self) -> bool:
        async with self._page(headless=self.config.headless) as page:
            return await self._on_feed(page)

    async def is_logged_in(self, session: AuthSession) -> bool:
        async with self._page(headless=True, session=session) as page:
            ok = await self._on_feed(page)
        log.debug("Session %s accepted: %s", session.id, ok)
        return ok

    async def login(self) -> AuthSession:
        # Manual login needs a visible browser regardless of config
        async with self._page(headless=False) as page:
            await self._goto_login(page)
            try:
                await page.wait_for_url("**/feed/**", timeout=self.config.login_timeout * 1000)
            except PlaywrightTimeoutError as exc:
                raise ScrapingError(
                    ScrapingError.Kind.TIMEOUT,
                    f"Login not completed within {self.config.login_timeout:.0f}s",
                    exc,
                ) from exc
            except PlaywrightError as exc:
                raise ScrapingError(ScrapingError.Kind.UNKNOWN, f"Login failed: {exc}", exc) from exc
            cookies = await page.context.cookies()
            user_agent = await page.evaluate("() => navigator.userAgent")

        now = utcnow()
        return AuthSession(
            id=f"session-{uuid.uuid4().hex[:12]}",
            cookies=[f"{c['name']}={c['value']}" for c in cookies],
            user_agent=user_agent,
            expires_at=now + SESSION_TTL,
            created_at=now,
            updated_at=now,
        )

    async def _goto_login(self, page: Page) -> None:
        try:
            await page.goto(self.config.login_url, wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise ScrapingError(ScrapingError.Kind.NETWORK_ERROR, f"Failed to open login page: {exc}", exc) from exc

    async def scrape_jobs(self, criteria: JobCriteria, session: AuthSession) -> list[Job]:
        url = build_search_url(self.config, criteria)
        log.info("Searching LinkedIn: %s", criteria.label)
        async with self._page(headless=self.config.headless, session=session) as page:
            await self._goto(page, url)
            if not await self._wait_for_cards(page):
                return []
            await page.mouse.wheel(0, 4000)
            await asyncio.sleep(self.config.request_delay)
            jobs = await self._read_cards(page, criteria)
            if self.config.fetch_details:
                await self._fill_descriptions(page, jobs)
        log.info("LinkedIn returned %d postings for '%s'", len(jobs), criteria.id)
        return jobs

    async def _wait_for_cards(self, page: Page) -> bool:
        try:
            await page.wait_for_selector(CARD_SELECTOR, timeout=self.config.timeout * 1000)
            return True
        except PlaywrightTimeoutError as exc:
            if await page.locator(NO_RESULTS_SELECTOR).count():
                log.info("No results for this search")
                return False
            kind = classify_page(page.url)
            if kind is not None:
                raise ScrapingError(kind, f"LinkedIn redirected to {page.url}", exc) from exc
            raise ScrapingError(
                ScrapingError.Kind.DOM_DRIFT, "Job cards not found; the page layout may have changed", exc,
            ) from exc

    async def _read_cards(self, page: Page, criteria: JobCriteria) -> list[Job]:
        now = utcnow()
        jobs: list[Job] = []
        cards = page.locator(CARD_SELECTOR)
        for i in range(min(await cards.count(), self.config.max_jobs)):
            card = cards.nth(i)
            link = card.locator(LINK_SELECTOR).first
            if not await link.count():
                continue
            href = urljoin(self.config.base_url, await link.get_attribute("href") or "")
            job = job_from_card(
                href,
                await self._text(card, TITLE_SELECTOR),
                await self._text(card, COMPANY_SELECTOR),
                await self._text(card, LOCATION_SELECTOR),
                await self._text(card, "time"),
                criteria.id,
                now,
            )
            if job is None:
                log.debug("Skipping card without a job link or title: %s", href)
                continue
            jobs.append(job)
        return jobs

    @staticmethod
    async def _text(scope, selector: str) -> str:
        loc = scope.locator(selector).first
        if not await loc.count():
            return ""
        return " ".join((await loc.inner_text()).split())

    async def _fill_descriptions(self, page: Page, jobs: list[Job]) -> None:
        for job in jobs:
            await asyncio.sleep(self.config.request_delay)
            try:
                await self._goto(page, job.apply_url)
                text = await self._text(page, DESCRIPTION_SELECTOR)
            except ScrapingError as exc:
                if exc.kind in (ScrapingError.Kind.TIMEOUT, ScrapingError.Kind.NETWORK_ERROR):
                    log.warning("Could not load details for %s: %s", job.id, exc.message)
                    continue
                raise
            if text:
                job.description = text
