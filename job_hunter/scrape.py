"""Incremental scrape: fetch postings, drop the seen ones, persist the rest."""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from job_hunter.errors import ScrapeJobsError, ScrapingError, StorageError
from job_hunter.log import get_logger
from job_hunter.models import AuthSession, Job, JobCriteria
from job_hunter.ports import Scraper, Storage

log = get_logger(__name__)

_SCRAPER_KINDS = {
    ScrapingError.Kind.AUTH_REQUIRED: ScrapeJobsError.Kind.AUTH_REQUIRED,
    ScrapingError.Kind.RATE_LIMITED: ScrapeJobsError.Kind.RATE_LIMITED,
}


def _storage_error(action: str, exc: StorageError) -> ScrapeJobsError:
    return ScrapeJobsError(ScrapeJobsError.Kind.STORAGE_ERROR, f"Failed to {action}: {exc.message}", exc)


async def scrape_jobs(
    scraper: Scraper,
    storage: Storage,
    criteria: JobCriteria,
    session: AuthSession,
    run_id: str,
    since: datetime | None = None,
) -> list[Job]:
    """Return the jobs first seen by this scrape, after saving and marking them.

    Without ``since``, previously stored jobs for the criteria are returned
    as-is when there are any and no scrape happens. Freshness is left to the
    scraper's own search window; only the seen-set filters postings here.
    """
    if since is None:
        try:
            existing = await storage.get_jobs_by_criteria(criteria.id)
        except StorageError as exc:
            raise _storage_error("get existing jobs", exc) from exc
        if existing:
            log.info("[%s] Returning %d stored jobs for '%s'", run_id, len(existing), criteria.id)
            return existing

    try:
        scraped = await scraper.scrape_jobs(criteria, session)
    except ScrapingError as exc:
        kind = _SCRAPER_KINDS.get(exc.kind, ScrapeJobsError.Kind.SCRAPING_FAILED)
        raise ScrapeJobsError(kind, f"Failed to scrape jobs: {exc.message}", exc) from exc

    try:
        seen = await storage.get_seen_job_ids()
    except StorageError as exc:
        raise _storage_error("get seen job ids", exc) from exc

    fresh: list[Job] = []
    batch: set[str] = set()
    for job in scraped:
        if job.id in seen or job.id in batch:
            continue
        batch.add(job.id)
        fresh.append(job)
    log.info("[%s] Scraped %d postings, %d new", run_id, len(scraped), len(fresh))

    saved: list[Job] = []
    for job in fresh:
        try:
            stored = await storage.save_job(replace(job, criteria_id=criteria.id))
        except StorageError as exc:
            raise _storage_error("save job", exc) from exc
        try:
            await storage.mark_job_seen(job.id)
        except StorageError as exc:
            raise _storage_error("mark job as seen", exc) from exc
        saved.append(stored)
    return saved
