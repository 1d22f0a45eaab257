"""Turn raw posting text into structured jobs, one LLM call per item."""
from __future__ import annotations

from dataclasses import replace

from job_hunter.errors import LLMError
from job_hunter.log import get_logger
from job_hunter.models import Job, RawJob
from job_hunter.ports import LLMService

log = get_logger(__name__)


async def _extract_one(llm: LLMService, raw: RawJob, attempts: int) -> Job | None:
    for attempt in range(1, attempts + 1):
        try:
            return await llm.extract_job_data(raw.content)
        except LLMError as exc:
            if attempt < attempts:
                log.debug("Extraction of %s failed (%s), retrying", raw.url, exc.message)
                continue
            log.warning("Dropping %s after %d extraction attempt(s): %s", raw.url, attempts, exc.message)
    return None


def _carry_identity(job: Job, raw: RawJob) -> Job:
    return replace(
        job,
        id=raw.job_id or job.id,
        apply_url=job.apply_url or raw.url,
        posted_at=job.posted_at or raw.timestamp,
    )


async def process_jobs(llm: LLMService, raw_jobs: list[RawJob], retry_failed: bool = True) -> list[Job]:
    """Extract every item, dropping the ones the LLM cannot handle.

    Per-item LLM failures never propagate; the result keeps input order.
    """
    attempts = 2 if retry_failed else 1
    jobs: list[Job] = []
    for raw in raw_jobs:
        job = await _extract_one(llm, raw, attempts)
        if job is not None:
            jobs.append(_carry_identity(job, raw))
    if len(jobs) < len(raw_jobs):
        log.info("Extracted %d of %d postings", len(jobs), len(raw_jobs))
    return jobs
