"""Score jobs against the candidate profile with a 24h per-CV-version cache."""
from __future__ import annotations

from datetime import datetime

from job_hunter.errors import LLMError, ScoreJobsError, StorageError
from job_hunter.log import get_logger
from job_hunter.models import Job, JobScore, utcnow
from job_hunter.ports import LLMService, Storage

log = get_logger(__name__)


async def _cached_score(storage: Storage, job: Job, profile_version: str, now: datetime) -> JobScore | None:
    try:
        scores = await storage.get_job_scores(job.id)
    except StorageError as exc:
        raise ScoreJobsError(
            ScoreJobsError.Kind.STORAGE_ERROR, f"Failed to get existing scores: {exc.message}", exc,
        ) from exc
    for score in scores:
        if score.is_fresh(profile_version, now):
            return score
    return None


async def _passes_prefilter(llm: LLMService, job: Job, profile_text: str) -> bool:
    try:
        return await llm.prefilter_job(job, profile_text) is not False
    except LLMError as exc:
        # An unanswerable prefilter never drops a job
        log.debug("Prefilter failed for %s (%s), scoring anyway", job.id, exc.message)
        return True


async def _score_one(
    llm: LLMService,
    storage: Storage,
    job: Job,
    profile_text: str,
    profile_version: str,
    use_prefilter: bool,
    now: datetime,
) -> JobScore | None:
    cached = await _cached_score(storage, job, profile_version, now)
    if cached is not None:
        log.debug("Reusing score %.0f for %s", cached.score, job.id)
        return cached

    if use_prefilter and not await _passes_prefilter(llm, job, profile_text):
        log.info("Prefilter rejected %s (%s at %s)", job.id, job.title, job.company)
        return None

    try:
        result = await llm.score_job(job, profile_text)
    except LLMError as exc:
        raise ScoreJobsError(ScoreJobsError.Kind.LLM_ERROR, f"Failed to score job: {exc.message}", exc) from exc

    score = JobScore(
        job_id=job.id,
        score=result.score,
        rationale=result.rationale,
        gaps=tuple(result.gaps),
        cv_version=profile_version,
        scored_at=utcnow(),
    )
    try:
        await storage.save_job_score(score)
    except StorageError as exc:
        raise ScoreJobsError(
            ScoreJobsError.Kind.STORAGE_ERROR, f"Failed to save job score: {exc.message}", exc,
        ) from exc
    return score


async def score_jobs(
    llm: LLMService,
    storage: Storage,
    jobs: list[Job],
    profile_text: str,
    profile_version: str,
    min_score: float,
    use_prefilter: bool,
    now: datetime | None = None,
) -> list[Job]:
    """Return the jobs scoring at least ``min_score``, annotated with their score.

    ``now`` only decides cache freshness; new scores are stamped with the
    current time.
    """
    now = now or utcnow()
    kept: list[Job] = []
    for job in jobs:
        score = await _score_one(llm, storage, job, profile_text, profile_version, use_prefilter, now)
        if score is None:
            continue
        if score.score >= min_score:
            kept.append(job.with_score(score.score, score.rationale, list(score.gaps)))
        else:
            log.debug("Discarding %s: score %.0f below %s", job.id, score.score, min_score)
    log.info("Scored %d jobs, %d at or above %s", len(jobs), len(kept), min_score)
    return kept
