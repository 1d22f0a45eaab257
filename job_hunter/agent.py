"""
Job discovery agent.

Runs: authenticate → scrape (last hour) → extract → score → notify, recording
progress on a JobRun that ends COMPLETED or FAILED.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from job_hunter import session as session_manager
from job_hunter.config import ALERT_THRESHOLD, HIGH_SCORE, Config, load_profile
from job_hunter.errors import JobHunterError, NotificationError, StorageError
from job_hunter.extract import process_jobs
from job_hunter.log import get_logger
from job_hunter.models import AuthSession, Job, JobCriteria, JobRun, RawJob, utcnow
from job_hunter.notify import send_notifications
from job_hunter.ports import LLMService, Notifier, Scraper, Storage
from job_hunter.scoring import score_jobs
from job_hunter.scrape import scrape_jobs

log = get_logger(__name__)

SCRAPE_WINDOW = timedelta(hours=1)


@dataclass
class AgentContext:
    config: Config
    scraper: Scraper
    llm: LLMService
    storage: Storage
    notifier: Notifier


@dataclass
class AgentStatus:
    session_valid: bool
    last_run: JobRun | None
    total_jobs: int
    high_score_jobs: int
    token_spend: int
    errors: list[str] = field(default_factory=list)


def build_context(config: Config) -> AgentContext:
    """Wire the real adapters from configuration."""
    from job_hunter.llm import OpenAIService
    from job_hunter.scrapers import get_scraper
    from job_hunter.storage import SqliteStorage
    from job_hunter.telegram import LogNotifier, TelegramNotifier

    if config.telegram.enabled:
        notifier: Notifier = TelegramNotifier(config.telegram.bot_token, config.telegram.chat_id)
    else:
        notifier = LogNotifier()
    return AgentContext(
        config=config,
        scraper=get_scraper(config.linkedin),
        llm=OpenAIService(config.llm),
        storage=SqliteStorage(config.storage.data_dir, config.storage.encryption_key),
        notifier=notifier,
    )


def _now_ms() -> int:
    return int(utcnow().timestamp() * 1000)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, JobHunterError):
        return f"{exc.stage}: {exc.message}"
    return str(exc) or type(exc).__name__


async def authenticate(ctx: AgentContext, force: bool = False) -> AuthSession:
    return await session_manager.authenticate(ctx.scraper, ctx.storage, force_reauth=force)


async def _save_jobs(storage: Storage, jobs: list[Job], criteria_id: str) -> None:
    for job in jobs:
        if job.criteria_id is None:
            job.criteria_id = criteria_id
        await storage.save_job(job)


async def run_discovery(
    ctx: AgentContext,
    criteria: JobCriteria,
    dry_run: bool = False,
    allow_login: bool = True,
) -> JobRun:
    """Execute one discovery run for ``criteria`` and return its final record.

    With ``allow_login=False`` a missing or rejected session fails the run with
    ``SESSION_EXPIRED`` instead of opening the login window (unattended runs).

    Any failure after the run record exists leaves it FAILED with the counts
    reached so far, then propagates.
    """
    run = JobRun(id=f"run-{_now_ms()}", criteria_id=criteria.id)
    await ctx.storage.save_job_run(run)
    tokens_before = ctx.llm.tokens_used
    log.info("[%s] Starting discovery for '%s'%s", run.id, criteria.id, " (dry run)" if dry_run else "")

    try:
        auth = await session_manager.authenticate(
            ctx.scraper, ctx.storage, force_reauth=False, allow_login=allow_login,
        )

        scraped = await scrape_jobs(
            ctx.scraper, ctx.storage, criteria, auth, run.id, since=utcnow() - SCRAPE_WINDOW,
        )
        run.record_found(len(scraped))
        await ctx.storage.save_job_run(run)

        if dry_run:
            run.complete()
            await ctx.storage.save_job_run(run)
            log.info("[%s] Dry run complete: %d new jobs", run.id, run.jobs_found)
            return run

        processed = await process_jobs(ctx.llm, [RawJob.from_job(j) for j in scraped], retry_failed=True)
        await _save_jobs(ctx.storage, processed, criteria.id)
        run.record_processed(len(processed))
        run.record_tokens(ctx.llm.tokens_used - tokens_before)
        await ctx.storage.save_job_run(run)

        profile = load_profile(ctx.config)
        scored = await score_jobs(
            ctx.llm,
            ctx.storage,
            processed,
            profile.text,
            profile.version,
            min_score=ctx.config.scoring.min_score,
            use_prefilter=True,
        )
        await _save_jobs(ctx.storage, scored, criteria.id)
        run.record_scored(len(scored))
        run.record_tokens(ctx.llm.tokens_used - tokens_before)
        await ctx.storage.save_job_run(run)

        await send_notifications(
            ctx.notifier,
            scored,
            run.id,
            criteria.label,
            send_alerts=ctx.config.telegram.enabled,
            alert_threshold=ALERT_THRESHOLD,
        )

        run.complete()
        await ctx.storage.save_job_run(run)
    except BaseException as exc:
        await _record_failure(ctx, run, exc, ctx.llm.tokens_used - tokens_before)
        raise

    log.info(
        "[%s] Completed: found=%d processed=%d scored=%d tokens=%d",
        run.id, run.jobs_found, run.jobs_processed, run.jobs_scored, run.token_spend,
    )
    return run


async def _record_failure(ctx: AgentContext, run: JobRun, exc: BaseException, tokens: int) -> None:
    message = _describe(exc)
    log.error("[%s] Run failed: %s", run.id, message)
    if run.is_terminal:
        return
    run.record_tokens(max(run.token_spend, tokens))
    run.fail(message)
    try:
        await ctx.storage.save_job_run(run)
    except StorageError as save_exc:
        log.error("[%s] Could not persist failed run: %s", run.id, save_exc.message)
    try:
        await ctx.notifier.send_error_alert(message, context=f"Run {run.id} ({run.criteria_id})")
    except NotificationError as alert_exc:
        log.warning("[%s] Error alert not delivered: %s", run.id, alert_exc.message)


async def score_existing_jobs(ctx: AgentContext, criteria: JobCriteria) -> list[Job]:
    """Re-score stored jobs of a criteria (cache-aware) and persist the annotations."""
    jobs = await ctx.storage.get_jobs_by_criteria(criteria.id)
    if not jobs:
        log.info("No stored jobs for '%s'", criteria.id)
        return []
    profile = load_profile(ctx.config)
    scored = await score_jobs(
        ctx.llm,
        ctx.storage,
        jobs,
        profile.text,
        profile.version,
        min_score=ctx.config.scoring.min_score,
        use_prefilter=True,
    )
    await _save_jobs(ctx.storage, scored, criteria.id)
    return scored


async def send_last_results(ctx: AgentContext, criteria: JobCriteria) -> list[Job]:
    """Replay a digest of the stored high-score jobs, without alerts."""
    jobs = await ctx.storage.get_jobs_by_criteria(criteria.id)
    high = [j for j in jobs if (j.score or 0) >= HIGH_SCORE]
    await send_notifications(
        ctx.notifier,
        high,
        f"replay-{_now_ms()}",
        criteria.label,
        send_alerts=False,
        alert_threshold=ALERT_THRESHOLD,
    )
    return high


async def get_status(ctx: AgentContext) -> AgentStatus:
    stored = await ctx.storage.get_session()
    session_valid = stored is not None and not stored.is_expired(utcnow())

    criteria_id = ctx.config.criteria[0].id if ctx.config.criteria else ""
    last_run = await ctx.storage.get_latest_job_run(criteria_id)
    jobs = await ctx.storage.get_jobs_by_criteria(criteria_id)
    return AgentStatus(
        session_valid=session_valid,
        last_run=last_run,
        total_jobs=len(jobs),
        high_score_jobs=sum(1 for j in jobs if (j.score or 0) >= HIGH_SCORE),
        token_spend=last_run.token_spend if last_run else 0,
        errors=list(last_run.errors) if last_run else [],
    )


async def purge(ctx: AgentContext, kind: str = "cache") -> None:
    """``cache`` forgets seen jobs; ``all`` also drops the stored session."""
    if kind not in ("cache", "all"):
        raise ValueError(f"unknown purge type: {kind}")
    if kind == "all":
        await ctx.storage.delete_session()
        log.info("Deleted stored session")
    await ctx.storage.clear_seen_jobs()
    log.info("Cleared seen-job cache")
