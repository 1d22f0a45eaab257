"""Tests for the run orchestrator and the auxiliary agent operations."""
import asyncio

import pytest

from conftest import make_job, make_session
from job_hunter import agent
from job_hunter.errors import AuthenticateError, ConfigError, ScrapeJobsError, ScrapingError, SendNotificationsError
from job_hunter.models import JobScore, RunStatus, utcnow


@pytest.fixture
def ctx(config, scraper, llm, storage, notifier):
    storage.session = make_session()
    return agent.AgentContext(config=config, scraper=scraper, llm=llm, storage=storage, notifier=notifier)


def statuses(storage):
    return [r["status"] for r in storage.run_history]


@pytest.mark.asyncio
async def test_full_run_completes_and_notifies(ctx, criteria, scraper, llm, storage, notifier):
    scraper.jobs = [make_job("li-1"), make_job("li-2"), make_job("li-3")]
    llm.scores = {"li-1": 90, "li-2": 65, "li-3": 30}

    run = await agent.run_discovery(ctx, criteria)

    assert run.status is RunStatus.COMPLETED
    assert run.completed_at is not None
    assert (run.jobs_found, run.jobs_processed, run.jobs_scored) == (3, 3, 2)
    assert run.token_spend == llm.tokens_used
    assert run.id.startswith("run-")

    assert statuses(storage)[0] == "RUNNING"
    assert statuses(storage)[-1] == "COMPLETED"
    assert storage.runs[run.id].jobs_scored == 2

    (digest_jobs, run_id, label) = notifier.digests[0]
    assert run_id == run.id
    assert label == "python, backend in Remote"
    assert {j.id for j in digest_jobs} == {"li-1", "li-2"}
    assert notifier.alerts == [("li-1", 90)]

    assert storage.jobs["li-1"].score == 90
    assert storage.jobs["li-1"].criteria_id == criteria.id


@pytest.mark.asyncio
async def test_counts_never_decrease_across_persisted_snapshots(ctx, criteria, scraper):
    scraper.jobs = [make_job("li-1"), make_job("li-2")]

    await agent.run_discovery(ctx, criteria)

    history = ctx.storage.run_history
    for field in ("jobs_found", "jobs_processed", "jobs_scored", "token_spend"):
        values = [r[field] for r in history]
        assert values == sorted(values), field


@pytest.mark.asyncio
async def test_dry_run_stops_after_scrape(ctx, criteria, scraper, llm, notifier):
    scraper.jobs = [make_job("li-1")]

    run = await agent.run_discovery(ctx, criteria, dry_run=True)

    assert run.status is RunStatus.COMPLETED
    assert run.jobs_found == 1
    assert run.jobs_processed == 0
    assert llm.extract_calls == []
    assert notifier.digests == []


@pytest.mark.asyncio
async def test_no_new_jobs_still_sends_empty_digest(ctx, criteria, notifier):
    run = await agent.run_discovery(ctx, criteria)

    assert run.status is RunStatus.COMPLETED
    assert run.jobs_found == 0
    assert len(notifier.digests) == 1
    assert notifier.digests[0][0] == []


@pytest.mark.asyncio
async def test_scrape_failure_marks_run_failed_and_reraises(ctx, criteria, scraper, storage, notifier):
    scraper.scrape_error = ScrapingError(ScrapingError.Kind.AUTH_REQUIRED, "authwall")

    with pytest.raises(ScrapeJobsError):
        await agent.run_discovery(ctx, criteria)

    (run,) = storage.runs.values()
    assert run.status is RunStatus.FAILED
    assert run.completed_at is not None
    assert run.errors and "authwall" in run.errors[0]
    assert len(notifier.errors) == 1


@pytest.mark.asyncio
async def test_unattended_run_fails_instead_of_logging_in(ctx, criteria, scraper, storage, notifier):
    storage.session = None

    with pytest.raises(AuthenticateError) as info:
        await agent.run_discovery(ctx, criteria, allow_login=False)

    assert info.value.kind is AuthenticateError.Kind.SESSION_EXPIRED
    assert scraper.login_calls == 0
    assert scraper.scrape_calls == 0
    (run,) = storage.runs.values()
    assert run.status is RunStatus.FAILED
    assert len(notifier.errors) == 1


@pytest.mark.asyncio
async def test_failure_keeps_partial_counts(ctx, criteria, scraper, notifier, storage):
    scraper.jobs = [make_job("li-1"), make_job("li-2")]
    notifier.fail_digest = True

    with pytest.raises(SendNotificationsError):
        await agent.run_discovery(ctx, criteria)

    (run,) = storage.runs.values()
    assert run.status is RunStatus.FAILED
    assert (run.jobs_found, run.jobs_processed, run.jobs_scored) == (2, 2, 2)


@pytest.mark.asyncio
async def test_failed_error_alert_does_not_mask_original(ctx, criteria, scraper, notifier, storage):
    scraper.scrape_error = ScrapingError(ScrapingError.Kind.DOM_DRIFT, "layout changed")
    notifier.fail_error_alert = True

    with pytest.raises(ScrapeJobsError):
        await agent.run_discovery(ctx, criteria)

    (run,) = storage.runs.values()
    assert run.status is RunStatus.FAILED


@pytest.mark.asyncio
async def test_missing_cv_fails_run_with_config_error(ctx, criteria, scraper, cv_file, storage):
    scraper.jobs = [make_job("li-1")]
    cv_file.unlink()

    with pytest.raises(ConfigError) as exc_info:
        await agent.run_discovery(ctx, criteria)

    assert exc_info.value.kind is ConfigError.Kind.FILE_NOT_FOUND
    (run,) = storage.runs.values()
    assert run.status is RunStatus.FAILED
    assert run.jobs_processed == 1


@pytest.mark.asyncio
async def test_cancellation_marks_run_failed(ctx, criteria, scraper, storage):
    async def hang(criteria, session):
        await asyncio.sleep(3600)

    scraper.scrape_jobs = hang
    task = asyncio.create_task(agent.run_discovery(ctx, criteria))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    (run,) = storage.runs.values()
    assert run.status is RunStatus.FAILED


@pytest.mark.asyncio
async def test_score_existing_jobs_uses_cache(ctx, criteria, storage, llm):
    storage.jobs["li-1"] = make_job("li-1", criteria_id=criteria.id)
    storage.jobs["li-2"] = make_job("li-2", criteria_id=criteria.id)
    storage.scores.append(
        JobScore(job_id="li-1", score=91, rationale="cached", gaps=(), cv_version="cv-1", scored_at=utcnow())
    )

    jobs = await agent.score_existing_jobs(ctx, criteria)

    assert {j.id: j.score for j in jobs} == {"li-1": 91, "li-2": 80}
    assert llm.score_calls == ["li-2"]
    assert storage.jobs["li-2"].score == 80


@pytest.mark.asyncio
async def test_send_last_results_replays_high_scores_without_alerts(ctx, criteria, storage, notifier):
    storage.jobs["a"] = make_job("a", criteria_id=criteria.id).with_score(95, "", [])
    storage.jobs["b"] = make_job("b", criteria_id=criteria.id).with_score(69, "", [])
    storage.jobs["c"] = make_job("c", criteria_id=criteria.id)

    sent = await agent.send_last_results(ctx, criteria)

    assert [j.id for j in sent] == ["a"]
    (jobs, run_id, _) = notifier.digests[0]
    assert run_id.startswith("replay-")
    assert [j.id for j in jobs] == ["a"]
    assert notifier.alerts == []


@pytest.mark.asyncio
async def test_status_reports_latest_run(ctx, criteria, scraper, storage):
    scraper.jobs = [make_job("li-1")]
    await agent.run_discovery(ctx, criteria)

    status = await agent.get_status(ctx)

    assert status.session_valid is True
    assert status.last_run.status is RunStatus.COMPLETED
    assert status.total_jobs == 1
    assert status.high_score_jobs == 1
    assert status.token_spend == status.last_run.token_spend > 0
    assert status.errors == []


@pytest.mark.asyncio
async def test_status_with_expired_session(ctx, storage):
    storage.session = make_session(hours_left=-1)

    status = await agent.get_status(ctx)

    assert status.session_valid is False
    assert status.last_run is None


@pytest.mark.asyncio
async def test_purge_cache_keeps_session(ctx, storage):
    storage.seen = {"a", "b"}

    await agent.purge(ctx, "cache")

    assert storage.seen == set()
    assert storage.session is not None


@pytest.mark.asyncio
async def test_purge_all_drops_session(ctx, storage):
    storage.seen = {"a"}

    await agent.purge(ctx, "all")

    assert storage.seen == set()
    assert storage.session is None
