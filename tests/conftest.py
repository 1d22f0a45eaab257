"""Shared fixtures: in-memory fakes of the scraper, LLM, storage and notifier."""
from __future__ import annotations

import os
from datetime import datetime, timedelta

import pytest

os.environ.setdefault("LOG_TO_FILE", "false")

from job_hunter.config import Config, ScoringConfig, StorageConfig, TelegramConfig  # noqa: E402
from job_hunter.errors import LLMError, NotificationError, ScrapingError, StorageError  # noqa: E402
from job_hunter.models import AuthSession, Job, JobCriteria, JobRun, JobScore, ScoreResult, utcnow  # noqa: E402
from job_hunter.ports import LLMService, Notifier, Scraper, Storage  # noqa: E402


def make_job(job_id: str = "job-1", minutes_ago: int = 10, **overrides) -> Job:
    values = dict(
        id=job_id,
        title="Senior Python Engineer",
        company="Acme",
        location="Remote",
        description="Python, PostgreSQL, Kubernetes",
        apply_url=f"https://www.linkedin.com/jobs/view/{job_id}/",
        posted_at=utcnow() - timedelta(minutes=minutes_ago),
    )
    values.update(overrides)
    return Job(**values)


def make_session(hours_left: float = 12, session_id: str = "session-1") -> AuthSession:
    return AuthSession(
        id=session_id,
        cookies=["li_at=abc", "JSESSIONID=ajax:1=2"],
        user_agent="test-agent",
        expires_at=utcnow() + timedelta(hours=hours_left),
    )


class FakeScraper(Scraper):
    def __init__(self, jobs: list[Job] | None = None, accepts_session: bool = True) -> None:
        self.jobs = jobs or []
        self.accepts_session = accepts_session
        self.login_calls = 0
        self.check_calls = 0
        self.scrape_calls = 0
        self.login_error: BaseException | None = None
        self.check_error: ScrapingError | None = None
        self.scrape_error: ScrapingError | None = None

    async def check_auth(self) -> bool:
        return self.accepts_session

    async def login(self) -> AuthSession:
        self.login_calls += 1
        if self.login_error is not None:
            raise self.login_error
        return make_session(session_id=f"session-new-{self.login_calls}")

    async def is_logged_in(self, session: AuthSession) -> bool:
        self.check_calls += 1
        if self.check_error is not None:
            raise self.check_error
        return self.accepts_session

    async def scrape_jobs(self, criteria: JobCriteria, session: AuthSession) -> list[Job]:
        self.scrape_calls += 1
        if self.scrape_error is not None:
            raise self.scrape_error
        return list(self.jobs)


class FakeLLM(LLMService):
    """Scores come from ``scores`` by job id (default 80)."""

    def __init__(self) -> None:
        self.tokens_used = 0
        self.scores: dict[str, float] = {}
        self.extract_failures: dict[str, int] = {}
        self.prefilter_result: bool | None = True
        self.prefilter_error = False
        self.score_error: LLMError | None = None
        self.extract_calls: list[str] = []
        self.score_calls: list[str] = []
        self.prefilter_calls: list[str] = []

    async def extract_job_data(self, raw_content: str) -> Job:
        self.extract_calls.append(raw_content)
        self.tokens_used += 100
        remaining = self.extract_failures.get(raw_content, 0)
        if remaining:
            self.extract_failures[raw_content] = remaining - 1
            raise LLMError(LLMError.Kind.INVALID_RESPONSE, "bad json")
        title = raw_content.splitlines()[0]
        return Job(
            id="llm-generated",
            title=title,
            company="Acme",
            location="Remote",
            description=raw_content,
            apply_url="",
            posted_at=None,
            tech_stack=["python"],
        )

    async def score_job(self, job: Job, profile_text: str) -> ScoreResult:
        self.score_calls.append(job.id)
        self.tokens_used += 50
        if self.score_error is not None:
            raise self.score_error
        return ScoreResult(score=self.scores.get(job.id, 80), rationale="good match", gaps=("go",))

    async def prefilter_job(self, job: Job, profile_text: str) -> bool:
        self.prefilter_calls.append(job.id)
        if self.prefilter_error:
            raise LLMError(LLMError.Kind.INVALID_RESPONSE, "maybe?")
        return self.prefilter_result


class MemoryStorage(Storage):
    def __init__(self) -> None:
        self.jobs: dict[str, Job] = {}
        self.session: AuthSession | None = None
        self.runs: dict[str, JobRun] = {}
        self.run_history: list[dict] = []
        self.scores: list[JobScore] = []
        self.seen: set[str] = set()
        self.fail_on: set[str] = set()

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise StorageError(StorageError.Kind.DATABASE_ERROR, f"{op} exploded")

    async def save_job(self, job: Job) -> Job:
        self._maybe_fail("save_job")
        self.jobs[job.id] = job
        return job

    async def get_job(self, job_id: str) -> Job | None:
        return self.jobs.get(job_id)

    async def get_jobs_by_criteria(self, criteria_id: str, since: datetime | None = None) -> list[Job]:
        self._maybe_fail("get_jobs_by_criteria")
        jobs = [j for j in self.jobs.values() if j.criteria_id == criteria_id]
        if since is not None:
            jobs = [j for j in jobs if j.posted_at >= since]
        return sorted(jobs, key=lambda j: j.posted_at, reverse=True)

    async def save_session(self, session: AuthSession) -> None:
        self._maybe_fail("save_session")
        self.session = session

    async def get_session(self) -> AuthSession | None:
        self._maybe_fail("get_session")
        return self.session

    async def delete_session(self) -> None:
        self._maybe_fail("delete_session")
        self.session = None

    async def save_job_run(self, run: JobRun) -> None:
        self._maybe_fail("save_job_run")
        self.runs[run.id] = JobRun.from_dict(run.to_dict())
        self.run_history.append(run.to_dict())

    async def get_latest_job_run(self, criteria_id: str) -> JobRun | None:
        runs = [r for r in self.runs.values() if r.criteria_id == criteria_id]
        return max(runs, key=lambda r: r.started_at) if runs else None

    async def save_job_score(self, score: JobScore) -> None:
        self._maybe_fail("save_job_score")
        self.scores.append(score)

    async def get_job_scores(self, job_id: str) -> list[JobScore]:
        self._maybe_fail("get_job_scores")
        return sorted((s for s in self.scores if s.job_id == job_id), key=lambda s: s.scored_at, reverse=True)

    async def mark_job_seen(self, job_id: str) -> None:
        self._maybe_fail("mark_job_seen")
        self.seen.add(job_id)

    async def is_job_seen(self, job_id: str) -> bool:
        return job_id in self.seen

    async def get_seen_job_ids(self) -> set[str]:
        self._maybe_fail("get_seen_job_ids")
        return set(self.seen)

    async def clear_seen_jobs(self) -> None:
        self.seen.clear()


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.digests: list[tuple[list[Job], str, str]] = []
        self.alerts: list[tuple[str, float]] = []
        self.statuses: list[str] = []
        self.errors: list[tuple[str, str | None]] = []
        self.fail_digest = False
        self.fail_alert_for: set[str] = set()
        self.fail_error_alert = False

    async def send_job_digest(self, jobs: list[Job], run_id: str, criteria_label: str = "") -> None:
        if self.fail_digest:
            raise NotificationError(NotificationError.Kind.NETWORK_ERROR, "telegram down")
        self.digests.append((list(jobs), run_id, criteria_label))

    async def send_job_alert(self, job: Job, score: float) -> None:
        if job.id in self.fail_alert_for:
            raise NotificationError(NotificationError.Kind.RATE_LIMITED, "slow down")
        self.alerts.append((job.id, score))

    async def send_status_update(self, message: str) -> None:
        self.statuses.append(message)

    async def send_error_alert(self, error: str, context: str | None = None) -> None:
        if self.fail_error_alert:
            raise NotificationError(NotificationError.Kind.NETWORK_ERROR, "telegram down")
        self.errors.append((error, context))


@pytest.fixture
def criteria() -> JobCriteria:
    return JobCriteria(id="python-remote", keywords=("python", "backend"), location="Remote")


@pytest.fixture
def scraper() -> FakeScraper:
    return FakeScraper()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def cv_file(tmp_path):
    path = tmp_path / "cv.txt"
    path.write_text("Senior Python engineer, 8 years, Kubernetes, PostgreSQL.", encoding="utf-8")
    return path


@pytest.fixture
def config(tmp_path, cv_file, criteria) -> Config:
    return Config(
        telegram=TelegramConfig(bot_token="t", chat_id="c", enabled=True),
        storage=StorageConfig(data_dir=tmp_path / "data", encryption_key="test-key"),
        scoring=ScoringConfig(min_score=60, cv_path=cv_file, cv_version="cv-1"),
        criteria=(criteria,),
    )
