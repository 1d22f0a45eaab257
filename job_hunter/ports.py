"""Collaborator interfaces consumed by the pipeline stages.

Implementations raise the matching typed error from ``job_hunter.errors``:
ScrapingError, LLMError, StorageError and NotificationError respectively.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from job_hunter.models import AuthSession, Job, JobCriteria, JobRun, JobScore, ScoreResult


class Scraper(ABC):
    @abstractmethod
    async def check_auth(self) -> bool:
        pass

    @abstractmethod
    async def login(self) -> AuthSession:
        """Open an interactive login and block until it completes or times out."""

    @abstractmethod
    async def is_logged_in(self, session: AuthSession) -> bool:
        pass

    @abstractmethod
    async def scrape_jobs(self, criteria: JobCriteria, session: AuthSession) -> list[Job]:
        pass


class LLMService(ABC):
    tokens_used: int = 0

    @abstractmethod
    async def extract_job_data(self, raw_content: str) -> Job:
        pass

    @abstractmethod
    async def score_job(self, job: Job, profile_text: str) -> ScoreResult:
        pass

    @abstractmethod
    async def prefilter_job(self, job: Job, profile_text: str) -> bool:
        pass


class Storage(ABC):
    @abstractmethod
    async def save_job(self, job: Job) -> Job:
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None:
        pass

    @abstractmethod
    async def get_jobs_by_criteria(self, criteria_id: str, since: datetime | None = None) -> list[Job]:
        pass

    @abstractmethod
    async def save_session(self, session: AuthSession) -> None:
        pass

    @abstractmethod
    async def get_session(self) -> AuthSession | None:
        pass

    @abstractmethod
    async def delete_session(self) -> None:
        pass

    @abstractmethod
    async def save_job_run(self, run: JobRun) -> None:
        pass

    @abstractmethod
    async def get_latest_job_run(self, criteria_id: str) -> JobRun | None:
        pass

    @abstractmethod
    async def save_job_score(self, score: JobScore) -> None:
        pass

    @abstractmethod
    async def get_job_scores(self, job_id: str) -> list[JobScore]:
        """All recorded scores for a job, newest first."""

    @abstractmethod
    async def mark_job_seen(self, job_id: str) -> None:
        pass

    @abstractmethod
    async def is_job_seen(self, job_id: str) -> bool:
        pass

    @abstractmethod
    async def get_seen_job_ids(self) -> set[str]:
        pass

    @abstractmethod
    async def clear_seen_jobs(self) -> None:
        pass


class Notifier(ABC):
    @abstractmethod
    async def send_job_digest(self, jobs: list[Job], run_id: str, criteria_label: str = "") -> None:
        pass

    @abstractmethod
    async def send_job_alert(self, job: Job, score: float) -> None:
        pass

    @abstractmethod
    async def send_status_update(self, message: str) -> None:
        pass

    @abstractmethod
    async def send_error_alert(self, error: str, context: str | None = None) -> None:
        pass
