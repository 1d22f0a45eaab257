"""Data models for jobs, sessions, criteria, runs and scores."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

SCORE_FRESHNESS = timedelta(hours=24)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_dt(value: Any) -> datetime | None:
    """ISO string or datetime → aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class RemotePolicy(str, Enum):
    REMOTE = "REMOTE"
    HYBRID = "HYBRID"
    ONSITE = "ONSITE"
    UNKNOWN = "UNKNOWN"


class Seniority(str, Enum):
    ENTRY = "ENTRY"
    MID = "MID"
    SENIOR = "SENIOR"
    LEAD = "LEAD"
    PRINCIPAL = "PRINCIPAL"
    UNKNOWN = "UNKNOWN"


class EmploymentType(str, Enum):
    FULL_TIME = "FULL_TIME"
    PART_TIME = "PART_TIME"
    CONTRACT = "CONTRACT"
    INTERNSHIP = "INTERNSHIP"
    UNKNOWN = "UNKNOWN"


class RunStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def _enum(cls: type[Enum], value: Any, default: Enum | None = None) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, cls):
        return value
    return cls(str(value).upper())


def _check_score(score: float | None) -> None:
    if score is not None and not 0 <= score <= 100:
        raise ValueError(f"score must be within [0, 100], got {score}")


@dataclass
class Job:
    id: str
    title: str
    company: str
    location: str
    description: str
    apply_url: str
    posted_at: datetime
    remote_policy: RemotePolicy = RemotePolicy.UNKNOWN
    seniority: Seniority = Seniority.UNKNOWN
    employment_type: EmploymentType = EmploymentType.UNKNOWN
    salary_hint: str | None = None
    languages: list[str] = field(default_factory=list)
    tech_stack: list[str] = field(default_factory=list)
    source: str = "linkedin"
    criteria_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    score: float | None = None
    rationale: str | None = None
    gaps: list[str] | None = None

    def __post_init__(self) -> None:
        # Extraction output may carry nulls for list fields
        if self.languages is None:
            self.languages = []
        if self.tech_stack is None:
            self.tech_stack = []
        _check_score(self.score)

    def with_score(self, score: float, rationale: str, gaps: list[str]) -> Job:
        return replace(self, score=score, rationale=rationale, gaps=list(gaps), updated_at=utcnow())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "company": self.company,
            "location": self.location,
            "description": self.description,
            "apply_url": self.apply_url,
            "posted_at": _iso(self.posted_at),
            "remote_policy": self.remote_policy.value,
            "seniority": self.seniority.value,
            "employment_type": self.employment_type.value,
            "salary_hint": self.salary_hint,
            "languages": list(self.languages),
            "tech_stack": list(self.tech_stack),
            "source": self.source,
            "criteria_id": self.criteria_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "score": self.score,
            "rationale": self.rationale,
            "gaps": list(self.gaps) if self.gaps is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            company=data.get("company", ""),
            location=data.get("location", ""),
            description=data.get("description", ""),
            apply_url=data.get("apply_url", ""),
            posted_at=parse_dt(data.get("posted_at")) or utcnow(),
            remote_policy=_enum(RemotePolicy, data.get("remote_policy"), RemotePolicy.UNKNOWN),
            seniority=_enum(Seniority, data.get("seniority"), Seniority.UNKNOWN),
            employment_type=_enum(EmploymentType, data.get("employment_type"), EmploymentType.UNKNOWN),
            salary_hint=data.get("salary_hint"),
            languages=list(data.get("languages") or []),
            tech_stack=list(data.get("tech_stack") or []),
            source=data.get("source", "linkedin"),
            criteria_id=data.get("criteria_id"),
            created_at=parse_dt(data.get("created_at")) or utcnow(),
            updated_at=parse_dt(data.get("updated_at")) or utcnow(),
            score=data.get("score"),
            rationale=data.get("rationale"),
            gaps=list(data["gaps"]) if data.get("gaps") is not None else None,
        )


@dataclass(frozen=True)
class JobCriteria:
    id: str
    keywords: tuple[str, ...]
    location: str
    remote_policy: RemotePolicy | None = None
    seniority: Seniority | None = None
    employment_type: EmploymentType | None = None
    salary_min: int | None = None
    languages: tuple[str, ...] = ()
    tech_stack: tuple[str, ...] = ()
    enabled: bool = True

    @property
    def label(self) -> str:
        return f"{', '.join(self.keywords)} in {self.location}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobCriteria:
        keywords = data.get("keywords") or []
        if isinstance(keywords, str):
            keywords = [k.strip() for k in keywords.split(",") if k.strip()]
        salary_min = data.get("salary_min")
        return cls(
            id=str(data["id"]),
            keywords=tuple(keywords),
            location=str(data.get("location", "")),
            remote_policy=_enum(RemotePolicy, data.get("remote_policy")),
            seniority=_enum(Seniority, data.get("seniority")),
            employment_type=_enum(EmploymentType, data.get("employment_type")),
            salary_min=int(salary_min) if salary_min is not None else None,
            languages=tuple(data.get("languages") or ()),
            tech_stack=tuple(data.get("tech_stack") or ()),
            enabled=bool(data.get("enabled", True)),
        )


@dataclass
class AuthSession:
    id: str
    cookies: list[str]
    user_agent: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def cookie_pairs(self) -> list[tuple[str, str]]:
        """Split "name=value" strings; values may themselves contain '='."""
        pairs: list[tuple[str, str]] = []
        for raw in self.cookies:
            name, _, value = raw.partition("=")
            if name:
                pairs.append((name.strip(), value))
        return pairs

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "cookies": list(self.cookies),
            "user_agent": self.user_agent,
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthSession:
        return cls(
            id=data["id"],
            cookies=list(data.get("cookies") or []),
            user_agent=data.get("user_agent", ""),
            expires_at=parse_dt(data["expires_at"]),
            created_at=parse_dt(data.get("created_at")) or utcnow(),
            updated_at=parse_dt(data.get("updated_at")) or utcnow(),
        )


@dataclass
class JobRun:
    """Audit record of one pipeline execution.

    Status only ever moves RUNNING → COMPLETED or RUNNING → FAILED, and the
    counters never decrease.
    """

    id: str
    criteria_id: str
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    jobs_found: int = 0
    jobs_processed: int = 0
    jobs_scored: int = 0
    token_spend: int = 0
    errors: list[str] = field(default_factory=list)
    status: RunStatus = RunStatus.RUNNING

    @property
    def is_terminal(self) -> bool:
        return self.status is not RunStatus.RUNNING

    def _set_count(self, name: str, value: int) -> None:
        if self.is_terminal:
            raise ValueError(f"run {self.id} is already {self.status.value}")
        current = getattr(self, name)
        if value < current:
            raise ValueError(f"{name} cannot decrease ({current} → {value})")
        setattr(self, name, value)

    def record_found(self, count: int) -> None:
        self._set_count("jobs_found", count)

    def record_processed(self, count: int) -> None:
        self._set_count("jobs_processed", count)

    def record_scored(self, count: int) -> None:
        self._set_count("jobs_scored", count)

    def record_tokens(self, count: int) -> None:
        self._set_count("token_spend", count)

    def complete(self, now: datetime | None = None) -> None:
        if self.is_terminal:
            raise ValueError(f"run {self.id} is already {self.status.value}")
        self.status = RunStatus.COMPLETED
        self.completed_at = now or utcnow()

    def fail(self, message: str, now: datetime | None = None) -> None:
        if self.is_terminal:
            raise ValueError(f"run {self.id} is already {self.status.value}")
        self.errors.append(message)
        self.status = RunStatus.FAILED
        self.completed_at = now or utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "criteria_id": self.criteria_id,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "jobs_found": self.jobs_found,
            "jobs_processed": self.jobs_processed,
            "jobs_scored": self.jobs_scored,
            "token_spend": self.token_spend,
            "errors": list(self.errors),
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobRun:
        return cls(
            id=data["id"],
            criteria_id=data["criteria_id"],
            started_at=parse_dt(data["started_at"]),
            completed_at=parse_dt(data.get("completed_at")),
            jobs_found=int(data.get("jobs_found", 0)),
            jobs_processed=int(data.get("jobs_processed", 0)),
            jobs_scored=int(data.get("jobs_scored", 0)),
            token_spend=int(data.get("token_spend", 0)),
            errors=list(data.get("errors") or []),
            status=RunStatus(data.get("status", RunStatus.RUNNING.value)),
        )


@dataclass(frozen=True)
class JobScore:
    job_id: str
    score: float
    rationale: str
    gaps: tuple[str, ...]
    cv_version: str
    scored_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        _check_score(self.score)

    def is_fresh(self, cv_version: str, now: datetime | None = None, max_age: timedelta = SCORE_FRESHNESS) -> bool:
        return self.cv_version == cv_version and (now or utcnow()) - self.scored_at < max_age

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "score": self.score,
            "rationale": self.rationale,
            "gaps": list(self.gaps),
            "cv_version": self.cv_version,
            "scored_at": _iso(self.scored_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobScore:
        return cls(
            job_id=data["job_id"],
            score=data["score"],
            rationale=data.get("rationale", ""),
            gaps=tuple(data.get("gaps") or ()),
            cv_version=data["cv_version"],
            scored_at=parse_dt(data["scored_at"]),
        )


@dataclass(frozen=True)
class ScoreResult:
    score: float
    rationale: str
    gaps: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _check_score(self.score)


@dataclass(frozen=True)
class RawJob:
    """Unstructured posting text handed to the extraction stage."""

    content: str
    url: str
    timestamp: datetime
    job_id: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> RawJob:
        parts = [job.title, job.company, job.location]
        header = "\n".join(p for p in parts if p)
        content = f"{header}\n\n{job.description}" if header else job.description
        return cls(content=content, url=job.apply_url, timestamp=job.posted_at, job_id=job.id)
