"""Offline scraper returning sample postings, for dry runs and demos."""
from __future__ import annotations

import uuid
from datetime import timedelta

from job_hunter.log import get_logger
from job_hunter.models import AuthSession, EmploymentType, Job, JobCriteria, RemotePolicy, Seniority, utcnow
from job_hunter.ports import Scraper

log = get_logger(__name__)

_SAMPLES = [
    {
        "title": "Senior Backend Engineer",
        "company": "TechCorp",
        "location": "Berlin, Germany",
        "remote_policy": RemotePolicy.REMOTE,
        "seniority": Seniority.SENIOR,
        "description": "Python, PostgreSQL, Kubernetes. Own the ingestion platform. 6+ years.",
        "minutes_ago": 12,
    },
    {
        "title": "Site Reliability Engineer",
        "company": "CloudScale SaaS",
        "location": "Amsterdam, Netherlands",
        "remote_policy": RemotePolicy.HYBRID,
        "seniority": Seniority.MID,
        "description": "SRE, distributed systems, incident response, Terraform on AWS.",
        "minutes_ago": 35,
    },
    {
        "title": "Staff Software Engineer, Platform",
        "company": "Enterprise Platform Inc",
        "location": "Remote",
        "remote_policy": RemotePolicy.REMOTE,
        "seniority": Seniority.LEAD,
        "description": "Go and Python services, gRPC, event-driven architecture.",
        "minutes_ago": 50,
    },
]


class MockScraper(Scraper):
    """Deterministic ids so repeated runs exercise the seen-set."""

    def __init__(self, logged_in: bool = True) -> None:
        self.logged_in = logged_in

    async def check_auth(self) -> bool:
        return self.logged_in

    async def login(self) -> AuthSession:
        log.info("MockScraper issuing a fake session")
        now = utcnow()
        self.logged_in = True
        return AuthSession(
            id=f"session-mock-{uuid.uuid4().hex[:8]}",
            cookies=["li_at=mock"],
            user_agent="job-hunter-mock",
            expires_at=now + timedelta(hours=24),
            created_at=now,
            updated_at=now,
        )

    async def is_logged_in(self, session: AuthSession) -> bool:
        return self.logged_in

    async def scrape_jobs(self, criteria: JobCriteria, session: AuthSession) -> list[Job]:
        log.info("MockScraper generating sample jobs for '%s'", criteria.id)
        now = utcnow()
        return [
            Job(
                id=f"mock-{criteria.id}-{i}",
                title=s["title"],
                company=s["company"],
                location=s["location"],
                description=s["description"],
                apply_url=f"https://example.com/jobs/{criteria.id}/{i}",
                posted_at=now - timedelta(minutes=s["minutes_ago"]),
                remote_policy=s["remote_policy"],
                seniority=s["seniority"],
                employment_type=EmploymentType.FULL_TIME,
                source="mock",
                criteria_id=criteria.id,
            )
            for i, s in enumerate(_SAMPLES, start=1)
        ]
