"""Tests for the extraction stage."""
from datetime import datetime, timezone

import pytest

from job_hunter.extract import process_jobs
from job_hunter.models import RawJob

TS = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def raw(n: int) -> RawJob:
    return RawJob(content=f"Posting {n}", url=f"https://example.com/{n}", timestamp=TS, job_id=f"li-{n}")


@pytest.mark.asyncio
async def test_item_failing_twice_is_dropped_others_keep_order(llm):
    llm.extract_failures["Posting 2"] = 2

    jobs = await process_jobs(llm, [raw(1), raw(2), raw(3)], retry_failed=True)

    assert [j.id for j in jobs] == ["li-1", "li-3"]
    assert llm.extract_calls.count("Posting 2") == 2


@pytest.mark.asyncio
async def test_single_failure_is_retried_once(llm):
    llm.extract_failures["Posting 2"] = 1

    jobs = await process_jobs(llm, [raw(1), raw(2), raw(3)], retry_failed=True)

    assert [j.id for j in jobs] == ["li-1", "li-2", "li-3"]


@pytest.mark.asyncio
async def test_no_retry_when_disabled(llm):
    llm.extract_failures["Posting 1"] = 1

    jobs = await process_jobs(llm, [raw(1)], retry_failed=False)

    assert jobs == []
    assert llm.extract_calls == ["Posting 1"]


@pytest.mark.asyncio
async def test_missing_url_and_date_fall_back_to_raw(llm):
    (job,) = await process_jobs(llm, [raw(7)])

    assert job.apply_url == "https://example.com/7"
    assert job.posted_at == TS
    assert job.id == "li-7"


@pytest.mark.asyncio
async def test_without_job_id_the_extracted_id_is_kept(llm):
    item = RawJob(content="Posting 8", url="https://example.com/8", timestamp=TS)

    (job,) = await process_jobs(llm, [item])

    assert job.id == "llm-generated"


@pytest.mark.asyncio
async def test_empty_input(llm):
    assert await process_jobs(llm, []) == []
