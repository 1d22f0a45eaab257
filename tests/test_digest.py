"""Tests for Telegram message rendering."""
from conftest import make_job
from job_hunter.digest import (
    MAX_MESSAGE_LEN,
    escape_md,
    format_alert,
    format_digest,
    format_error,
    format_job,
    truncate,
)
from job_hunter.models import RemotePolicy


def scored(job_id, score, **kw):
    return make_job(job_id, **kw).with_score(score, "why", [])


def test_empty_digest():
    text = format_digest([], "run-1", "python in Remote")

    assert "Job Hunt Summary - Run run-1" in text
    assert "python in Remote" in text
    assert "No new jobs found in the last hour." in text


def test_digest_counts_and_average():
    text = format_digest([scored("a", 90), scored("b", 50)], "run-1")

    assert "Found 2 jobs (1 high-score)" in text
    assert "Average score: 70.0/100" in text
    assert "Top Jobs" in text


def test_digest_without_high_scores():
    text = format_digest([scored("a", 40)], "run-1")

    assert "No high-score jobs found." in text
    assert "Top Jobs" not in text


def test_digest_lists_top_five_by_score():
    jobs = [scored(f"j{i}", 70 + i, title=f"Role {i}") for i in range(7)]

    text = format_digest(jobs, "run-1")

    assert "Role 6" in text and "Role 2" in text
    assert "Role 1" not in text and "Role 0" not in text
    assert text.index("Role 6") < text.index("Role 2")


def test_format_job_details():
    job = scored("a", 92.5, remote_policy=RemotePolicy.REMOTE, description="x" * 300)

    text = format_job(job)

    assert "⭐ 92.5/100" in text
    assert "| REMOTE" in text
    assert "x" * 200 + "..." in text
    assert f"[Apply]({job.apply_url})" in text


def test_escape_markdown_entities():
    assert escape_md("C_plus*plus [x]") == "C\\_plus\\*plus \\[x]"


def test_truncate_respects_limit():
    text = truncate("a" * (MAX_MESSAGE_LEN + 100))

    assert len(text) == MAX_MESSAGE_LEN
    assert text.endswith("(truncated)")
    assert truncate("short") == "short"


def test_alert_and_error():
    assert format_alert(scored("a", 95), 95).startswith("🚨 *High-Score Job Alert!* 95/100")
    text = format_error("boom", "Run run-1")
    assert "Error Alert" in text and "*Context:* Run run-1" in text
