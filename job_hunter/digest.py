"""Render Telegram Markdown messages for digests, alerts, status and errors."""
from __future__ import annotations

from job_hunter.config import HIGH_SCORE
from job_hunter.models import Job, RemotePolicy, Seniority

MAX_MESSAGE_LEN = 4096
TOP_JOBS = 5
_SNIPPET_LEN = 200
_TRUNCATED = "\n\n…(truncated)"

# Legacy Markdown only treats these as entities
_MD_SPECIAL = ("_", "*", "`", "[")


def escape_md(text: str) -> str:
    for ch in _MD_SPECIAL:
        text = text.replace(ch, f"\\{ch}")
    return text


def truncate(message: str, limit: int = MAX_MESSAGE_LEN) -> str:
    if len(message) <= limit:
        return message
    return message[: limit - len(_TRUNCATED)] + _TRUNCATED


def _fmt_score(score: float) -> str:
    return f"{score:.0f}" if float(score).is_integer() else f"{score:.1f}"


def format_job(job: Job) -> str:
    score = f"⭐ {_fmt_score(job.score)}/100" if job.score is not None else "No score"
    extras = ""
    if job.remote_policy is not RemotePolicy.UNKNOWN:
        extras += f" | {job.remote_policy.value}"
    if job.seniority is not Seniority.UNKNOWN:
        extras += f" | {job.seniority.value}"

    description = job.description.strip()
    if len(description) > _SNIPPET_LEN:
        description = description[:_SNIPPET_LEN] + "..."

    return (
        f"🎯 *{escape_md(job.title)}*\n"
        f"🏢 {escape_md(job.company)} | 📍 {escape_md(job.location)}{extras}\n"
        f"{score}\n\n"
        f"{escape_md(description)}\n\n"
        f"🔗 [Apply]({job.apply_url})\n"
        "---\n"
    )


def format_digest(jobs: list[Job], run_id: str, criteria_label: str = "") -> str:
    """Summary of one run: counts, average score and the top high-score jobs."""
    header = f"📊 *Job Hunt Summary - Run {escape_md(run_id)}*\n"
    if criteria_label:
        header += f"🔎 {escape_md(criteria_label)}\n"

    if not jobs:
        return header + "\nNo new jobs found in the last hour."

    high = [j for j in jobs if (j.score or 0) >= HIGH_SCORE]
    average = sum(j.score or 0 for j in jobs) / len(jobs)
    lines = [
        header,
        f"📈 Found {len(jobs)} jobs ({len(high)} high-score)",
        f"⭐ Average score: {average:.1f}/100",
        "",
    ]
    if high:
        top = sorted(high, key=lambda j: j.score or 0, reverse=True)[:TOP_JOBS]
        lines.append("🔥 *Top Jobs:*\n")
        lines.append("".join(format_job(j) for j in top))
    else:
        lines.append("No high-score jobs found.")
    return truncate("\n".join(lines))


def format_alert(job: Job, score: float) -> str:
    return truncate(f"🚨 *High-Score Job Alert!* {_fmt_score(score)}/100\n\n{format_job(job)}")


def format_status(message: str) -> str:
    return truncate(f"ℹ️ *Status Update*\n\n{escape_md(message)}")


def format_error(error: str, context: str | None = None) -> str:
    message = f"⚠️ *Error Alert*\n\n{escape_md(error)}"
    if context:
        message += f"\n\n*Context:* {escape_md(context)}"
    return truncate(message)
