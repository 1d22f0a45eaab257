"""Dispatch the run digest and per-job alerts."""
from __future__ import annotations

from job_hunter.errors import NotificationError, SendNotificationsError
from job_hunter.log import get_logger
from job_hunter.models import Job
from job_hunter.ports import Notifier

log = get_logger(__name__)


async def send_notifications(
    notifier: Notifier,
    jobs: list[Job],
    run_id: str,
    criteria_label: str,
    send_alerts: bool,
    alert_threshold: float,
) -> None:
    """Send one digest, then an alert for each job at or above the threshold.

    A failed digest raises; a failed alert is logged and the rest still go out.
    """
    try:
        await notifier.send_job_digest(jobs, run_id, criteria_label)
    except NotificationError as exc:
        raise SendNotificationsError(
            SendNotificationsError.Kind.NOTIFICATION_ERROR, f"Failed to send digest: {exc.message}", exc,
        ) from exc
    log.info("[%s] Digest sent (%d jobs)", run_id, len(jobs))

    if not jobs or not send_alerts:
        return

    sent = 0
    for job in jobs:
        score = job.score or 0
        if score < alert_threshold:
            continue
        try:
            await notifier.send_job_alert(job, score)
            sent += 1
        except NotificationError as exc:
            log.warning("[%s] Alert for %s failed: %s", run_id, job.id, exc.message)
    if sent:
        log.info("[%s] Sent %d high-score alert(s)", run_id, sent)
