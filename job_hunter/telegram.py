"""Telegram Bot API notifier (sendMessage over requests)."""
from __future__ import annotations

import asyncio

import requests

from job_hunter import digest
from job_hunter.errors import NotificationError
from job_hunter.log import get_logger
from job_hunter.models import Job
from job_hunter.ports import Notifier
from job_hunter.retry import retry

log = get_logger(__name__)

API_URL = "https://api.telegram.org/bot{token}/sendMessage"


def _classify(status: int, description: str) -> NotificationError.Kind:
    low = description.lower()
    if status == 401:
        return NotificationError.Kind.INVALID_TOKEN
    if status == 429:
        return NotificationError.Kind.RATE_LIMITED
    if status in (400, 403) and "chat not found" in low:
        return NotificationError.Kind.CHAT_NOT_FOUND
    return NotificationError.Kind.API_ERROR


class TelegramNotifier(Notifier):
    def __init__(self, bot_token: str, chat_id: str, timeout: float = 15.0) -> None:
        self.url = API_URL.format(token=bot_token)
        self.chat_id = chat_id
        self.timeout = timeout

    @retry(max_attempts=3, base_delay=1.0, retryable=(requests.ConnectionError, requests.Timeout))
    def _post(self, text: str) -> requests.Response:
        return requests.post(
            self.url,
            json={
                "chat_id": self.chat_id,
                "text": text,
                "parse_mode": "Markdown",
                "disable_web_page_preview": True,
            },
            timeout=self.timeout,
        )

    def _send(self, text: str, what: str) -> None:
        try:
            r = self._post(digest.truncate(text))
        except requests.RequestException as exc:
            raise NotificationError(
                NotificationError.Kind.NETWORK_ERROR, f"Failed to send {what}: {exc}", exc,
            ) from exc
        if r.ok:
            log.debug("Telegram %s delivered", what)
            return
        try:
            description = r.json().get("description", r.text)
        except ValueError:
            description = r.text
        raise NotificationError(
            _classify(r.status_code, description),
            f"Failed to send {what}: HTTP {r.status_code} {description}",
        )

    async def send_message(self, text: str, what: str = "message") -> None:
        await asyncio.to_thread(self._send, text, what)

    async def send_job_digest(self, jobs: list[Job], run_id: str, criteria_label: str = "") -> None:
        await self.send_message(digest.format_digest(jobs, run_id, criteria_label), "job digest")

    async def send_job_alert(self, job: Job, score: float) -> None:
        await self.send_message(digest.format_alert(job, score), "job alert")

    async def send_status_update(self, message: str) -> None:
        await self.send_message(digest.format_status(message), "status update")

    async def send_error_alert(self, error: str, context: str | None = None) -> None:
        await self.send_message(digest.format_error(error, context), "error alert")


class LogNotifier(Notifier):
    """Writes the rendered messages to the log when Telegram is disabled."""

    async def send_job_digest(self, jobs: list[Job], run_id: str, criteria_label: str = "") -> None:
        log.info("Digest:\n%s", digest.format_digest(jobs, run_id, criteria_label))

    async def send_job_alert(self, job: Job, score: float) -> None:
        log.info("Alert:\n%s", digest.format_alert(job, score))

    async def send_status_update(self, message: str) -> None:
        log.info("Status: %s", message)

    async def send_error_alert(self, error: str, context: str | None = None) -> None:
        log.error("Error alert: %s%s", error, f" ({context})" if context else "")
