"""OpenAI-compatible LLM service for extraction, scoring and prefiltering.

Any chat-completions endpoint works: set ``llm.base_url`` (or LLM_BASE_URL)
to e.g. ``https://api.groq.com/openai/v1`` to use Groq instead of OpenAI.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any

import openai
from openai import AsyncOpenAI

from job_hunter.config import LLMConfig
from job_hunter.errors import LLMError
from job_hunter.log import get_logger
from job_hunter.models import EmploymentType, Job, RemotePolicy, ScoreResult, Seniority, _enum, parse_dt
from job_hunter.ports import LLMService
from job_hunter.retry import retry

log = get_logger(__name__)

_EXTRACT_PROMPT = """You are a job data extraction specialist. Extract structured job information from a raw LinkedIn job posting.

Return a JSON object with exactly these keys:
{
  "title": "string",
  "company": "string",
  "location": "string",
  "remote_policy": "REMOTE" | "HYBRID" | "ONSITE" | "UNKNOWN",
  "seniority": "ENTRY" | "MID" | "SENIOR" | "LEAD" | "PRINCIPAL" | "UNKNOWN",
  "employment_type": "FULL_TIME" | "PART_TIME" | "CONTRACT" | "INTERNSHIP" | "UNKNOWN",
  "posted_at": "ISO 8601 datetime or null",
  "salary_hint": "string or null",
  "languages": ["string"],
  "tech_stack": ["string"],
  "description": "string",
  "apply_url": "string or null"
}

Rules:
- Extract only information explicitly present in the content
- Use "UNKNOWN" for enum fields that cannot be determined and null for missing dates
- Take tech_stack from the requirements and description
- List the programming languages mentioned in languages
- Keep description concise but informative"""

_SCORE_PROMPT = """You are a job matching specialist. Score how well a job matches a candidate's CV on a scale of 0-100.

Weigh these factors:
- Required skills vs candidate skills (40%)
- Experience level match (20%)
- Location/remote preferences (15%)
- Company culture fit (10%)
- Salary expectations (10%)
- Career growth potential (5%)

Return a JSON object with:
{
  "score": number (0-100),
  "rationale": "string explaining the score",
  "gaps": ["missing skills or requirements"]
}"""

_PREFILTER_PROMPT = """You are a job prefilter. Quickly decide whether a job is worth detailed scoring.

Answer with the single word "true" if the job is potentially relevant, "false" if it is clearly not a match.

Consider basic skill overlap, location compatibility, experience level and industry relevance."""

_YES = {"true", "yes"}
_NO = {"false", "no"}


def _job_summary(job: Job) -> str:
    return (
        f"Job: {job.title} at {job.company}\n"
        f"Location: {job.location}\n"
        f"Remote: {job.remote_policy.value}\n"
        f"Seniority: {job.seniority.value}\n"
        f"Description: {job.description}\n"
        f"Tech Stack: {', '.join(job.tech_stack)}\n"
        f"Languages: {', '.join(job.languages)}"
    )


def _to_llm_error(exc: openai.OpenAIError, action: str) -> LLMError:
    if isinstance(exc, openai.RateLimitError):
        kind = LLMError.Kind.RATE_LIMITED
    elif isinstance(exc, openai.BadRequestError) and "context" in str(exc).lower():
        kind = LLMError.Kind.TOKEN_LIMIT_EXCEEDED
    elif isinstance(exc, openai.APIError):
        kind = LLMError.Kind.API_ERROR
    else:
        kind = LLMError.Kind.UNKNOWN
    return LLMError(kind, f"Failed to {action}: {exc}", exc)


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"'{key}' must be a list of strings")
    return value


def _required_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{key}' must be a non-empty string")
    return value.strip()


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return str(value) if value not in (None, "") else None


def job_from_extraction(data: dict[str, Any], raw_content: str) -> Job:
    """Validate an extraction payload. Raises ValueError on schema violations."""
    try:
        posted_at = parse_dt(data.get("posted_at"))
    except ValueError:
        posted_at = None
    return Job(
        id="llm-" + hashlib.sha256(raw_content.encode("utf-8")).hexdigest()[:12],
        title=_required_str(data, "title"),
        company=_required_str(data, "company"),
        location=str(data.get("location") or ""),
        description=str(data.get("description") or ""),
        apply_url=str(data.get("apply_url") or ""),
        # Filled from the scrape timestamp by the extraction stage when missing
        posted_at=posted_at,
        remote_policy=_enum(RemotePolicy, data.get("remote_policy"), RemotePolicy.UNKNOWN),
        seniority=_enum(Seniority, data.get("seniority"), Seniority.UNKNOWN),
        employment_type=_enum(EmploymentType, data.get("employment_type"), EmploymentType.UNKNOWN),
        salary_hint=_optional_str(data, "salary_hint"),
        languages=_str_list(data, "languages"),
        tech_stack=_str_list(data, "tech_stack"),
    )


def score_from_response(data: dict[str, Any]) -> ScoreResult:
    score = data.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ValueError("'score' must be a number")
    rationale = data.get("rationale")
    if not isinstance(rationale, str):
        raise ValueError("'rationale' must be a string")
    return ScoreResult(score=float(score), rationale=rationale, gaps=tuple(_str_list(data, "gaps")))


def parse_verdict(text: str) -> bool:
    word = text.strip().strip(".!\"'").lower()
    if word in _YES:
        return True
    if word in _NO:
        return False
    raise LLMError(LLMError.Kind.INVALID_RESPONSE, f"Unexpected prefilter answer: {text[:40]!r}")


class OpenAIService(LLMService):
    def __init__(self, config: LLMConfig, client: AsyncOpenAI | None = None) -> None:
        self.config = config
        self._client = client
        self.tokens_used = 0

    @property
    def client(self) -> AsyncOpenAI:
        # Created on first use so commands that never call the LLM need no key
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.config.api_key, base_url=self.config.base_url or None)
        return self._client

    @retry(max_attempts=3, base_delay=2.0, retryable=(openai.APIConnectionError, openai.APITimeoutError))
    async def _create(self, **kwargs: Any) -> Any:
        return await self.client.chat.completions.create(model=self.config.model, **kwargs)

    async def _complete(self, action: str, system: str, user: str, **kwargs: Any) -> str:
        try:
            resp = await self._create(
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=self.config.temperature,
                **kwargs,
            )
        except openai.OpenAIError as exc:
            raise _to_llm_error(exc, action) from exc

        if resp.usage is not None:
            self.tokens_used += resp.usage.total_tokens or 0
        content = resp.choices[0].message.content if resp.choices else None
        if not content:
            raise LLMError(LLMError.Kind.INVALID_RESPONSE, f"Failed to {action}: empty response")
        return content

    async def _complete_json(self, action: str, system: str, user: str) -> dict[str, Any]:
        content = await self._complete(
            action, system, user,
            max_tokens=self.config.max_tokens,
            response_format={"type": "json_object"},
        )
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise LLMError(LLMError.Kind.INVALID_RESPONSE, f"Failed to {action}: invalid JSON", exc) from exc
        if not isinstance(data, dict):
            raise LLMError(LLMError.Kind.INVALID_RESPONSE, f"Failed to {action}: expected a JSON object")
        return data

    async def extract_job_data(self, raw_content: str) -> Job:
        data = await self._complete_json(
            "extract job data", _EXTRACT_PROMPT, f"Extract job data from this content:\n\n{raw_content}",
        )
        try:
            return job_from_extraction(data, raw_content)
        except ValueError as exc:
            raise LLMError(
                LLMError.Kind.SCHEMA_VALIDATION_FAILED, f"Failed to extract job data: {exc}", exc,
            ) from exc

    async def score_job(self, job: Job, profile_text: str) -> ScoreResult:
        data = await self._complete_json("score job", _SCORE_PROMPT, f"{_job_summary(job)}\n\nCV: {profile_text}")
        try:
            result = score_from_response(data)
        except ValueError as exc:
            raise LLMError(LLMError.Kind.SCHEMA_VALIDATION_FAILED, f"Failed to score job: {exc}", exc) from exc
        log.debug("Scored %s: %.0f", job.id, result.score)
        return result

    async def prefilter_job(self, job: Job, profile_text: str) -> bool:
        user = (
            f"Job: {job.title} at {job.company}\n"
            f"Location: {job.location}\n"
            f"Description: {job.description}\n\n"
            f"CV: {profile_text}\n\n"
            "Should this job be scored? (true/false)"
        )
        return parse_verdict(await self._complete("prefilter job", _PREFILTER_PROMPT, user, max_tokens=10))
