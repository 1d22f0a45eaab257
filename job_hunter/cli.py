"""Command-line interface: auth, run, score, send, status, purge."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

from job_hunter import agent
from job_hunter.config import Config, load_config
from job_hunter.errors import (
    AuthenticateError,
    ConfigError,
    JobHunterError,
    LLMError,
    LockHeldError,
    NotificationError,
    ScrapeJobsError,
    ScrapingError,
    StorageError,
)
from job_hunter.lock import LOCK_NAME, InstanceLock
from job_hunter.log import get_logger, set_level
from job_hunter.models import Job, JobCriteria

log = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 10
EXIT_LOCKED = 20

_HINTS: dict[tuple[type, str], str] = {
    (ConfigError, "MISSING_ENV_VAR"): "Set it in .env or the environment (see .env.example)",
    (ConfigError, "FILE_NOT_FOUND"): "Check scoring.cv_path / CV_PATH points at your CV text file",
    (ConfigError, "PARSE_ERROR"): "Fix the YAML syntax in config/config.yaml",
    (ConfigError, "INVALID_CONFIG"): "Compare config/config.yaml with config/config.example.yaml",
    (AuthenticateError, "SESSION_EXPIRED"): "Run `job-hunter auth` to log in again, then retry",
    (AuthenticateError, "AUTH_FAILED"): "Complete the LinkedIn login in the browser window, then retry `job-hunter auth`",
    (AuthenticateError, "USER_CANCELLED"): "Login cancelled; run `job-hunter auth` when ready",
    (AuthenticateError, "STORAGE_ERROR"): "Check DATA_DIR permissions and ENCRYPTION_KEY",
    (ScrapeJobsError, "AUTH_REQUIRED"): "LinkedIn rejected the session; run `job-hunter auth --force`",
    (ScrapeJobsError, "RATE_LIMITED"): "LinkedIn is throttling requests; wait before the next run",
    (ScrapingError, "CAPTCHA_REQUIRED"): "Solve the LinkedIn checkpoint in a browser, then re-authenticate",
    (ScrapingError, "DOM_DRIFT"): "LinkedIn changed its page layout; the selectors need updating",
    (LLMError, "RATE_LIMITED"): "The LLM provider is rate limiting; retry later or lower the volume",
    (LLMError, "API_ERROR"): "Check OPENAI_API_KEY, LLM_BASE_URL and LLM_MODEL",
    (StorageError, "ENCRYPTION_ERROR"): "ENCRYPTION_KEY does not match the one the data was written with",
    (NotificationError, "INVALID_TOKEN"): "Check TELEGRAM_BOT_TOKEN",
    (NotificationError, "CHAT_NOT_FOUND"): "Check TELEGRAM_CHAT_ID and send /start to the bot once",
    (LockHeldError, "LOCK_HELD"): "Wait for the other run to finish",
}

_CONFIG_AUTH_KINDS = {
    AuthenticateError.Kind.SESSION_EXPIRED,
    AuthenticateError.Kind.STORAGE_ERROR,
}


def _innermost(exc: BaseException) -> list[BaseException]:
    chain = [exc]
    while isinstance(chain[-1].__cause__, BaseException) and len(chain) < 10:
        chain.append(chain[-1].__cause__)
    return chain


def describe_error(exc: BaseException) -> tuple[str, int]:
    """Map an error to (user-facing message, exit code)."""
    if isinstance(exc, LockHeldError):
        code = EXIT_LOCKED if exc.kind is LockHeldError.Kind.LOCK_HELD else EXIT_FAILURE
    elif isinstance(exc, ConfigError):
        code = EXIT_CONFIG
    elif isinstance(exc, AuthenticateError) and exc.kind in _CONFIG_AUTH_KINDS:
        code = EXIT_CONFIG
    else:
        code = EXIT_FAILURE

    if not isinstance(exc, JobHunterError):
        return f"Unexpected error: {exc}", code

    message = f"[{exc.stage}/{exc.kind.value}] {exc.message}"
    # The most specific hint wins, searching from the root cause outwards
    for err in reversed(_innermost(exc)):
        if not isinstance(err, JobHunterError):
            continue
        for (cls, kind), hint in _HINTS.items():
            if isinstance(err, cls) and err.kind.value == kind:
                return f"{message}\n  → {hint}", code
    return message, code


def _pick_criteria(config: Config, criteria_id: str | None) -> JobCriteria:
    if criteria_id:
        return config.get_criteria(criteria_id)
    for c in config.criteria:
        if c.enabled:
            return c
    raise ConfigError(ConfigError.Kind.INVALID_CONFIG, "No enabled criteria configured")


def _print_jobs(jobs: list[Job]) -> None:
    for j in sorted(jobs, key=lambda j: j.score or 0, reverse=True):
        score = f"{j.score:5.1f}" if j.score is not None else "  -  "
        print(f"  {score}  {j.title} @ {j.company} ({j.location})")
        print(f"         {j.apply_url}")


async def _cmd_auth(ctx: agent.AgentContext, args: argparse.Namespace) -> None:
    session = await agent.authenticate(ctx, force=args.force)
    print(f"Authenticated: session {session.id}, expires {session.expires_at:%Y-%m-%d %H:%M} UTC")


async def _cmd_run(ctx: agent.AgentContext, args: argparse.Namespace) -> None:
    criteria = _pick_criteria(ctx.config, args.criteria)
    run = await agent.run_discovery(ctx, criteria, dry_run=args.dry_run, allow_login=not args.no_login)
    print(f"Run {run.id} {run.status.value}")
    print(f"  Jobs found:     {run.jobs_found}")
    print(f"  Jobs processed: {run.jobs_processed}")
    print(f"  Jobs scored:    {run.jobs_scored}")
    print(f"  Tokens used:    {run.token_spend}")


async def _cmd_score(ctx: agent.AgentContext, args: argparse.Namespace) -> None:
    criteria = _pick_criteria(ctx.config, args.criteria)
    jobs = await agent.score_existing_jobs(ctx, criteria)
    print(f"{len(jobs)} job(s) at or above {ctx.config.scoring.min_score} for '{criteria.id}'")
    _print_jobs(jobs)


async def _cmd_send(ctx: agent.AgentContext, args: argparse.Namespace) -> None:
    criteria = _pick_criteria(ctx.config, args.criteria)
    jobs = await agent.send_last_results(ctx, criteria)
    print(f"Sent digest with {len(jobs)} high-score job(s) for '{criteria.id}'")


async def _cmd_status(ctx: agent.AgentContext, args: argparse.Namespace) -> None:
    status = await agent.get_status(ctx)
    print(f"Session valid:   {'yes' if status.session_valid else 'no'}")
    if status.last_run is None:
        print("Last run:        none")
    else:
        r = status.last_run
        print(f"Last run:        {r.id} {r.status.value} (started {r.started_at:%Y-%m-%d %H:%M} UTC)")
        print(f"  found/processed/scored: {r.jobs_found}/{r.jobs_processed}/{r.jobs_scored}")
    print(f"Stored jobs:     {status.total_jobs}")
    print(f"High-score jobs: {status.high_score_jobs}")
    print(f"Token spend:     {status.token_spend}")
    for err in status.errors:
        print(f"  error: {err}")


async def _cmd_purge(ctx: agent.AgentContext, args: argparse.Namespace) -> None:
    await agent.purge(ctx, args.type)
    print("Purged seen-job cache" + (" and stored session" if args.type == "all" else ""))


_COMMANDS: dict[str, Any] = {
    "auth": _cmd_auth,
    "run": _cmd_run,
    "score": _cmd_score,
    "send": _cmd_send,
    "status": _cmd_status,
    "purge": _cmd_purge,
}

# Read-only commands may run alongside a discovery run
_UNLOCKED = {"status"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="job-hunter", description="LinkedIn job discovery agent")
    parser.add_argument("--config", help="Path to config.yaml (default: config/config.yaml or $CONFIG_PATH)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on the console")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("auth", help="Log in to LinkedIn and store the session")
    p.add_argument("--force", action="store_true", help="Ignore the stored session")

    p = sub.add_parser("run", help="Scrape, extract, score and notify")
    p.add_argument("--criteria", help="Criteria id (default: first enabled)")
    p.add_argument("--dry-run", action="store_true", help="Scrape and store only")
    p.add_argument("--no-login", action="store_true", help="Fail instead of opening a login window (cron)")

    p = sub.add_parser("score", help="Re-score stored jobs")
    p.add_argument("--criteria", help="Criteria id (default: first enabled)")

    p = sub.add_parser("send", help="Send a digest of stored high-score jobs")
    p.add_argument("--criteria", help="Criteria id (default: first enabled)")

    sub.add_parser("status", help="Show session, last run and job counts")

    p = sub.add_parser("purge", help="Clear cached state")
    p.add_argument("--type", choices=("cache", "all"), default="cache")
    return parser


async def _dispatch(config: Config, args: argparse.Namespace) -> None:
    ctx = agent.build_context(config)
    try:
        await _COMMANDS[args.command](ctx, args)
    finally:
        close = getattr(ctx.storage, "close", None)
        if close is not None:
            close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        set_level(logging.DEBUG)

    lock: InstanceLock | None = None
    try:
        config = load_config(args.config)
        if args.command not in _UNLOCKED:
            lock = InstanceLock(config.storage.data_dir / LOCK_NAME).acquire()
        asyncio.run(_dispatch(config, args))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_FAILURE
    except (JobHunterError, ValueError, OSError) as exc:
        message, code = describe_error(exc)
        log.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {message}", file=sys.stderr)
        return code
    finally:
        if lock is not None:
            lock.release()
    return EXIT_OK


def main_entry() -> None:
    sys.exit(main())
