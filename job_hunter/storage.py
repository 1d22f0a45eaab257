"""Encrypted key-value persistence on SQLite.

Layout (one ``kv`` table): ``job:<id>``, ``auth:session``, ``run:<id>``,
``score:<job id>:<epoch ms>``, ``seen:<id>`` and the plaintext ``meta:salt``.
Every value except the seen markers and the salt is encrypted JSON.
"""
from __future__ import annotations

import base64
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from job_hunter.crypto import DecryptionError, decrypt_value, derive_key, encrypt_value, new_salt
from job_hunter.errors import StorageError
from job_hunter.log import get_logger
from job_hunter.models import AuthSession, Job, JobRun, JobScore
from job_hunter.ports import Storage

log = get_logger(__name__)

DB_NAME = "jobs.db"
SESSION_KEY = "auth:session"
_SALT_KEY = "meta:salt"


@contextmanager
def _guard(action: str) -> Iterator[None]:
    """Translate low-level failures into StorageError kinds."""
    try:
        yield
    except StorageError:
        raise
    except (DecryptionError, UnicodeDecodeError) as exc:
        raise StorageError(StorageError.Kind.ENCRYPTION_ERROR, f"Failed to {action}: {exc}", exc) from exc
    except PermissionError as exc:
        raise StorageError(StorageError.Kind.PERMISSION_ERROR, f"Failed to {action}: {exc}", exc) from exc
    except sqlite3.Error as exc:
        raise StorageError(StorageError.Kind.DATABASE_ERROR, f"Failed to {action}: {exc}", exc) from exc
    except OSError as exc:
        raise StorageError(StorageError.Kind.FILE_SYSTEM_ERROR, f"Failed to {action}: {exc}", exc) from exc
    except (ValueError, KeyError, TypeError) as exc:
        raise StorageError(StorageError.Kind.DATABASE_ERROR, f"Failed to {action}: corrupt record ({exc})", exc) from exc


class SqliteStorage(Storage):
    def __init__(self, data_dir: str | Path, encryption_key: str) -> None:
        self.path = Path(data_dir) / DB_NAME
        with _guard("open database"):
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.path)
            with self._conn:
                self._conn.execute("CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
            self._key = derive_key(encryption_key, self._salt())
        log.debug("Opened storage at %s", self.path)

    def close(self) -> None:
        self._conn.close()

    # -- low-level helpers -------------------------------------------------

    def _salt(self) -> bytes:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (_SALT_KEY,)).fetchone()
        if row:
            return base64.b64decode(row[0])
        salt = new_salt()
        with self._conn:
            self._conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?)",
                (_SALT_KEY, base64.b64encode(salt).decode("ascii")),
            )
        return salt

    def _put(self, key: str, data: dict[str, Any]) -> None:
        token = encrypt_value(json.dumps(data), self._key)
        with self._conn:
            self._conn.execute("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, token))

    def _get(self, key: str) -> dict[str, Any] | None:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return json.loads(decrypt_value(row[0], self._key))

    def _scan(self, prefix: str) -> Iterator[tuple[str, str]]:
        cur = self._conn.execute(
            "SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        )
        yield from cur.fetchall()

    def _scan_decoded(self, prefix: str) -> Iterator[dict[str, Any]]:
        for _, token in self._scan(prefix):
            yield json.loads(decrypt_value(token, self._key))

    def _delete(self, key: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    # -- jobs --------------------------------------------------------------

    async def save_job(self, job: Job) -> Job:
        with _guard("save job"):
            self._put(f"job:{job.id}", job.to_dict())
        return job

    async def get_job(self, job_id: str) -> Job | None:
        with _guard("get job"):
            data = self._get(f"job:{job_id}")
            return Job.from_dict(data) if data is not None else None

    async def get_jobs_by_criteria(self, criteria_id: str, since: datetime | None = None) -> list[Job]:
        with _guard("get jobs by criteria"):
            jobs = [Job.from_dict(d) for d in self._scan_decoded("job:")]
        jobs = [
            j for j in jobs
            if j.criteria_id == criteria_id and (since is None or j.posted_at >= since)
        ]
        return sorted(jobs, key=lambda j: j.posted_at, reverse=True)

    # -- session -----------------------------------------------------------

    async def save_session(self, session: AuthSession) -> None:
        with _guard("save session"):
            self._put(SESSION_KEY, session.to_dict())

    async def get_session(self) -> AuthSession | None:
        with _guard("get session"):
            data = self._get(SESSION_KEY)
            return AuthSession.from_dict(data) if data is not None else None

    async def delete_session(self) -> None:
        with _guard("delete session"):
            self._delete(SESSION_KEY)

    # -- runs --------------------------------------------------------------

    async def save_job_run(self, run: JobRun) -> None:
        with _guard("save job run"):
            self._put(f"run:{run.id}", run.to_dict())

    async def get_latest_job_run(self, criteria_id: str) -> JobRun | None:
        with _guard("get latest job run"):
            runs = [JobRun.from_dict(d) for d in self._scan_decoded("run:")]
        runs = [r for r in runs if r.criteria_id == criteria_id]
        return max(runs, key=lambda r: r.started_at) if runs else None

    # -- scores ------------------------------------------------------------

    async def save_job_score(self, score: JobScore) -> None:
        stamp = int(score.scored_at.timestamp() * 1000)
        with _guard("save job score"):
            self._put(f"score:{score.job_id}:{stamp:015d}", score.to_dict())

    async def get_job_scores(self, job_id: str) -> list[JobScore]:
        with _guard("get job scores"):
            scores = [JobScore.from_dict(d) for d in self._scan_decoded(f"score:{job_id}:")]
        scores = [s for s in scores if s.job_id == job_id]
        return sorted(scores, key=lambda s: s.scored_at, reverse=True)

    # -- seen-set ----------------------------------------------------------

    async def mark_job_seen(self, job_id: str) -> None:
        with _guard("mark job as seen"), self._conn:
            self._conn.execute("INSERT OR REPLACE INTO kv (key, value) VALUES (?, '1')", (f"seen:{job_id}",))

    async def is_job_seen(self, job_id: str) -> bool:
        with _guard("check seen job"):
            row = self._conn.execute("SELECT 1 FROM kv WHERE key = ?", (f"seen:{job_id}",)).fetchone()
        return row is not None

    async def get_seen_job_ids(self) -> set[str]:
        with _guard("get seen job ids"):
            return {key[len("seen:"):] for key, _ in self._scan("seen:")}

    async def clear_seen_jobs(self) -> None:
        with _guard("clear seen jobs"), self._conn:
            self._conn.execute("DELETE FROM kv WHERE substr(key, 1, 5) = 'seen:'")
