"""Typed errors: every failure carries a kind, a message and an optional cause."""
from __future__ import annotations

from enum import Enum


class JobHunterError(Exception):
    """Base class. ``kind`` is a member of the subclass's ``Kind`` enum."""

    stage = "unknown"

    class Kind(str, Enum):
        UNKNOWN = "UNKNOWN"

    def __init__(self, kind: str | Enum, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        if isinstance(kind, Enum):
            kind = kind.value
        self.kind = self.Kind(kind)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value!s}, {self.message!r})"


class ConfigError(JobHunterError):
    stage = "configuration"

    class Kind(str, Enum):
        INVALID_CONFIG = "INVALID_CONFIG"
        MISSING_ENV_VAR = "MISSING_ENV_VAR"
        FILE_NOT_FOUND = "FILE_NOT_FOUND"
        PARSE_ERROR = "PARSE_ERROR"


class AuthenticateError(JobHunterError):
    stage = "authentication"

    class Kind(str, Enum):
        AUTH_FAILED = "AUTH_FAILED"
        SESSION_EXPIRED = "SESSION_EXPIRED"
        STORAGE_ERROR = "STORAGE_ERROR"
        SCRAPING_ERROR = "SCRAPING_ERROR"
        USER_CANCELLED = "USER_CANCELLED"


class ScrapingError(JobHunterError):
    """Raised by scraper adapters."""

    stage = "scraping"

    class Kind(str, Enum):
        AUTH_REQUIRED = "AUTH_REQUIRED"
        RATE_LIMITED = "RATE_LIMITED"
        CAPTCHA_REQUIRED = "CAPTCHA_REQUIRED"
        DOM_DRIFT = "DOM_DRIFT"
        NETWORK_ERROR = "NETWORK_ERROR"
        TIMEOUT = "TIMEOUT"
        UNKNOWN = "UNKNOWN"


class ScrapeJobsError(JobHunterError):
    stage = "scraping"

    class Kind(str, Enum):
        SCRAPING_FAILED = "SCRAPING_FAILED"
        AUTH_REQUIRED = "AUTH_REQUIRED"
        RATE_LIMITED = "RATE_LIMITED"
        STORAGE_ERROR = "STORAGE_ERROR"
        UNKNOWN = "UNKNOWN"


class LLMError(JobHunterError):
    """Raised by LLM adapters."""

    stage = "llm"

    class Kind(str, Enum):
        API_ERROR = "API_ERROR"
        RATE_LIMITED = "RATE_LIMITED"
        INVALID_RESPONSE = "INVALID_RESPONSE"
        SCHEMA_VALIDATION_FAILED = "SCHEMA_VALIDATION_FAILED"
        TOKEN_LIMIT_EXCEEDED = "TOKEN_LIMIT_EXCEEDED"
        UNKNOWN = "UNKNOWN"


class ScoreJobsError(JobHunterError):
    stage = "scoring"

    class Kind(str, Enum):
        LLM_ERROR = "LLM_ERROR"
        STORAGE_ERROR = "STORAGE_ERROR"
        UNKNOWN = "UNKNOWN"


class StorageError(JobHunterError):
    """Raised by storage adapters."""

    stage = "storage"

    class Kind(str, Enum):
        DATABASE_ERROR = "DATABASE_ERROR"
        ENCRYPTION_ERROR = "ENCRYPTION_ERROR"
        FILE_SYSTEM_ERROR = "FILE_SYSTEM_ERROR"
        PERMISSION_ERROR = "PERMISSION_ERROR"
        UNKNOWN = "UNKNOWN"


class NotificationError(JobHunterError):
    """Raised by notifier adapters."""

    stage = "notification"

    class Kind(str, Enum):
        API_ERROR = "API_ERROR"
        RATE_LIMITED = "RATE_LIMITED"
        INVALID_TOKEN = "INVALID_TOKEN"
        CHAT_NOT_FOUND = "CHAT_NOT_FOUND"
        NETWORK_ERROR = "NETWORK_ERROR"
        UNKNOWN = "UNKNOWN"


class SendNotificationsError(JobHunterError):
    stage = "notification"

    class Kind(str, Enum):
        NOTIFICATION_ERROR = "NOTIFICATION_ERROR"
        UNKNOWN = "UNKNOWN"


class LockHeldError(JobHunterError):
    """Another process holds the instance lock."""

    stage = "lock"

    class Kind(str, Enum):
        LOCK_HELD = "LOCK_HELD"
        LOCK_FAILED = "LOCK_FAILED"

    def __init__(
        self,
        kind: str | Enum,
        message: str,
        *,
        pid: int = 0,
        elapsed: float = 0.0,
        command: str = "",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(kind, message, cause)
        self.pid = pid
        self.elapsed = elapsed
        self.command = command
