"""Load the YAML config file and env configuration."""
from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from job_hunter.errors import ConfigError
from job_hunter.log import get_logger
from job_hunter.models import JobCriteria

log = get_logger(__name__)

load_dotenv()

PROJECT_DIR: Path = Path.cwd()
CONFIG_DIR: Path = PROJECT_DIR / "config"
CONFIG_PATH: Path = CONFIG_DIR / "config.yaml"
DATA_DIR: Path = PROJECT_DIR / "data"

DEFAULT_ENCRYPTION_KEY = "default-key-change-in-production"
ALERT_THRESHOLD = 85
HIGH_SCORE = 70

_DEFAULT_CRITERIA: dict[str, Any] = {
    "id": "default",
    "keywords": ["python", "backend"],
    "location": "Remote",
    "remote_policy": "REMOTE",
    "seniority": "SENIOR",
    "employment_type": "FULL_TIME",
    "enabled": True,
}


@dataclass(frozen=True)
class LinkedInConfig:
    base_url: str = "https://www.linkedin.com"
    jobs_url: str = "https://www.linkedin.com/jobs/search/"
    login_url: str = "https://www.linkedin.com/login"
    request_delay: float = 1.0
    timeout: float = 30.0
    login_timeout: float = 300.0
    headless: bool = False
    fetch_details: bool = True
    max_jobs: int = 25
    mock: bool = False


@dataclass(frozen=True)
class LLMConfig:
    api_key: str = ""
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    max_tokens: int = 4000
    temperature: float = 0.1


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str = ""
    chat_id: str = ""
    enabled: bool = True


@dataclass(frozen=True)
class StorageConfig:
    data_dir: Path = DATA_DIR
    encryption_key: str = DEFAULT_ENCRYPTION_KEY


@dataclass(frozen=True)
class ScoringConfig:
    min_score: int = 60
    cv_path: Path = PROJECT_DIR / "cv.txt"
    cv_version: str | None = None


@dataclass(frozen=True)
class Config:
    linkedin: LinkedInConfig = field(default_factory=LinkedInConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    criteria: tuple[JobCriteria, ...] = ()

    def get_criteria(self, criteria_id: str) -> JobCriteria:
        for c in self.criteria:
            if c.id == criteria_id:
                if not c.enabled:
                    raise ConfigError(ConfigError.Kind.INVALID_CONFIG, f"Criteria '{criteria_id}' is disabled")
                return c
        known = ", ".join(c.id for c in self.criteria) or "none"
        raise ConfigError(
            ConfigError.Kind.INVALID_CONFIG,
            f"Unknown criteria '{criteria_id}' (configured: {known})",
        )


@dataclass(frozen=True)
class CandidateProfile:
    text: str
    version: str


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(ConfigError.Kind.INVALID_CONFIG, f"'{name}' must be a mapping")
    return value


def _build(cls: type, values: dict[str, Any], section: str) -> Any:
    try:
        return cls(**values)
    except TypeError as exc:
        raise ConfigError(ConfigError.Kind.INVALID_CONFIG, f"Invalid '{section}' section: {exc}", exc) from exc


def _read_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        log.info("No config file at %s, using defaults", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(ConfigError.Kind.PARSE_ERROR, f"Failed to parse {path}: {exc}", exc) from exc
    except OSError as exc:
        raise ConfigError(ConfigError.Kind.FILE_NOT_FOUND, f"Cannot read {path}: {exc}", exc) from exc
    if not isinstance(data, dict):
        raise ConfigError(ConfigError.Kind.PARSE_ERROR, f"{path} must contain a mapping at top level")
    return data


def load_config(path: str | Path | None = None) -> Config:
    """Merge file values, environment overrides and defaults, then validate."""
    config_path = Path(path or get_env("CONFIG_PATH") or CONFIG_PATH)
    raw = _read_file(config_path)

    linkedin = _build(LinkedInConfig, _section(raw, "linkedin"), "linkedin")

    llm_values = _section(raw, "llm")
    llm_values["api_key"] = get_env("OPENAI_API_KEY") or (llm_values.get("api_key") or "")
    if get_env("LLM_MODEL"):
        llm_values["model"] = get_env("LLM_MODEL")
    if get_env("LLM_BASE_URL"):
        llm_values["base_url"] = get_env("LLM_BASE_URL")
    llm = _build(LLMConfig, llm_values, "llm")

    tg_values = _section(raw, "telegram")
    tg_values["bot_token"] = get_env("TELEGRAM_BOT_TOKEN") or str(tg_values.get("bot_token") or "")
    tg_values["chat_id"] = get_env("TELEGRAM_CHAT_ID") or str(tg_values.get("chat_id") or "")
    telegram = _build(TelegramConfig, tg_values, "telegram")

    st_values = _section(raw, "storage")
    st_values["data_dir"] = Path(get_env("DATA_DIR") or st_values.get("data_dir") or DATA_DIR)
    st_values["encryption_key"] = (
        get_env("ENCRYPTION_KEY") or st_values.get("encryption_key") or DEFAULT_ENCRYPTION_KEY
    )
    storage = _build(StorageConfig, st_values, "storage")

    sc_values = _section(raw, "scoring")
    sc_values["cv_path"] = Path(get_env("CV_PATH") or sc_values.get("cv_path") or PROJECT_DIR / "cv.txt")
    if sc_values.get("cv_version") is not None:
        sc_values["cv_version"] = str(sc_values["cv_version"])
    scoring = _build(ScoringConfig, sc_values, "scoring")

    raw_criteria = raw.get("criteria") or [_DEFAULT_CRITERIA]
    if not isinstance(raw_criteria, list):
        raise ConfigError(ConfigError.Kind.INVALID_CONFIG, "'criteria' must be a list")
    try:
        criteria = tuple(JobCriteria.from_dict(c) for c in raw_criteria)
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise ConfigError(ConfigError.Kind.INVALID_CONFIG, f"Invalid criteria: {exc}", exc) from exc

    config = Config(
        linkedin=linkedin, llm=llm, telegram=telegram, storage=storage, scoring=scoring, criteria=criteria,
    )
    _validate(config)
    return config


def _validate(config: Config) -> None:
    if config.telegram.enabled:
        for key, value in (
            ("TELEGRAM_BOT_TOKEN", config.telegram.bot_token),
            ("TELEGRAM_CHAT_ID", config.telegram.chat_id),
        ):
            if not value:
                raise ConfigError(
                    ConfigError.Kind.MISSING_ENV_VAR,
                    f"Missing required environment variable: {key}",
                )
    if not 0 <= config.scoring.min_score <= 100:
        raise ConfigError(ConfigError.Kind.INVALID_CONFIG, "scoring.min_score must be within [0, 100]")
    if not config.criteria:
        raise ConfigError(ConfigError.Kind.INVALID_CONFIG, "At least one criteria is required")
    ids = [c.id for c in config.criteria]
    if len(ids) != len(set(ids)):
        raise ConfigError(ConfigError.Kind.INVALID_CONFIG, "Criteria ids must be unique")
    for c in config.criteria:
        if not c.keywords:
            raise ConfigError(ConfigError.Kind.INVALID_CONFIG, f"Criteria '{c.id}' has no keywords")
    if config.storage.encryption_key == DEFAULT_ENCRYPTION_KEY:
        log.warning("ENCRYPTION_KEY not set; stored data uses the built-in default key")


def load_profile(config: Config) -> CandidateProfile:
    """Read the CV text; the version defaults to a hash of its content."""
    path = config.scoring.cv_path
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(ConfigError.Kind.FILE_NOT_FOUND, f"CV file not found: {path}", exc) from exc
    except OSError as exc:
        raise ConfigError(ConfigError.Kind.FILE_NOT_FOUND, f"Cannot read CV file {path}: {exc}", exc) from exc
    version = config.scoring.cv_version or hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return CandidateProfile(text=text, version=version)
