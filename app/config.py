"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the publishing service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  pg_dsn: str | None
  pg_connect_timeout: int
  gemini_api_key: str | None
  text_model: str
  translation_enabled: bool
  translation_batch_size: int
  translation_concurrency_limit: int
  translation_max_retry_attempts: int
  translation_retry_delay_ms: int
  translation_status_interval: int
  scheduler_max_concurrent: int
  scheduler_min_time_ms: int
  scheduler_reservoir: int
  scheduler_reservoir_refresh_seconds: float
  scheduler_high_water: int
  scheduler_task_timeout_seconds: float
  scheduler_admission_timeout_seconds: float
  scheduler_health_interval_seconds: float
  job_update_attempts: int
  job_update_backoff_ms: int
  job_stream_cleanup_delay_seconds: float


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("MARK_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("MARK_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("MARK_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("MARK_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("MARK_DEBUG"))

  log_max_bytes = _positive_int("MARK_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("MARK_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("MARK_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Translation pipeline tuning.
  translation_enabled = _parse_bool(os.getenv("MARK_TRANSLATION_ENABLED"), default=True)
  translation_batch_size = _positive_int("MARK_TRANSLATION_BATCH_SIZE", "25")
  translation_concurrency_limit = _positive_int("MARK_TRANSLATION_CONCURRENCY_LIMIT", "20")
  translation_max_retry_attempts = _positive_int("MARK_TRANSLATION_MAX_RETRY_ATTEMPTS", "2")
  translation_retry_delay_ms = int(os.getenv("MARK_TRANSLATION_RETRY_DELAY_MS", "200"))
  if translation_retry_delay_ms < 0:
    raise ValueError("MARK_TRANSLATION_RETRY_DELAY_MS must be zero or a positive integer.")
  translation_status_interval = _positive_int("MARK_TRANSLATION_STATUS_INTERVAL", "5")

  # Process-wide admission scheduler.
  scheduler_min_time_ms = int(os.getenv("MARK_SCHEDULER_MIN_TIME_MS", "10"))
  if scheduler_min_time_ms < 0:
    raise ValueError("MARK_SCHEDULER_MIN_TIME_MS must be zero or a positive integer.")

  job_update_backoff_ms = int(os.getenv("MARK_JOB_UPDATE_BACKOFF_MS", "100"))
  if job_update_backoff_ms < 0:
    raise ValueError("MARK_JOB_UPDATE_BACKOFF_MS must be zero or a positive integer.")

  cleanup_delay = float(os.getenv("MARK_JOB_STREAM_CLEANUP_DELAY_SECONDS", "1.0"))
  if cleanup_delay < 0:
    raise ValueError("MARK_JOB_STREAM_CLEANUP_DELAY_SECONDS must not be negative.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("MARK_ALLOWED_ORIGINS", "http://localhost:3000")),
    debug=debug,
    log_dir=os.getenv("MARK_LOG_DIR", "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    pg_dsn=os.getenv("MARK_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("MARK_PG_CONNECT_TIMEOUT", "5"),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    text_model=os.getenv("MARK_TEXT_MODEL", "gemini-2.0-flash").strip(),
    translation_enabled=translation_enabled,
    translation_batch_size=translation_batch_size,
    translation_concurrency_limit=translation_concurrency_limit,
    translation_max_retry_attempts=translation_max_retry_attempts,
    translation_retry_delay_ms=translation_retry_delay_ms,
    translation_status_interval=translation_status_interval,
    scheduler_max_concurrent=_positive_int("MARK_SCHEDULER_MAX_CONCURRENT", "25"),
    scheduler_min_time_ms=scheduler_min_time_ms,
    scheduler_reservoir=_positive_int("MARK_SCHEDULER_RESERVOIR", "100"),
    scheduler_reservoir_refresh_seconds=_positive_float("MARK_SCHEDULER_RESERVOIR_REFRESH_SECONDS", "10"),
    scheduler_high_water=_positive_int("MARK_SCHEDULER_HIGH_WATER", "2000"),
    scheduler_task_timeout_seconds=_positive_float("MARK_SCHEDULER_TASK_TIMEOUT_SECONDS", "30"),
    scheduler_admission_timeout_seconds=_positive_float("MARK_SCHEDULER_ADMISSION_TIMEOUT_SECONDS", "15"),
    scheduler_health_interval_seconds=_positive_float("MARK_SCHEDULER_HEALTH_INTERVAL_SECONDS", "30"),
    job_update_attempts=_positive_int("MARK_JOB_UPDATE_ATTEMPTS", "3"),
    job_update_backoff_ms=job_update_backoff_ms,
    job_stream_cleanup_delay_seconds=cleanup_delay,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations and offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("MARK_DEBUG"))
  pg_connect_timeout = int(os.getenv("MARK_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("MARK_PG_CONNECT_TIMEOUT must be a positive integer.")

  # Support fallback to DATABASE_URL for hosted deployments.
  pg_dsn = os.getenv("MARK_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
