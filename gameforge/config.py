"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from gameforge.jobs.models import TemplateKind
from gameforge.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the GameForge service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  redis_url: str
  redis_max_connections: int
  openai_api_key: str | None
  openai_text_model: str
  openai_image_model: str
  cron_secret: str | None
  generation_max_retries: int
  generation_backoff_base_seconds: float
  min_code_length: int
  engine_marker: str
  rate_limit_per_window: int
  rate_limit_window_seconds: int
  stale_job_timeout_seconds: int
  worker_busy_interval_seconds: float
  worker_idle_interval_seconds: float
  worker_error_interval_seconds: float
  worker_embedded: bool
  migrate_on_startup: bool
  template_dir: str
  default_template: TemplateKind
  artifact_bucket: str
  gcs_storage_host: str | None
  gcp_project_id: str | None
  base_url: str


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("GAMEFORGE_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("GAMEFORGE_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  raw = os.getenv(name, default)
  try:
    value = int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  raw = os.getenv(name, default)
  try:
    value = float(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be a number, got {raw!r}.") from exc
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("GAMEFORGE_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("GAMEFORGE_DEBUG"))

  raw_backup_count = os.getenv("GAMEFORGE_LOG_BACKUP_COUNT", "10")
  try:
    log_backup_count = int(raw_backup_count)
  except ValueError as exc:
    raise ValueError(f"GAMEFORGE_LOG_BACKUP_COUNT must be an integer, got {raw_backup_count!r}.") from exc
  if log_backup_count < 0:
    raise ValueError("GAMEFORGE_LOG_BACKUP_COUNT must be zero or a positive integer.")

  raw_template = os.getenv("GAMEFORGE_DEFAULT_TEMPLATE", "platformer")
  try:
    default_template = TemplateKind.parse(raw_template)
  except ValueError as exc:
    allowed = ", ".join(kind.value for kind in TemplateKind)
    raise ValueError(f"GAMEFORGE_DEFAULT_TEMPLATE must be one of: {allowed}.") from exc

  template_dir = os.getenv("GAMEFORGE_TEMPLATE_DIR") or os.path.join(os.path.dirname(__file__), "templates")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("GAMEFORGE_ALLOWED_ORIGINS")),
    log_max_bytes=_positive_int("GAMEFORGE_LOG_MAX_BYTES", "5242880"),
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("GAMEFORGE_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("GAMEFORGE_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("GAMEFORGE_PG_CONNECT_TIMEOUT", "5"),
    redis_url=os.getenv("GAMEFORGE_REDIS_URL") or os.getenv("REDIS_URL") or "redis://localhost:6379/0",
    redis_max_connections=_positive_int("GAMEFORGE_REDIS_MAX_CONNECTIONS", "50"),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    openai_text_model=os.getenv("GAMEFORGE_TEXT_MODEL", "gpt-4o-mini"),
    openai_image_model=os.getenv("GAMEFORGE_IMAGE_MODEL", "dall-e-3"),
    cron_secret=_optional_str(os.getenv("GAMEFORGE_CRON_SECRET") or os.getenv("CRON_SECRET")),
    generation_max_retries=_positive_int("GAMEFORGE_GENERATION_MAX_RETRIES", "3"),
    generation_backoff_base_seconds=_positive_float("GAMEFORGE_GENERATION_BACKOFF_BASE_SECONDS", "1"),
    min_code_length=_positive_int("GAMEFORGE_MIN_CODE_LENGTH", "100"),
    engine_marker=os.getenv("GAMEFORGE_ENGINE_MARKER", "Phaser"),
    rate_limit_per_window=_positive_int("GAMEFORGE_RATE_LIMIT", "10"),
    rate_limit_window_seconds=_positive_int("GAMEFORGE_RATE_LIMIT_WINDOW_SECONDS", "3600"),
    stale_job_timeout_seconds=_positive_int("GAMEFORGE_STALE_JOB_TIMEOUT_SECONDS", "300"),
    worker_busy_interval_seconds=_positive_float("GAMEFORGE_WORKER_BUSY_INTERVAL_SECONDS", "1"),
    worker_idle_interval_seconds=_positive_float("GAMEFORGE_WORKER_IDLE_INTERVAL_SECONDS", "5"),
    worker_error_interval_seconds=_positive_float("GAMEFORGE_WORKER_ERROR_INTERVAL_SECONDS", "10"),
    worker_embedded=_parse_bool(os.getenv("GAMEFORGE_WORKER_EMBEDDED")),
    migrate_on_startup=_parse_bool(os.getenv("GAMEFORGE_MIGRATE_ON_STARTUP", "true")),
    template_dir=template_dir,
    default_template=default_template,
    artifact_bucket=os.getenv("GAMEFORGE_ARTIFACT_BUCKET", "gameforge-packages"),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    base_url=(os.getenv("GAMEFORGE_BASE_URL") or "http://localhost:8000").rstrip("/"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("GAMEFORGE_DEBUG"))
  pg_connect_timeout = _positive_int("GAMEFORGE_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("GAMEFORGE_PG_DSN") or os.getenv("DATABASE_URL")
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
