"""Settings for the visual aid store, read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from visual_aids.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

DEFAULT_LOCAL_STORE_URL = "sqlite+aiosqlite:///~/.visual_aids/offline.db"


@dataclass(frozen=True)
class Settings:
  """Typed settings for the visual aid store."""

  environment: str
  debug: bool
  collection: str
  local_store_url: str
  cache_box: str
  queue_box: str
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _required_name(env_name: str, default: str) -> str:
  """Read a collection/box name and reject blank values."""
  value = (os.getenv(env_name) or default).strip()
  if value == "":
    raise ValueError(f"{env_name} must not be blank.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("VISUAL_AIDS_ENV", "development").lower()
  debug = _parse_bool(os.getenv("VISUAL_AIDS_DEBUG"))

  log_max_bytes = int(os.getenv("VISUAL_AIDS_LOG_MAX_BYTES", "5242880"))  # 5MB default
  if log_max_bytes <= 0:
    raise ValueError("VISUAL_AIDS_LOG_MAX_BYTES must be a positive integer.")

  log_backup_count = int(os.getenv("VISUAL_AIDS_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("VISUAL_AIDS_LOG_BACKUP_COUNT must be zero or a positive integer.")

  local_store_url = (os.getenv("VISUAL_AIDS_LOCAL_STORE_URL") or DEFAULT_LOCAL_STORE_URL).strip()
  if not local_store_url.startswith("sqlite"):
    raise ValueError("VISUAL_AIDS_LOCAL_STORE_URL must be a sqlite URL.")

  cache_box = _required_name("VISUAL_AIDS_CACHE_BOX", "visual_aids_offline")
  queue_box = _required_name("VISUAL_AIDS_QUEUE_BOX", "visual_aids_offline_queue")
  # Cache mirrors and pending writes must never share a box.
  if cache_box == queue_box:
    raise ValueError("VISUAL_AIDS_CACHE_BOX and VISUAL_AIDS_QUEUE_BOX must differ.")

  return Settings(
    environment=environment,
    debug=debug,
    collection=_required_name("VISUAL_AIDS_COLLECTION", "visual_aids"),
    local_store_url=local_store_url,
    cache_box=cache_box,
    queue_box=queue_box,
    log_dir=(os.getenv("VISUAL_AIDS_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
  )
