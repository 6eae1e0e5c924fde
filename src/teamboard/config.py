# src/teamboard/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- The local backend works with zero configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "TEAMBOARD"

BACKENDS = ("local", "firebase")

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    console_enabled: bool

    # ---- Backend selection ----
    backend: str

    # ---- Local backend (ignored by git) ----
    data_dir: Path
    store_db_path: Path
    auth_db_path: Path
    blob_dir: Path
    min_password_length: int

    # ---- Firebase ----
    firebase_credentials_path: Optional[Path]
    firebase_project_id: Optional[str]
    firebase_storage_bucket: Optional[str]
    firebase_api_key: Optional[str]
    firebase_session_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "teamboard") or "teamboard"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        backend = _env(_k("BACKEND"), "local").strip().lower()
        if backend not in BACKENDS:
            backend = "local"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/teamboard"))
        store_db_path = _env_path(_k("STORE_DB_PATH"), data_dir / "store.sqlite3")
        auth_db_path = _env_path(_k("AUTH_DB_PATH"), data_dir / "auth.sqlite3")
        blob_dir = _env_path(_k("BLOB_DIR"), data_dir / "blobs")
        min_password_length = _env_int(_k("MIN_PASSWORD_LENGTH"), 6)

        # Accept the standard Google env var for the service account as a fallback.
        cred_raw = _first_env(_k("FIREBASE_CREDENTIALS_PATH"), "GOOGLE_APPLICATION_CREDENTIALS", default=None)
        firebase_credentials_path = Path(cred_raw).expanduser() if cred_raw else None
        firebase_project_id = _first_env(_k("FIREBASE_PROJECT_ID"), default=None)
        firebase_storage_bucket = _first_env(_k("FIREBASE_STORAGE_BUCKET"), default=None)
        firebase_api_key = _first_env(_k("FIREBASE_API_KEY"), default=None)
        firebase_session_path = _env_path(_k("FIREBASE_SESSION_PATH"), data_dir / "session.json")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            backend=backend,
            data_dir=data_dir,
            store_db_path=store_db_path,
            auth_db_path=auth_db_path,
            blob_dir=blob_dir,
            min_password_length=min_password_length,
            firebase_credentials_path=firebase_credentials_path,
            firebase_project_id=firebase_project_id,
            firebase_storage_bucket=firebase_storage_bucket,
            firebase_api_key=firebase_api_key,
            firebase_session_path=firebase_session_path,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
