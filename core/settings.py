"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env or os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "FocusSync"


DATA_DIR = Path(os.environ.get("FOCUS_DATA_DIR") or get_default_data_dir(APP_NAME))
STORAGE_DIR = DATA_DIR / "storage"
LOG_DIR = DATA_DIR / "logs"
EXTENSION_DIR = DATA_DIR / "extension"

for _dir in (DATA_DIR, STORAGE_DIR, LOG_DIR, EXTENSION_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "app.db"
COOKIE_PATH = STORAGE_DIR / "cookies.txt"
DRIVE_TOKEN_PATH = DATA_DIR / "token.json"
EXTENSION_STORAGE_PATH = EXTENSION_DIR / "sync_storage.json"


@dataclass(frozen=True)
class TimerSettings:
    # ~one animation frame; the background watcher keeps a 1s floor
    foreground_interval_sec: float = 1 / 60
    background_interval_sec: float = 1.0


TIMER = TimerSettings()


@dataclass(frozen=True)
class PersistenceSettings:
    storage_key: str = "pomodoro_app"
    debounce_ms: int = 300
    cookie_name: str = "pomodoro_timer"
    cookie_max_age_sec: int = 24 * 60 * 60
    cookie_path: Path = COOKIE_PATH


PERSISTENCE = PersistenceSettings()


@dataclass(frozen=True)
class RemoteSettings:
    backend: str = "http"          # http / drive / none
    base_url: str = "http://127.0.0.1:3000"
    fetch_timeout_sec: float = 5.0
    push_timeout_sec: float = 10.0
    drive_filename: str = "focus_state.json"
    drive_token_path: Path = DRIVE_TOKEN_PATH
    drive_scopes: tuple[str, ...] = ("https://www.googleapis.com/auth/drive.appdata",)


def _remote_from_env(env: Optional[Mapping[str, str]] = None) -> RemoteSettings:
    environ = env if env is not None else os.environ
    defaults = RemoteSettings()
    backend = (environ.get("FOCUS_REMOTE_BACKEND") or defaults.backend).strip().lower()
    if backend not in {"http", "drive", "none"}:
        backend = "none"
    try:
        fetch_timeout = float(environ.get("FOCUS_REMOTE_TIMEOUT") or defaults.fetch_timeout_sec)
    except ValueError:
        fetch_timeout = defaults.fetch_timeout_sec
    if not fetch_timeout > 0:
        fetch_timeout = defaults.fetch_timeout_sec
    return RemoteSettings(
        backend=backend,
        base_url=(environ.get("FOCUS_REMOTE_URL") or defaults.base_url).rstrip("/"),
        fetch_timeout_sec=fetch_timeout,
        push_timeout_sec=defaults.push_timeout_sec,
    )


REMOTE = _remote_from_env()


@dataclass(frozen=True)
class ExtensionSettings:
    block_page: str = "/blocked.html"
    badge_text: str = " "
    badge_color: str = "#d4634a"
    storage_path: Path = EXTENSION_STORAGE_PATH


EXTENSION = ExtensionSettings()


@dataclass(frozen=True)
class ServerSettings:
    host: str = "127.0.0.1"
    port: int = int(os.environ.get("PORT") or 3000)
    db_path: Path = Path(os.environ.get("FOCUS_SERVER_DB") or DATA_DIR / "server.db")
    max_body_bytes: int = 1024 * 1024


SERVER = ServerSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "STORAGE_DIR",
    "LOG_DIR",
    "EXTENSION_DIR",
    "DB_PATH",
    "COOKIE_PATH",
    "DRIVE_TOKEN_PATH",
    "EXTENSION_STORAGE_PATH",
    "TIMER",
    "PERSISTENCE",
    "REMOTE",
    "EXTENSION",
    "SERVER",
    "get_default_data_dir",
]
