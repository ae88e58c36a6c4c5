"""Remote tier: fetch and push whole snapshots, never raising to the caller."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import httplib2
import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaInMemoryUpload

from core.log import get_logger
from core.settings import REMOTE, RemoteSettings
from models.snapshot import StateSnapshot


class RemoteStore(Protocol):
    def fetch_remote(self) -> Optional[StateSnapshot]: ...

    def push_remote(self, snapshot: StateSnapshot) -> bool: ...


def _snapshot_or_none(data: Any) -> Optional[StateSnapshot]:
    # an empty object means "nothing stored yet", not an error
    if not isinstance(data, dict) or not data:
        return None
    return StateSnapshot.from_dict(data)


class NullRemoteStore:
    """Offline mode: nothing to fetch, pushes are dropped."""

    def fetch_remote(self) -> Optional[StateSnapshot]:
        return None

    def push_remote(self, snapshot: StateSnapshot) -> bool:
        return False


class HttpRemoteStore:
    """Client for the ``GET /state`` / ``PUT /state`` contract."""

    def __init__(
        self,
        base_url: str = REMOTE.base_url,
        *,
        session: Optional[requests.Session] = None,
        fetch_timeout: float = REMOTE.fetch_timeout_sec,
        push_timeout: float = REMOTE.push_timeout_sec,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.fetch_timeout = fetch_timeout
        self.push_timeout = push_timeout
        self.logger = get_logger("remote")

    @property
    def state_url(self) -> str:
        return f"{self.base_url}/state"

    def fetch_remote(self) -> Optional[StateSnapshot]:
        try:
            response = self.session.get(self.state_url, timeout=self.fetch_timeout)
        except requests.RequestException as exc:
            self.logger.warning("Remote fetch failed: %s", exc)
            return None
        if not 200 <= response.status_code < 300:
            self.logger.warning("Remote fetch returned %s", response.status_code)
            return None
        try:
            data = response.json()
        except ValueError:
            self.logger.warning("Remote state is not valid JSON")
            return None
        return _snapshot_or_none(data)

    def push_remote(self, snapshot: StateSnapshot) -> bool:
        payload = snapshot.to_remote_dict()
        try:
            response = self.session.put(self.state_url, json=payload, timeout=self.push_timeout)
        except requests.RequestException as exc:
            self.logger.warning("Remote push failed: %s", exc)
            return False
        if not 200 <= response.status_code < 300:
            self.logger.warning("Remote push returned %s", response.status_code)
            return False
        return True


class DriveTokenAuth:
    """Loads an authorized-user token file for the Drive ``appDataFolder`` scope."""

    def __init__(self, token_path: Path | str = REMOTE.drive_token_path, scopes=REMOTE.drive_scopes):
        self.token_path = Path(token_path)
        self.scopes = list(scopes)
        self.creds = None

    def get_credentials(self) -> Optional[Credentials]:
        try:
            if self.creds is None:
                if not self.token_path.exists():
                    return None
                self.creds = Credentials.from_authorized_user_file(str(self.token_path), self.scopes)
            if not self.creds.valid and self.creds.expired and self.creds.refresh_token:
                self.creds.refresh(Request())
        except (ValueError, GoogleAuthError) as exc:
            get_logger("remote.drive").warning("Drive token unusable: %s", exc)
            self.creds = None
        return self.creds


class DriveRemoteStore:
    """Keeps the snapshot as one JSON file in the Google Drive ``appDataFolder``."""

    def __init__(self, auth: Any = None, *, service=None, filename: str = REMOTE.drive_filename):
        self.auth = auth
        self.service = service
        self.filename = filename
        self._file_id: Optional[str] = None
        self.logger = get_logger("remote.drive")

    def fetch_remote(self) -> Optional[StateSnapshot]:
        try:
            self._ensure_service()
            file_id = self._find_file()
            if not file_id:
                return None
            content = self.service.files().get_media(fileId=file_id).execute()
        except HttpError as exc:
            status = getattr(getattr(exc, "resp", None), "status", None)
            if status == 404:
                self._file_id = None
                return None
            self.logger.warning("Drive fetch failed with %s", status)
            return None
        except (RuntimeError, OSError, httplib2.HttpLib2Error) as exc:
            self.logger.warning("Drive fetch failed: %s", exc)
            return None
        text = content.decode("utf-8") if isinstance(content, bytes) else str(content or "")
        if not text.strip():
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            self.logger.warning("Drive state is not valid JSON")
            return None
        return _snapshot_or_none(data)

    def push_remote(self, snapshot: StateSnapshot) -> bool:
        body = json.dumps(snapshot.to_remote_dict(), ensure_ascii=False).encode("utf-8")
        media = MediaInMemoryUpload(body, mimetype="application/json", resumable=False)
        try:
            self._ensure_service()
            file_id = self._find_file()
            if file_id:
                self.service.files().update(fileId=file_id, media_body=media, fields="id").execute()
            else:
                created = (
                    self.service.files()
                    .create(
                        body={"name": self.filename, "parents": ["appDataFolder"]},
                        media_body=media,
                        fields="id",
                    )
                    .execute()
                )
                self._file_id = created.get("id")
            return True
        except HttpError as exc:
            status = getattr(getattr(exc, "resp", None), "status", None)
            self.logger.warning("Drive push failed with %s", status)
            if status == 404:
                self._file_id = None
            return False
        except (RuntimeError, OSError, httplib2.HttpLib2Error) as exc:
            self.logger.warning("Drive push failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Service helpers
    def _ensure_service(self) -> None:
        if self.service is not None:
            return
        creds = None
        if hasattr(self.auth, "get_credentials") and callable(self.auth.get_credentials):
            creds = self.auth.get_credentials()
        else:
            creds = getattr(self.auth, "creds", None) or getattr(self.auth, "credentials", None)
        if creds is None:
            raise RuntimeError("Google credentials are not available for appData access")
        self.service = build("drive", "v3", credentials=creds, cache_discovery=False)

    def _find_file(self) -> Optional[str]:
        if self._file_id:
            return self._file_id
        response = (
            self.service.files()
            .list(
                spaces="appDataFolder",
                q=f"name = '{self.filename}' and trashed = false",
                fields="files(id, name, modifiedTime)",
                pageSize=10,
            )
            .execute()
        )
        files: list[Dict[str, Any]] = response.get("files", [])
        if not files:
            return None
        self._file_id = files[0].get("id")
        return self._file_id


def build_remote_store(settings: RemoteSettings = REMOTE) -> RemoteStore:
    if settings.backend == "http":
        return HttpRemoteStore(
            settings.base_url,
            fetch_timeout=settings.fetch_timeout_sec,
            push_timeout=settings.push_timeout_sec,
        )
    if settings.backend == "drive":
        return DriveRemoteStore(DriveTokenAuth(settings.drive_token_path, settings.drive_scopes))
    return NullRemoteStore()


__all__ = [
    "DriveRemoteStore",
    "DriveTokenAuth",
    "HttpRemoteStore",
    "NullRemoteStore",
    "RemoteStore",
    "build_remote_store",
]
