"""Ephemeral tier: a single cookie recording the running timer's deadline."""
from __future__ import annotations

import json
import math
import os
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from http.cookies import CookieError, SimpleCookie
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote, unquote

from core.log import get_logger
from core.settings import PERSISTENCE
from datetime_utils import now_ms
from models.snapshot import TimerCookie


# keep the cookie a little past the deadline so a reload right after expiry still sees it
EXPIRY_GRACE_SEC = 5 * 60


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


class TimerCookieStore:
    """Synchronous, best-effort store for ``{endTime, mode}``.

    The cookie is kept in Set-Cookie form (``Max-Age``, ``Expires``,
    ``Path=/``) in a small file that is replaced atomically on every write.
    """

    def __init__(
        self,
        path: Path | str = PERSISTENCE.cookie_path,
        *,
        name: str = PERSISTENCE.cookie_name,
        max_age: int = PERSISTENCE.cookie_max_age_sec,
        clock: Callable[[], int] = now_ms,
    ):
        self.path = Path(path)
        self.name = name
        self.max_age = max_age
        self._clock = clock
        self.logger = get_logger("cookie")

    def _max_age_for(self, cookie: TimerCookie) -> int:
        remaining = math.ceil((cookie.end_time - self._clock()) / 1000)
        return max(1, min(self.max_age, remaining + EXPIRY_GRACE_SEC))

    def serialize(self, cookie: TimerCookie) -> str:
        jar = SimpleCookie()
        jar[self.name] = quote(json.dumps(cookie.to_dict(), separators=(",", ":")), safe="")
        morsel = jar[self.name]
        max_age = self._max_age_for(cookie)
        expires = datetime.fromtimestamp(self._clock() / 1000 + max_age, tz=timezone.utc)
        morsel["max-age"] = str(max_age)
        morsel["expires"] = format_datetime(expires, usegmt=True)
        morsel["path"] = "/"
        morsel["samesite"] = "Lax"
        return morsel.OutputString()

    def write(self, cookie: Optional[TimerCookie]) -> None:
        if cookie is None:
            self.clear()
            return
        line = self.serialize(cookie)
        tmp = self.path.with_suffix(".tmp")
        try:
            _ensure_parent(self.path)
            tmp.write_text(line + "\n", encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            self.logger.warning("Timer cookie write failed: %s", exc)
        finally:
            if tmp.exists():
                try:
                    tmp.unlink()
                except OSError:
                    pass

    def read(self) -> Optional[TimerCookie]:
        try:
            line = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            self.logger.warning("Timer cookie read failed: %s", exc)
            return None
        return self.parse(line)

    def parse(self, line: str) -> Optional[TimerCookie]:
        jar = SimpleCookie()
        try:
            jar.load(line)
        except CookieError:
            return None
        morsel = jar.get(self.name)
        if morsel is None:
            return None
        if self._expired(morsel["expires"]):
            return None
        try:
            data = json.loads(unquote(morsel.value))
        except (TypeError, ValueError):
            return None
        try:
            return TimerCookie.from_dict(data)
        except (TypeError, ValueError, OverflowError):
            return None

    def _expired(self, expires: str) -> bool:
        if not expires:
            return False
        try:
            moment = parsedate_to_datetime(expires)
        except (TypeError, ValueError):
            return True
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.timestamp() * 1000 <= self._clock()

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            self.logger.warning("Timer cookie clear failed: %s", exc)


__all__ = ["EXPIRY_GRACE_SEC", "TimerCookieStore"]
