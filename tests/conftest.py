import math
import os
import sys
import tempfile
from pathlib import Path

# settings create their directories at import time
os.environ.setdefault("FOCUS_DATA_DIR", tempfile.mkdtemp(prefix="focus-tests-"))
os.environ["FOCUS_REMOTE_BACKEND"] = "none"

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from core.countdown import CountdownEngine
from storage.cookie_store import TimerCookieStore
from storage.db import make_engine
from storage.local_store import LocalStateStore


START_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(round(seconds * 1000))


class ManualHandle:
    def __init__(self, due: float, interval_ms, callback):
        self.due = due
        self.interval_ms = interval_ms
        self.callback = callback
        self.cancelled = False
        self.fired = 0

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Fires callbacks only as the test advances time; shares the fake clock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.handles = []

    def call_later(self, delay, callback):
        handle = ManualHandle(self.clock.now + delay * 1000, None, callback)
        self.handles.append(handle)
        return handle

    def call_every(self, interval, callback):
        handle = ManualHandle(self.clock.now + interval * 1000, interval * 1000, callback)
        self.handles.append(handle)
        return handle

    @property
    def active(self):
        return [h for h in self.handles if not h.cancelled]

    def _next_due(self, until: float):
        due = [h for h in self.active if h.due <= until]
        return min(due, key=lambda h: h.due) if due else None

    def advance(self, seconds: float) -> None:
        target = self.clock.now + int(round(seconds * 1000))
        while True:
            handle = self._next_due(target)
            if handle is None:
                break
            self.clock.now = max(self.clock.now, int(math.ceil(handle.due)))
            self._fire(handle)
        self.clock.now = target

    def run_due(self) -> None:
        """Fire everything already overdue, as a starved loop does when it wakes."""
        for handle in sorted(self.active, key=lambda h: h.due):
            if not handle.cancelled and handle.due <= self.clock.now:
                self._fire(handle)

    def _fire(self, handle: ManualHandle) -> None:
        if handle.interval_ms is None:
            handle.cancelled = True
        else:
            handle.due += handle.interval_ms
            while handle.due <= self.clock.now:
                handle.due += handle.interval_ms
        handle.fired += 1
        handle.callback()


class FakeRemote:
    def __init__(self, snapshot=None, *, fail_push=False):
        self.snapshot = snapshot
        self.fail_push = fail_push
        self.fetches = 0
        self.pushed = []

    def fetch_remote(self):
        self.fetches += 1
        return self.snapshot

    def push_remote(self, snapshot):
        self.pushed.append(snapshot.to_remote_dict())
        return not self.fail_push


class RecordingChannel:
    """Channel stand-in that records posts with the cookie visible at post time."""

    def __init__(self, cookie_store=None):
        self.cookie_store = cookie_store
        self.posted = []
        self.cookies_at_post = []

    def post(self, message):
        self.posted.append(message)
        if self.cookie_store is not None:
            self.cookies_at_post.append(self.cookie_store.read())
        return None

    async def drain(self):
        return None

    def of_type(self, kind):
        return [m for m in self.posted if m.type == kind]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def engine(scheduler, clock):
    return CountdownEngine(scheduler, clock, foreground_interval=0.25, background_interval=1.0)


@pytest.fixture
def db_engine():
    return make_engine(memory=True)


@pytest.fixture
def local_store(scheduler, db_engine):
    return LocalStateStore(scheduler, engine=db_engine)


@pytest.fixture
def cookie_store(tmp_path, clock):
    return TimerCookieStore(tmp_path / "cookies.txt", clock=clock)
