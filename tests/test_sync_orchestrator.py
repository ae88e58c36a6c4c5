import time

import pytest

from conftest import FakeRemote, RecordingChannel
from models.snapshot import Session, StateSnapshot, Task, TimerCookie
from services.sync_orchestrator import SyncOrchestrator, current_task_name


def _session(ts):
    return Session(mode="work", duration_minutes=25, date="2024-01-01", timestamp=ts)


@pytest.fixture
def channel(cookie_store):
    return RecordingChannel(cookie_store)


def _orchestrator(local_store, remote, cookie_store, channel=None, **kwargs):
    return SyncOrchestrator(local_store, remote, cookie_store, channel=channel, **kwargs)


@pytest.mark.asyncio
async def test_startup_merges_and_writes_immediately(local_store, cookie_store):
    local_store.save_immediate(StateSnapshot(sessions=[_session(100)], pomodoros_completed=1))
    remote = FakeRemote(StateSnapshot(sessions=[_session(200)], pomodoros_completed=3))
    orchestrator = _orchestrator(local_store, remote, cookie_store)

    merged = await orchestrator.startup()

    assert [s.timestamp for s in merged.sessions] == [100, 200]
    assert merged.pomodoros_completed == 3
    assert local_store.load() == merged
    assert local_store.flush() is False


@pytest.mark.asyncio
async def test_startup_without_remote_keeps_local(local_store, cookie_store):
    local_store.save_immediate(StateSnapshot(achievements=["first"]))
    orchestrator = _orchestrator(local_store, FakeRemote(None), cookie_store)
    merged = await orchestrator.startup()
    assert merged.achievements == ["first"]


@pytest.mark.asyncio
async def test_startup_times_out_slow_remote(local_store, cookie_store):
    class SlowRemote(FakeRemote):
        def fetch_remote(self):
            time.sleep(0.3)
            return StateSnapshot(pomodoros_completed=50)

    local_store.save_immediate(StateSnapshot(pomodoros_completed=2))
    orchestrator = _orchestrator(local_store, SlowRemote(), cookie_store, fetch_timeout=0.05)
    merged = await orchestrator.startup()
    assert merged.pomodoros_completed == 2


@pytest.mark.asyncio
async def test_startup_survives_raising_remote(local_store, cookie_store):
    class BrokenRemote(FakeRemote):
        def fetch_remote(self):
            raise OSError("network unreachable")

    orchestrator = _orchestrator(local_store, BrokenRemote(), cookie_store)
    assert await orchestrator.startup() == StateSnapshot()


@pytest.mark.asyncio
async def test_persist_pushes_after_debounced_write(local_store, cookie_store, scheduler):
    remote = FakeRemote()
    orchestrator = _orchestrator(local_store, remote, cookie_store)

    orchestrator.persist(StateSnapshot(pomodoros_completed=1, timer_end_time=999))
    orchestrator.persist(StateSnapshot(pomodoros_completed=2, timer_end_time=999))
    await orchestrator.drain()
    assert remote.pushed == []

    scheduler.advance(0.3)
    await orchestrator.drain()

    assert local_store.load().pomodoros_completed == 2
    assert len(remote.pushed) == 1
    assert remote.pushed[0]["pomodorosCompleted"] == 2
    assert "timerEndTime" not in remote.pushed[0]


@pytest.mark.asyncio
async def test_persist_now_keeps_transient_locally(local_store, cookie_store):
    remote = FakeRemote()
    orchestrator = _orchestrator(local_store, remote, cookie_store)

    orchestrator.persist_now(StateSnapshot(timer_end_time=123_456))
    await orchestrator.drain()

    assert local_store.load().timer_end_time == 123_456
    assert "timerEndTime" not in remote.pushed[0]


def test_push_runs_inline_without_loop(local_store, cookie_store):
    remote = FakeRemote()
    orchestrator = _orchestrator(local_store, remote, cookie_store)
    orchestrator.persist_now(StateSnapshot(pomodoros_completed=7))
    assert remote.pushed[0]["pomodorosCompleted"] == 7


def test_timer_cookie_written_before_message(local_store, cookie_store, channel, engine, clock):
    orchestrator = _orchestrator(local_store, FakeRemote(), cookie_store, channel)
    orchestrator.attach(engine, lambda: "work")

    engine.set(60)
    engine.start()

    start_message = channel.of_type("timerState")[-1]
    assert start_message.is_working is True
    assert start_message.end_time == clock.now + 60_000
    assert channel.cookies_at_post[-1] == TimerCookie(end_time=clock.now + 60_000, mode="work")
    assert orchestrator.read_timer_cookie() == TimerCookie(end_time=clock.now + 60_000, mode="work")


def test_pause_clears_cookie(local_store, cookie_store, channel, engine, scheduler):
    orchestrator = _orchestrator(local_store, FakeRemote(), cookie_store, channel)
    orchestrator.attach(engine, lambda: "work")
    engine.set(60)
    engine.start()
    scheduler.advance(2)
    engine.pause()

    assert orchestrator.read_timer_cookie() is None
    last = channel.of_type("timerState")[-1]
    assert last.is_working is False and last.end_time is None
    assert last.remaining_seconds == 58


def test_one_cookie_write_per_whole_second(local_store, cookie_store, channel, engine, scheduler):
    orchestrator = _orchestrator(local_store, FakeRemote(), cookie_store, channel)
    orchestrator.attach(engine, lambda: "work")
    engine.set(60)
    engine.start()
    before = len(channel.posted)

    # foreground watcher fires four times a second in the fixture
    scheduler.advance(3)

    seconds = [m.remaining_seconds for m in channel.posted[before:]]
    assert seconds == [59, 58, 57]


def test_break_is_not_working(local_store, cookie_store, channel, engine):
    orchestrator = _orchestrator(local_store, FakeRemote(), cookie_store, channel)
    orchestrator.attach(engine, lambda: "shortBreak")
    engine.set(300)
    engine.start()
    message = channel.of_type("timerState")[-1]
    assert message.is_working is False
    assert message.mode == "shortBreak"
    assert cookie_store.read().mode == "shortBreak"


def test_notify_rules_carries_blocking_settings(local_store, cookie_store, channel):
    orchestrator = _orchestrator(local_store, FakeRemote(), cookie_store, channel)
    snapshot = StateSnapshot(tasks=[Task(id=1, name="Essay")], current_task_id=1)
    snapshot.settings.update(blocklist=["news.com"], blockingMode="always", blockingEnabled=False)

    orchestrator.notify_rules(snapshot)

    message = channel.of_type("rulesChanged")[-1]
    assert message.blocklist == ["news.com"]
    assert message.blocking_enabled is False
    assert message.blocking_mode == "always"
    assert message.current_task_name == "Essay"


def test_current_task_name_ignores_done_tasks():
    snapshot = StateSnapshot(tasks=[Task(id=1, name="Done thing", done=True)], current_task_id=1)
    assert current_task_name(snapshot) is None
    assert current_task_name(StateSnapshot(current_task_id=5)) is None
