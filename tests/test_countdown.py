import pytest

from core.countdown import COMPLETE, TICK, TRANSITION, NoDurationError


def _record(engine):
    events = []
    engine.subscribe(TICK, lambda s: events.append(("tick", s)))
    engine.subscribe(TRANSITION, lambda edge: events.append(("transition", edge)))
    engine.subscribe(COMPLETE, lambda: events.append(("complete",)))
    return events


def test_set_emits_tick_and_stays_idle(engine):
    events = _record(engine)
    engine.set(90)
    assert events == [("tick", 90), ("transition", "reset")]
    assert not engine.is_running()
    assert engine.get_remaining() == 90
    assert engine.get_target_time() == 0


def test_start_without_duration_is_noop(engine):
    assert engine.start() is False
    assert not engine.is_running()
    with pytest.raises(NoDurationError):
        engine.start(strict=True)


def test_start_twice_keeps_first_deadline(engine, clock):
    engine.set(10)
    assert engine.start() is True
    deadline = engine.get_target_time()
    clock.advance(2)
    assert engine.start() is False
    assert engine.get_target_time() == deadline == clock.now - 2000 + 10_000


def test_ticks_follow_deadline(engine, scheduler):
    events = _record(engine)
    engine.set(3)
    engine.start()
    scheduler.advance(1)
    ticks = [e[1] for e in events if e[0] == "tick"]
    assert ticks[0] == 3
    assert 2 in ticks
    assert engine.get_remaining() == 2


def test_completion_fires_once_after_overrun(engine, scheduler, clock):
    events = _record(engine)
    engine.set(10)
    engine.start()
    assert len(scheduler.active) == 2

    # scheduling suspended: both watchers miss their slots
    clock.advance(11)
    assert engine.sync() == 0
    scheduler.run_due()
    engine.sync()

    assert events.count(("complete",)) == 1
    assert events.count(("transition", "complete")) == 1
    assert not engine.is_running()
    assert scheduler.active == []
    completion = events.index(("transition", "complete"))
    assert events[completion - 1] == ("tick", 0)
    assert events[completion + 1] == ("complete",)


def test_watchers_complete_without_sync(engine, scheduler):
    completions = []
    engine.subscribe(COMPLETE, lambda: completions.append(1))
    engine.set(2)
    engine.start()
    scheduler.advance(5)
    assert completions == [1]
    assert engine.get_remaining() == 0


def test_pause_then_start_recomputes_deadline(engine, scheduler, clock):
    engine.set(10)
    engine.start()
    scheduler.advance(3)
    engine.pause()
    assert not engine.is_running()
    assert engine.get_remaining() == 7
    assert scheduler.active == []

    clock.advance(100)
    assert engine.get_remaining() == 7
    engine.start()
    assert engine.get_target_time() == clock.now + 7000


def test_reset_cancels_watchers(engine, scheduler):
    edges = []
    engine.subscribe(TRANSITION, edges.append)
    engine.set(10)
    engine.start()
    engine.reset(25)
    assert scheduler.active == []
    assert engine.get_remaining() == 25
    assert edges == ["reset", "start", "reset"]


def test_sync_when_idle_emits_frozen_value(engine):
    ticks = []
    engine.set(42)
    engine.subscribe(TICK, ticks.append)
    assert engine.sync() == 42
    assert ticks == [42]


def test_resume_uses_stored_deadline(engine, clock):
    deadline = clock.now + 61_500
    assert engine.resume(deadline) is True
    assert engine.get_target_time() == deadline
    assert engine.get_remaining() == 62
    assert engine.resume(deadline) is False


def test_resume_past_deadline_is_refused(engine, clock):
    assert engine.resume(clock.now - 1) is False
    assert not engine.is_running()


def test_listener_errors_do_not_break_engine(engine, scheduler):
    def broken(_):
        raise RuntimeError("boom")

    completions = []
    engine.subscribe(TICK, broken)
    engine.subscribe(COMPLETE, lambda: completions.append(1))
    engine.set(1)
    engine.start()
    scheduler.advance(2)
    assert completions == [1]


def test_unknown_event_rejected(engine):
    with pytest.raises(ValueError):
        engine.subscribe("finished", lambda: None)
