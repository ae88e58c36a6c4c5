from models.snapshot import DEFAULT_SETTINGS, Session, StateSnapshot, TimerCookie, default_snapshot


def test_from_dict_tolerates_garbage():
    snapshot = StateSnapshot.from_dict(
        {
            "settings": "nope",
            "tasks": [{"name": "no id"}, {"id": "2", "name": "ok", "tags": ["a", 1, "a"]}],
            "sessions": [{"mode": "work"}, {"mode": "nap", "timestamp": 5, "durationMinutes": "x"}],
            "achievements": ["first", None],
            "streakData": {"lastDate": "", "count": -3},
            "pomodorosCompleted": "7",
            "mode": "lunch",
            "timerEndTime": -1,
        }
    )
    assert snapshot.settings == DEFAULT_SETTINGS
    assert [(t.id, t.tags) for t in snapshot.tasks] == [(2, ["a"])]
    assert snapshot.sessions == [Session(mode="work", duration_minutes=0, date="", timestamp=5)]
    assert snapshot.achievements == ["first"]
    assert snapshot.streak.count == 0 and snapshot.streak.last_date is None
    assert snapshot.pomodoros_completed == 7
    assert snapshot.mode == "work"
    assert snapshot.timer_end_time is None


def test_non_mapping_is_default():
    assert StateSnapshot.from_dict(["not", "a", "dict"]) == default_snapshot()


def test_wire_format_round_trip_keys():
    snapshot = StateSnapshot(timer_end_time=42, sessions=[Session("work", 25, "2024-01-01", 9, task_name="Essay")])
    payload = snapshot.to_dict()
    assert payload["streakData"] == {"lastDate": None, "count": 0}
    assert payload["sessions"] == [
        {"mode": "work", "durationMinutes": 25, "date": "2024-01-01", "timestamp": 9, "taskName": "Essay"}
    ]
    assert payload["timerEndTime"] == 42
    assert "timerEndTime" not in snapshot.to_remote_dict()
    assert StateSnapshot.from_dict(payload) == snapshot


def test_copy_is_independent():
    original = StateSnapshot()
    clone = original.copy()
    clone.settings["blocklist"].append("a.com")
    clone.achievements.append("first")
    assert original.settings["blocklist"] == []
    assert original.achievements == []


def test_timer_cookie_validation():
    assert TimerCookie.from_dict({"endTime": 0, "mode": "work"}) is None
    assert TimerCookie.from_dict("x") is None
    assert TimerCookie.from_dict({"endTime": 10, "mode": "??"}) == TimerCookie(10, "work")
