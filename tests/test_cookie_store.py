from models.snapshot import TimerCookie
from storage.cookie_store import EXPIRY_GRACE_SEC, TimerCookieStore


def test_missing_cookie_reads_none(cookie_store):
    assert cookie_store.read() is None


def test_write_then_read(cookie_store, clock):
    cookie = TimerCookie(end_time=clock.now + 60_000, mode="shortBreak")
    cookie_store.write(cookie)
    assert cookie_store.read() == cookie


def test_serialized_attributes(cookie_store, clock):
    line = cookie_store.serialize(TimerCookie(end_time=clock.now + 60_000))
    assert line.startswith("pomodoro_timer=")
    assert "Path=/" in line
    assert f"Max-Age={60 + EXPIRY_GRACE_SEC}" in line


def test_max_age_is_capped_at_one_day(cookie_store, clock):
    line = cookie_store.serialize(TimerCookie(end_time=clock.now + 3 * 86_400_000))
    assert "Max-Age=86400" in line


def test_cookie_survives_briefly_past_deadline(cookie_store, clock):
    cookie = TimerCookie(end_time=clock.now + 60_000)
    cookie_store.write(cookie)
    clock.advance(120)
    assert cookie_store.read() == cookie


def test_expired_cookie_reads_none(cookie_store, clock):
    cookie_store.write(TimerCookie(end_time=clock.now + 60_000))
    clock.advance(60 + EXPIRY_GRACE_SEC + 1)
    assert cookie_store.read() is None


def test_corrupt_cookie_reads_none(cookie_store):
    cookie_store.path.write_text("pomodoro_timer=%7Bbroken; Path=/\n", encoding="utf-8")
    assert cookie_store.read() is None
    cookie_store.path.write_text("\x00garbage\n", encoding="utf-8")
    assert cookie_store.read() is None


def test_write_none_clears(cookie_store, clock):
    cookie_store.write(TimerCookie(end_time=clock.now + 60_000))
    cookie_store.write(None)
    assert not cookie_store.path.exists()
    cookie_store.clear()


def test_unwritable_location_is_swallowed(tmp_path, clock):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    store = TimerCookieStore(blocker / "cookies.txt", clock=clock)
    store.write(TimerCookie(end_time=clock.now + 1000))
    assert store.read() is None


def test_overflowing_end_time_reads_none(cookie_store):
    cookie_store.path.write_text(
        "pomodoro_timer=%7B%22endTime%22%3A1e999%2C%22mode%22%3A%22work%22%7D; Path=/\n",
        encoding="utf-8",
    )
    assert cookie_store.read() is None
