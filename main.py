# focus-sync/main.py
import os, sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
import argparse
import asyncio
import signal
from dataclasses import replace

from core.countdown import COMPLETE, TICK, CountdownEngine
from core.log import get_logger
from core.scheduling import AsyncioScheduler
from core.settings import APP_NAME, REMOTE, SERVER
from datetime_utils import day_key, ms_to_datetime, now_ms
from extension.background import BackgroundWorker
from extension.channel import MessageChannel
from extension.rules import InMemoryRuleStore, RuleScheduler
from extension.storage import ExtensionStorage
from models.snapshot import MODES
from services import stats
from services.focus_app import FocusApp
from services.sync_orchestrator import SyncOrchestrator
from services.tasks import TaskList
from storage.cookie_store import TimerCookieStore
from storage.local_store import LocalStateStore
from storage.remote import build_remote_store

logger = get_logger("cli")


def _format_seconds(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


def cmd_serve(args) -> int:
    import uvicorn

    from server.app import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port, log_level="info")
    return 0


def cmd_status(args) -> int:
    local = LocalStateStore(AsyncioScheduler())
    snapshot = local.load()
    cookie = TimerCookieStore().read()
    today = day_key()
    print(f"{APP_NAME} status")
    print(f"  mode:               {snapshot.mode}")
    print(f"  pomodoros total:    {snapshot.pomodoros_completed}")
    print(f"  pomodoros today:    {stats.today_pomodoros(snapshot.sessions, today)}")
    print(f"  focus today (min):  {stats.today_focus_minutes(snapshot.sessions, today):g}")
    print(f"  streak:             {snapshot.streak.count} (last {snapshot.streak.last_date or '-'})")
    print(f"  tasks:              {len(snapshot.tasks)} ({TaskList(snapshot.tasks).completed_count()} done)")
    print(f"  blocklist:          {', '.join(snapshot.blocklist) or '-'}")
    if cookie is None:
        print("  timer:              idle")
    else:
        left = max(0, (cookie.end_time - now_ms()) // 1000)
        ends = ms_to_datetime(cookie.end_time).isoformat(timespec="seconds")
        print(f"  timer:              {cookie.mode} running, {_format_seconds(left)} left (ends {ends})")
    return 0


async def _run(args) -> int:
    scheduler = AsyncioScheduler()
    engine = CountdownEngine(scheduler)
    channel = MessageChannel()
    rules = RuleScheduler(InMemoryRuleStore())
    worker = BackgroundWorker(rules, ExtensionStorage())
    channel.connect(worker.handle)
    worker.on_startup()

    remote_settings = REMOTE if args.remote is None else replace(REMOTE, backend=args.remote)
    orchestrator = SyncOrchestrator(
        LocalStateStore(scheduler),
        build_remote_store(remote_settings),
        TimerCookieStore(),
        channel=channel,
        fetch_timeout=remote_settings.fetch_timeout_sec,
    )
    app = FocusApp(orchestrator, engine)
    await app.boot()

    stop = asyncio.Event()
    last_shown = {"value": None}

    def show(remaining: int) -> None:
        if remaining == last_shown["value"]:
            return
        last_shown["value"] = remaining
        print(f"\r{app.mode:<10} {_format_seconds(remaining)}", end="", flush=True)

    def completed() -> None:
        print(f"\n{APP_NAME}: phase complete, next up {app.mode}")
        if args.until_complete:
            stop.set()

    engine.subscribe(TICK, show)
    engine.subscribe(COMPLETE, completed)

    if args.mode and args.mode != app.mode and not engine.is_running():
        app.switch_mode(args.mode)
    if not engine.is_running():
        app.start()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, stop.set)
    except (NotImplementedError, RuntimeError):
        # Windows event loops lack signal handlers; Ctrl+C then raises in asyncio.run
        pass

    try:
        await stop.wait()
    finally:
        print()
        app.on_unload()
        await orchestrator.drain()
        await rules.idle()
        logger.info("Headless session stopped")
    return 0


def cmd_run(args) -> int:
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="focus-sync", description=f"{APP_NAME} pomodoro timer")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the remote state server")
    serve.add_argument("--host", default=SERVER.host)
    serve.add_argument("--port", type=int, default=SERVER.port)
    serve.set_defaults(func=cmd_serve)

    status = sub.add_parser("status", help="show the local snapshot and timer")
    status.set_defaults(func=cmd_status)

    run = sub.add_parser("run", help="run a headless timer session")
    run.add_argument("--mode", choices=MODES, default=None)
    run.add_argument("--remote", choices=("http", "drive", "none"), default=None)
    run.add_argument("--until-complete", action="store_true", help="exit after the current phase ends")
    run.set_defaults(func=cmd_run)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
