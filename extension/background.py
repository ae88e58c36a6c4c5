"""Extension background context: applies blocking rules and mirrors timer state."""
from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from core.log import get_logger
from core.settings import EXTENSION
from datetime_utils import now_ms
from extension.rules import RuleScheduler
from extension.storage import ExtensionStorage
from models.messages import GetTimerState, Message, RulesChanged, TimerStateMessage
from models.snapshot import TimerCookie


class BackgroundWorker:
    def __init__(
        self,
        rules: RuleScheduler,
        storage: ExtensionStorage,
        *,
        clock: Callable[[], int] = now_ms,
    ):
        self.rules = rules
        self.storage = storage
        self._clock = clock
        self.badge_text = ""
        self.badge_color: Optional[str] = None
        self.timer_state: Optional[TimerCookie] = None
        self._skip_next_storage_change = False
        self.logger = get_logger("extension.background")
        storage.on_changed(self.on_storage_changed)

    # ----- lifecycle -----
    def on_installed(self) -> None:
        self._reschedule_from_storage()

    def on_startup(self) -> None:
        self._reschedule_from_storage()
        # nothing is running yet after a browser restart
        self.set_badge(False)

    def on_storage_changed(self, changes: Dict[str, Any]) -> None:
        if self._skip_next_storage_change:
            self._skip_next_storage_change = False
            return
        self.logger.info("Synced storage changed: %s", ", ".join(sorted(changes)))
        self._reschedule_from_storage()

    # ----- messages -----
    async def handle(self, message: Message) -> Any:
        if isinstance(message, RulesChanged):
            return self._on_rules_changed(message)
        if isinstance(message, TimerStateMessage):
            return self._on_timer_state(message)
        if isinstance(message, GetTimerState):
            return self.get_timer_state()
        return None

    def _on_rules_changed(self, message: RulesChanged) -> Dict[str, Any]:
        self._skip_next_storage_change = True
        changes = self.storage.set(
            blocklist=list(message.blocklist),
            blockingEnabled=message.blocking_enabled,
            blockingMode=message.blocking_mode,
            currentTaskName=message.current_task_name,
        )
        if not changes:
            # no change event will arrive to consume the flag
            self._skip_next_storage_change = False
        self.rules.schedule_update(message.blocklist, message.blocking_enabled, message.blocking_mode)
        return {"ok": True}

    def _on_timer_state(self, message: TimerStateMessage) -> Dict[str, Any]:
        self.set_badge(message.is_working)
        if message.end_time:
            self.timer_state = TimerCookie(end_time=message.end_time, mode=message.mode)
        else:
            self.timer_state = None
        self.rules.set_session_active(message.is_working)
        return {"ok": True}

    def get_timer_state(self) -> Optional[Dict[str, Any]]:
        state = self.timer_state
        if state is None or state.end_time <= self._clock():
            return None
        return state.to_dict()

    # ----- helpers -----
    def set_badge(self, is_working: bool) -> None:
        if is_working:
            self.badge_text = EXTENSION.badge_text
            self.badge_color = EXTENSION.badge_color
        else:
            self.badge_text = ""

    def _reschedule_from_storage(self) -> None:
        data = self.storage.get()
        blocklist = data.get("blocklist")
        self.rules.schedule_update(
            blocklist if isinstance(blocklist, list) else [],
            data.get("blockingEnabled") is not False,
            data.get("blockingMode") or "work",
        )


__all__ = ["BackgroundWorker"]
