"""Typed messages exchanged between the page context and the extension background."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from models.snapshot import normalize_mode


@dataclass(frozen=True)
class RulesChanged:
    type = "rulesChanged"

    blocklist: List[str] = field(default_factory=list)
    blocking_enabled: bool = True
    blocking_mode: str = "work"
    current_task_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "blocklist": list(self.blocklist),
            "blockingEnabled": self.blocking_enabled,
            "blockingMode": self.blocking_mode,
            "currentTaskName": self.current_task_name,
        }


@dataclass(frozen=True)
class TimerStateMessage:
    type = "timerState"

    is_working: bool = False
    mode: str = "work"
    remaining_seconds: int = 0
    end_time: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "isWorking": self.is_working,
            "mode": self.mode,
            "remainingSeconds": self.remaining_seconds,
            "endTime": self.end_time,
        }


@dataclass(frozen=True)
class GetTimerState:
    type = "getTimerState"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type}


Message = Union[RulesChanged, TimerStateMessage, GetTimerState]


def message_from_dict(data: Mapping[str, Any]) -> Optional[Message]:
    """Parse a raw payload; unknown types yield ``None`` and are ignored by receivers."""

    kind = data.get("type")
    if kind == RulesChanged.type:
        blocklist = data.get("blocklist")
        mode = data.get("blockingMode")
        task_name = data.get("currentTaskName")
        return RulesChanged(
            blocklist=[d for d in blocklist if isinstance(d, str)] if isinstance(blocklist, list) else [],
            blocking_enabled=data.get("blockingEnabled") is not False,
            blocking_mode=mode if mode in ("work", "always") else "work",
            current_task_name=task_name if isinstance(task_name, str) and task_name else None,
        )
    if kind == TimerStateMessage.type:
        end_time = data.get("endTime")
        try:
            remaining = int(data.get("remainingSeconds") or 0)
        except (TypeError, ValueError):
            remaining = 0
        return TimerStateMessage(
            is_working=bool(data.get("isWorking")),
            mode=normalize_mode(data.get("mode")),
            remaining_seconds=remaining,
            end_time=end_time if isinstance(end_time, int) and end_time > 0 else None,
        )
    if kind == GetTimerState.type:
        return GetTimerState()
    return None


__all__ = ["GetTimerState", "Message", "RulesChanged", "TimerStateMessage", "message_from_dict"]
