"""JSON-backed key/value storage for the extension background."""
from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from core.log import get_logger
from core.settings import EXTENSION

DEFAULTS: Dict[str, Any] = {
    "blocklist": [],
    "blockingEnabled": True,
    "blockingMode": "work",
    "currentTaskName": None,
}

ChangeListener = Callable[[Dict[str, Any]], None]


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


class ExtensionStorage:
    """Stored values layered over :data:`DEFAULTS`.

    Listeners receive ``{key: {"oldValue": ..., "newValue": ...}}`` for the
    keys whose value actually changed.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path or EXTENSION.storage_path)
        self._listeners: List[ChangeListener] = []
        self.logger = get_logger("extension.storage")

    def get(self) -> Dict[str, Any]:
        data = copy.deepcopy(DEFAULTS)
        data.update(_load_raw(self.path))
        return data

    def set(self, **values: Any) -> Dict[str, Any]:
        stored = _load_raw(self.path)
        changes: Dict[str, Dict[str, Any]] = {}
        for key, value in values.items():
            old = stored.get(key, DEFAULTS.get(key))
            if old != value:
                changes[key] = {"oldValue": old, "newValue": value}
            stored[key] = value
        self._save(stored)
        if changes:
            self._notify(changes)
        return changes

    def on_changed(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def _save(self, data: Dict[str, Any]) -> None:
        payload = json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True)
        tmp = self.path.with_suffix(".tmp")
        try:
            _ensure_parent(self.path)
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            self.logger.warning("Extension storage write failed: %s", exc)
        finally:
            if tmp.exists():
                try:
                    tmp.unlink()
                except OSError:
                    pass

    def _notify(self, changes: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(changes)
            except Exception:
                self.logger.exception("Storage change listener failed")


__all__ = ["DEFAULTS", "ExtensionStorage"]
