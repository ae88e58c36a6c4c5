"""Durable local tier: the full snapshot as one JSON row in SQLite."""
from __future__ import annotations

import json
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from core.log import get_logger
from core.scheduling import Handle, Scheduler
from core.settings import PERSISTENCE
from datetime_utils import utc_now
from models.snapshot import StateSnapshot, default_snapshot
from models.state_record import StateRecord
from storage.db import get_engine, init_db


class LocalStateStore:
    """Reads merge over defaults; writes are debounced unless made immediate.

    Neither path raises: a corrupt row reads as the default snapshot and a
    failed write is logged and dropped.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        engine=None,
        key: str = PERSISTENCE.storage_key,
        debounce_ms: int = PERSISTENCE.debounce_ms,
        on_write: Optional[Callable[[StateSnapshot], None]] = None,
    ):
        self._scheduler = scheduler
        self._engine = engine or get_engine()
        self.key = key
        self.debounce_ms = debounce_ms
        self.on_write = on_write
        self._pending: Optional[StateSnapshot] = None
        self._timer: Optional[Handle] = None
        self.logger = get_logger("local")
        try:
            init_db(self._engine, keys=(key,))
        except SQLAlchemyError as exc:
            self.logger.warning("Local store unavailable: %s", exc)

    # ----- read -----
    def load(self) -> StateSnapshot:
        try:
            with Session(self._engine) as session:
                row = session.get(StateRecord, self.key)
                raw = row.state if row else None
        except SQLAlchemyError as exc:
            self.logger.warning("Local read failed, using defaults: %s", exc)
            return default_snapshot()
        if not raw:
            return default_snapshot()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            self.logger.warning("Local snapshot is corrupt, using defaults")
            return default_snapshot()
        try:
            return StateSnapshot.from_dict(data)
        except (TypeError, ValueError, OverflowError) as exc:
            self.logger.warning("Local snapshot is unreadable, using defaults: %s", exc)
            return default_snapshot()

    # ----- write -----
    def save(self, snapshot: StateSnapshot) -> None:
        """Queue a write; rapid calls collapse into one after the quiet period."""
        self._pending = snapshot.copy()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._scheduler.call_later(self.debounce_ms / 1000, self._fire)

    def save_immediate(self, snapshot: StateSnapshot) -> bool:
        self._cancel_timer()
        self._pending = None
        return self._write(snapshot)

    def flush(self) -> bool:
        if self._pending is None:
            return False
        self._cancel_timer()
        return self._fire()

    def _fire(self) -> bool:
        self._timer = None
        snapshot, self._pending = self._pending, None
        if snapshot is None:
            return False
        written = self._write(snapshot)
        if self.on_write is not None:
            try:
                self.on_write(snapshot)
            except Exception:
                self.logger.exception("Post-write hook failed")
        return written

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _write(self, snapshot: StateSnapshot) -> bool:
        try:
            payload = json.dumps(snapshot.to_dict(), ensure_ascii=False)
            with Session(self._engine) as session:
                row = session.get(StateRecord, self.key)
                if row is None:
                    row = StateRecord(key=self.key)
                row.state = payload
                row.updated_at = utc_now()
                session.add(row)
                session.commit()
            return True
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            self.logger.warning("Local write dropped: %s", exc)
            return False


__all__ = ["LocalStateStore"]
