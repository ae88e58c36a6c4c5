"""Ad-hoc database migrations for the state tables."""

from __future__ import annotations

from sqlalchemy import text


def ensure_state_rows(conn, keys) -> None:
    for key in keys:
        conn.execute(
            text("INSERT OR IGNORE INTO app_state (key, state) VALUES (:key, '{}')"),
            {"key": key},
        )


def run_all(engine, *, keys=()) -> None:
    with engine.begin() as conn:
        ensure_state_rows(conn, keys)


__all__ = ["run_all"]
