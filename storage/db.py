# focus-sync/storage/db.py
from __future__ import annotations

from pathlib import Path

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from core.settings import DB_PATH

# Ensure SQLModel metadata is populated
import models.state_record  # noqa: F401
from storage import migrations


def make_engine(path: Path | str | None = None, *, memory: bool = False):
    if memory:
        return create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    target = Path(path or DB_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{target.as_posix()}",
        connect_args={"check_same_thread": False},
        echo=False,
    )


_engine = None


def get_engine():
    global _engine
    if _engine is None:
        _engine = make_engine(DB_PATH)
    return _engine


def init_db(engine=None, *, keys: tuple[str, ...] = ()):
    actual = engine or get_engine()
    SQLModel.metadata.create_all(actual)
    migrations.run_all(actual, keys=keys)
    return actual

