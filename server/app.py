"""Thin remote store: one JSON document behind ``GET /state`` and ``PUT /state``."""
from __future__ import annotations

import json
import math
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from core.log import get_logger
from core.settings import SERVER
from datetime_utils import utc_now
from models.state_record import StateRecord
from storage.db import init_db, make_engine

REMOTE_KEY = "remote"

logger = get_logger("server")


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"Number out of range: {text}")
    return value


def _reject_constant(name: str):
    raise ValueError(f"Non-finite number: {name}")


def _loads_strict(raw) -> Any:
    # JSON responses cannot carry NaN or Infinity
    return json.loads(raw, parse_float=_finite_float, parse_constant=_reject_constant)


def create_app(engine=None, *, max_body_bytes: int = SERVER.max_body_bytes) -> FastAPI:
    engine = engine or make_engine(SERVER.db_path)
    init_db(engine, keys=(REMOTE_KEY,))
    app = FastAPI(title="FocusSync state server")
    app.state.engine = engine

    @app.get("/state")
    @app.get("/api/state")
    def get_state():
        try:
            with Session(engine) as session:
                row: Optional[StateRecord] = session.get(StateRecord, REMOTE_KEY)
                raw = row.state if row else "{}"
        except SQLAlchemyError as exc:
            logger.warning("State read failed: %s", exc)
            return _error(500, str(exc))
        try:
            data: Dict[str, Any] = _loads_strict(raw or "{}")
        except ValueError:
            logger.warning("Stored state is corrupt, serving empty state")
            data = {}
        return JSONResponse(content=data)

    @app.put("/state")
    @app.put("/api/state")
    async def put_state(request: Request):
        body = await request.body()
        if len(body) > max_body_bytes:
            return _error(413, "State too large")
        try:
            data = _loads_strict(body or b"{}")
        except ValueError:
            return _error(400, "Body must be JSON")
        if not isinstance(data, dict):
            return _error(400, "Body must be a JSON object")
        try:
            with Session(engine) as session:
                row = session.get(StateRecord, REMOTE_KEY) or StateRecord(key=REMOTE_KEY)
                row.state = json.dumps(data, ensure_ascii=False)
                row.updated_at = utc_now()
                session.add(row)
                session.commit()
        except SQLAlchemyError as exc:
            logger.warning("State write failed: %s", exc)
            return _error(500, str(exc))
        return {"ok": True}

    return app


__all__ = ["REMOTE_KEY", "create_app"]
