from __future__ import annotations

import logging
import math
import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Body, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from duckview.errors import EngineInitError, LoadError, QueryError, ValidationError
from duckview.routing import episode_redirect_path
from duckview.session import DatasetSession, DatasetSessionManager, preview, sample_queries

router = APIRouter(prefix="", tags=["API"])
logger = logging.getLogger(__name__)


class LoadRequest(BaseModel):
    url: str
    table_name: str = "episode"


class QueryRequest(BaseModel):
    sql: str
    preview_rows: int = 100


def _manager(request: Request) -> DatasetSessionManager:
    return request.app.state.manager


def _sessions(request: Request) -> Dict[str, DatasetSession]:
    return request.app.state.sessions


def _session_or_404(request: Request, session_id: str) -> DatasetSession:
    session = _sessions(request).get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return session


def _finite(value: Any) -> Any:
    """NaN and infinities become null; strict JSON has no literal for them."""
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, list):
        return [_finite(v) for v in value]
    if isinstance(value, dict):
        return {k: _finite(v) for k, v in value.items()}
    return value


def _encode_rows(rows: List[Dict[str, Any]]) -> List[List[Any]]:
    encoded = jsonable_encoder(
        [list(r.values()) for r in rows],
        custom_encoder={bytes: lambda b: b.hex()},
    )
    return _finite(encoded)


@router.get("/data/{org}/{dataset}")
def dataset_root(org: str, dataset: str, request: Request):
    """Redirect a dataset root to its default episode."""
    target = episode_redirect_path(org, dataset, request.app.state.episode_indices)
    return RedirectResponse(url=target, status_code=307)


@router.post("/api/sessions")
async def create_session(request: Request, payload: LoadRequest = Body(...)):
    session = DatasetSession(manager=_manager(request))
    try:
        result = await session.load(payload.url, payload.table_name)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except EngineInitError as e:
        raise HTTPException(status_code=503, detail=e.message)
    except LoadError as e:
        raise HTTPException(status_code=502, detail=e.message)

    session_id = uuid.uuid4().hex
    _sessions(request)[session_id] = session
    return {
        "session_id": session_id,
        "table_name": result.table_name,
        "row_count": result.row_count,
        "message": result.message,
    }


@router.post("/api/sessions/{session_id}/query")
async def run_query(session_id: str, request: Request, payload: QueryRequest = Body(...)):
    session = _session_or_404(request, session_id)
    try:
        rows = await session.run_query(payload.sql)
    except QueryError as e:
        raise HTTPException(status_code=400, detail=e.message)

    shown = preview(rows, payload.preview_rows)
    return {
        "columns": shown.columns,
        "rows": _encode_rows(shown.rows),
        "total_rows": shown.total_rows,
        "truncated": shown.truncated,
    }


@router.get("/api/sessions/{session_id}/samples")
def session_samples(session_id: str, request: Request):
    session = _session_or_404(request, session_id)
    return {"table_name": session.table_name, "queries": sample_queries(session.table_name)}


@router.get("/api/sessions/{session_id}")
def session_state(session_id: str, request: Request):
    return _session_or_404(request, session_id).summary()


@router.delete("/api/sessions/{session_id}", status_code=204)
async def close_session(session_id: str, request: Request):
    session = _sessions(request).pop(session_id, None)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    await session.close()
    if session.error:
        logger.warning(f"[duckview.api] session {session_id} closed with error: {session.error}")
    return Response(status_code=204)


@router.get("/healthz")
def healthz(request: Request):
    provisioner = request.app.state.provisioner
    return {
        "status": "ok",
        "engine_ready": provisioner.engine is not None,
        "engine_state": provisioner.state,
    }
