# ── src/routers/visits/endpoints.py ──────────────────────────────────
import json
from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from telemetry import build_visit_context
from .store import VisitRecord, VisitStore, utc_timestamp

MAX_RETURNED_RECORDS = 100
MAX_BODY_BYTES       = 5 * 1024

router = APIRouter()

# ── Pydantic models ──────────────────────────────────────────────────
class VisitOut(BaseModel):
    ok:          bool = True
    recordedAt:  str  = Field(..., description="Timestamp stored with the visit")

class LatestOut(BaseModel):
    entries: List[VisitRecord]

class CountOut(BaseModel):
    count: int

# ── Dependencies ─────────────────────────────────────────────────────
def get_visit_store(request: Request) -> VisitStore:
    return request.app.state.visit_store

async def read_visit_body(request: Request) -> Any:
    """
    Raw JSON body, capped at MAX_BODY_BYTES before any parsing.

    Empty or non-JSON bodies count as `{}`; oversized → 413, unparseable → 400.
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > MAX_BODY_BYTES:
        raise HTTPException(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "Request body too large")

    raw = b""
    async for chunk in request.stream():
        raw += chunk
        if len(raw) > MAX_BODY_BYTES:
            raise HTTPException(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "Request body too large")

    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if not raw or not (content_type == "application/json" or content_type.endswith("+json")):
        return {}

    try:
        body = json.loads(raw)
    except ValueError:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Malformed JSON body")
    if not isinstance(body, (dict, list)):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Malformed JSON body")
    return body

# ── Routes ───────────────────────────────────────────────────────────
@router.post(
    "/api/visit",
    status_code=status.HTTP_201_CREATED,
    response_model=VisitOut,
    summary="Record one page visit",
)
async def record_visit(
    request: Request,
    body: Any = Depends(read_visit_body),
    store: VisitStore = Depends(get_visit_store),
):
    record = VisitRecord(timestamp=utc_timestamp(), **build_visit_context(request, body))
    recorded_at = await run_in_threadpool(store.append, record)
    return VisitOut(recordedAt=recorded_at)


@router.get(
    "/api/visits/latest",
    response_model=LatestOut,
    response_model_by_alias=True,
    summary="Most recent visits, oldest first",
)
def latest_visits(store: VisitStore = Depends(get_visit_store)):
    return LatestOut(entries=store.read_tail(MAX_RETURNED_RECORDS))


@router.get(
    "/api/visits/count",
    response_model=CountOut,
    summary="Number of recorded visits",
)
def visit_count(store: VisitStore = Depends(get_visit_store)):
    return CountOut(count=store.count())
