# ── src/routers/healthz/endpoints.py ─────────────────────────────────
from fastapi import APIRouter

router = APIRouter()

@router.get("/health", summary="Liveness probe")
def health_check():
    return {"status": "ok"}
