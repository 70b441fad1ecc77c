# ── src/main.py ───────────────────────────────────────────────────────────────
import logging
import os
import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Union

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from routers.healthz.endpoints import router as health_router
from routers.visits import VisitStore, console_router, router as visits_router
from routers.visits.store import LOG_NAME
from telemetry import env_int, env_str

_logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000

# Subset of helmet's defaults that matters for a JSON + static-file service
SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; base-uri 'self'; font-src 'self' https: data:; "
        "form-action 'self'; frame-ancestors 'self'; img-src 'self' data:; "
        "object-src 'none'; script-src 'self'; script-src-attr 'none'; "
        "style-src 'self' https: 'unsafe-inline'; upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy":   "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Referrer-Policy":              "no-referrer",
    "Strict-Transport-Security":    "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options":       "nosniff",
    "X-DNS-Prefetch-Control":       "off",
    "X-Frame-Options":              "SAMEORIGIN",
}

STATIC_CACHE_CONTROL = "public, max-age=3600"


def _parse_origins(env_value: str) -> list[str]:
    """FRONTEND_ORIGIN split on commas/whitespace, trailing slashes dropped, order kept."""
    origins = (o.rstrip("/") for o in re.split(r"[,\s]+", env_value))
    return list(dict.fromkeys(o for o in origins if o))


def default_log_file() -> Path:
    return Path(env_str("VISIT_LOG_DIR", os.path.join(os.getcwd(), "data"))) / LOG_NAME


def default_public_dir() -> Path:
    return Path(env_str("PUBLIC_DIR", os.path.join(os.getcwd(), "public")))


class _CachedStaticFiles(StaticFiles):
    def file_response(self, *args, **kwargs):
        response = super().file_response(*args, **kwargs)
        response.headers["Cache-Control"] = STATIC_CACHE_CONTROL
        return response


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"ok": False, "message": message}, status_code=status_code)


def create_app(
    log_file: Optional[Union[str, Path]] = None,
    public_dir: Optional[Union[str, Path]] = None,
) -> FastAPI:
    """
    Build the visit-logger application.

    The store is created here and initialized in the lifespan, so a failure
    to create the log directory/file aborts startup before any request.
    """
    store = VisitStore(log_file or default_log_file())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            store.initialize()
        except OSError:
            _logger.exception("Failed to initialize visit log %s", store.path)
            raise
        _logger.info("Visit logger ready, writing to %s", store.path)
        yield

    app = FastAPI(title="Visit Logger", lifespan=lifespan)
    app.state.visit_store = store

    # ── middleware ---------------------------------------------------------------
    # explicit origins may carry credentials; the wildcard fallback may not
    frontend_origins = _parse_origins(env_str("FRONTEND_ORIGIN"))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=frontend_origins or ["*"],
        allow_credentials=bool(frontend_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Outermost app middleware: unhandled errors are answered here, so they are
    # logged once and the 500 still carries the security headers.
    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        try:
            response = await call_next(request)
        except Exception as exc:
            _logger.error(
                "Unexpected error while handling %s %s", request.method, request.url.path,
                exc_info=exc,
            )
            response = _error(500, "Internal server error")
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    # ── error handlers -----------------------------------------------------------
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    # ── include routes -----------------------------------------------------------
    app.include_router(health_router)
    app.include_router(visits_router)
    app.include_router(console_router)

    # ── static front-end (mounted last so API routes win) -----------------------
    public = Path(public_dir) if public_dir else default_public_dir()
    if public.is_dir():
        app.mount("/", _CachedStaticFiles(directory=public, html=True), name="public")
    else:
        _logger.info("No static directory at %s; serving API only", public)

    return app


app = create_app()


def run() -> None:
    logging.basicConfig(
        level=env_str("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    port = env_int("PORT", DEFAULT_PORT)
    _logger.info("Visit logger listening on http://localhost:%s", port)
    # client address is resolved in telemetry (one proxy hop), not by uvicorn
    uvicorn.run(app, host=env_str("HOST", "0.0.0.0"), port=port, proxy_headers=False)


if __name__ == "__main__":
    run()
