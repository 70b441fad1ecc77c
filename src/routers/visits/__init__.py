# ── src/routers/visits/__init__.py ────────────────────────────────────
"""
Visit sub-router.

    POST /api/visit            → append one visit to the TSV log
    GET  /api/visits/latest    → last 100 visits (oldest → newest)
    GET  /api/visits/count     → number of stored visits
    GET  /api/visits/console   → HTML table of the latest visits

All handlers reach the log through `get_visit_store`, which returns the
`VisitStore` the application placed on `app.state`.
"""
from .endpoints import router, get_visit_store  # re-export for `include_router`
from .html_console_endpoint import router as console_router
from .store import VisitRecord, VisitStore
