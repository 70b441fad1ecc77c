# ── src/routers/visits/html_console_endpoint.py ──────────────────────
"""
Browser-friendly console for the visit log.

•  /api/visits/console   → table of the latest visits, newest on top
"""
import html

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from .endpoints import MAX_RETURNED_RECORDS, get_visit_store
from .store import VisitStore

# ── Router -------------------------------------------------------------
router = APIRouter()

# ── Helpers ------------------------------------------------------------
_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
body {{ font: 14px/1.4 system-ui, sans-serif; margin: 1.5rem 2rem; background: #0b1026; color: #e0e7ff; }}
table {{ border-collapse: collapse; width: 100%; }}
th, td {{ padding: .35rem .6rem; border-bottom: 1px solid #334155; text-align: left; vertical-align: top; }}
th {{ color: #a5b4fc; }}
td.ua {{ font-size: .8rem; color: #94a3b8; word-break: break-all; }}
</style>
</head>
<body>
{body}
</body>
</html>
"""


def _html_page(title: str, body: str) -> str:
    return _PAGE.format(title=html.escape(title), body=body)

# ── Routes -------------------------------------------------------------
@router.get("/api/visits/console", include_in_schema=False,
            response_class=HTMLResponse)
def visit_console(store: VisitStore = Depends(get_visit_store)):
    """Render the latest visits (same window as /api/visits/latest)."""
    records = store.read_tail(MAX_RETURNED_RECORDS)

    if not records:
        return _html_page("Visit Console – no visits", "<h2>No visits recorded yet</h2>")

    rows = []
    for r in reversed(records):
        rows.append(f"""
        <tr>
            <td>{html.escape(r.timestamp)}</td>
            <td>{html.escape(r.ip)}</td>
            <td>{html.escape(r.timezone)}</td>
            <td class="ua">{html.escape(r.user_agent)}</td>
        </tr>""")

    body = f"""
    <h2>Latest visits <small>({len(records)} shown, {store.count()} total)</small></h2>
    <table>
        <thead>
            <tr>
                <th>Timestamp (UTC)</th>
                <th>IP</th>
                <th>Timezone</th>
                <th>User-Agent</th>
            </tr>
        </thead>
        <tbody>
            {''.join(rows)}
        </tbody>
    </table>
    """
    return _html_page("Visit Console", body)
