# src/telemetry.py
"""
Visit telemetry helper utilities.

Collects, per request:
- Client IP (one trusted reverse-proxy hop: right-most X-Forwarded-For entry,
  otherwise the connection peer)
- Client timezone from the JSON body the front-end posts
- Raw User-Agent header

Every value goes through `sanitize()` before it reaches the visit log, so no
field can carry the tab/newline characters that delimit the log's columns/rows.

Environment helpers (`env_str`, `env_int`) are shared by `main.py`.

Public API:
- sanitize(value, fallback="unknown", max_length=160) -> str
- build_visit_context(request, body) -> dict
"""

from __future__ import annotations

import os as _os
import re as _re
from typing import Any, Dict, Optional

# ───────────────────────── field policies ─────────────────────────

FALLBACK = "unknown"

IP_MAX_LENGTH         = 160
TIMEZONE_MAX_LENGTH   = 80
USER_AGENT_MAX_LENGTH = 200

_CONTROL_CHARS = _re.compile(r"[\r\n\t]")


# ───────────────────────── env helpers ─────────────────────────

def env_str(name: str, default: str = "") -> str:
    return (_os.getenv(name) or "").strip() or default


def env_int(name: str, default: int) -> int:
    """Positive integer from the environment; anything else yields `default`."""
    raw = env_str(name)
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


# ───────────────────────── sanitizing ─────────────────────────

def sanitize(value: Any, fallback: str = FALLBACK, max_length: int = IP_MAX_LENGTH) -> str:
    """
    Make an untrusted value safe to store as one TSV column.

    - non-string input → fallback
    - each CR / LF / TAB becomes a single space
    - truncated to max_length (after the replacement)
    - empty result → fallback
    """
    if not isinstance(value, str):
        return fallback
    cleaned = _CONTROL_CHARS.sub(" ", value)[:max_length]
    return cleaned or fallback


# ───────────────────────── request helpers ─────────────────────────

def _extract_client_ip(request) -> Optional[str]:
    """
    Resolve the client address trusting exactly one proxy hop.

    XFF format: "client, proxy1, proxy2" – the hop directly in front of us
    appends the address it saw last, so that is the only entry we believe.
    """
    xff = request.headers.get("X-Forwarded-For", "")
    hops = [p.strip() for p in xff.split(",") if p.strip()]
    if hops:
        return hops[-1]

    return getattr(getattr(request, "client", None), "host", None)


def _extract_client_timezone(body: Any) -> Any:
    # Browser-provided IANA tz posted by the front-end; any JSON type may arrive
    if isinstance(body, dict):
        return body.get("timezone")
    return None


def _extract_user_agent(request) -> Optional[str]:
    return request.headers.get("User-Agent")


# ───────────────────────── public builder ─────────────────────────

def build_visit_context(request, body: Any) -> Dict[str, str]:
    """
    Build the sanitized `ip` / `timezone` / `userAgent` triple for one visit.

    Never raises; each field falls back independently to "unknown".
    """
    return {
        "ip":        sanitize(_extract_client_ip(request), FALLBACK, IP_MAX_LENGTH),
        "timezone":  sanitize(_extract_client_timezone(body), FALLBACK, TIMEZONE_MAX_LENGTH),
        "userAgent": sanitize(_extract_user_agent(request), FALLBACK, USER_AGENT_MAX_LENGTH),
    }
