# ── src/routers/visits/store.py ───────────────────────────────────────
"""
Append-only visit log kept as a tab-separated text file.

    timestamp<TAB>ip<TAB>timezone<TAB>userAgent      ← fixed header
    2024-01-01T00:00:00.000Z<TAB>203.0.113.5<TAB>America/New_York<TAB>Mozilla/5.0 …

One `VisitStore` owns one file path. The application creates it once and
hands it to the handlers through `get_visit_store`; nothing here reads a
module-level path, so tests simply point a store at `tmp_path`.
"""
from __future__ import annotations

import datetime as _dt
import logging
import threading
from collections import deque
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

_logger = logging.getLogger(__name__)

FIELDS     = ("timestamp", "ip", "timezone", "userAgent")
HEADER     = "\t".join(FIELDS) + "\n"
LOG_NAME   = "visits.log"

# ── Pydantic model ------------------------------------------------------
class VisitRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    timestamp:  str = Field(..., description="ISO-8601 UTC, server generated")
    ip:         str = Field(..., description="Sanitized client address")
    timezone:   str = Field(..., description="Sanitized client timezone")
    user_agent: str = Field(..., alias="userAgent", description="Sanitized User-Agent")

    def to_line(self) -> str:
        return "\t".join((self.timestamp, self.ip, self.timezone, self.user_agent)) + "\n"

    @classmethod
    def from_line(cls, line: str) -> Optional["VisitRecord"]:
        """Parse one data line; None when it does not carry exactly four columns."""
        parts = line.split("\t")
        if len(parts) != len(FIELDS):
            return None
        return cls(**dict(zip(FIELDS, parts)))


def utc_timestamp() -> str:
    """`2024-01-01T00:00:00.000Z` – millisecond precision, Z suffix."""
    now = _dt.datetime.now(_dt.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Store ---------------------------------------------------------------
class VisitStore:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._write_lock = threading.Lock()

    def initialize(self) -> None:
        """Create the directory and a header-only log if missing. Errors propagate."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            with self.path.open("w", encoding="utf-8", newline="\n") as fh:
                fh.write(HEADER)
            _logger.info("Created visit log at %s", self.path)

    def append(self, record: VisitRecord) -> str:
        line = record.to_line()
        with self._write_lock:
            with self.path.open("a", encoding="utf-8", newline="\n") as fh:
                fh.write(line)
        return record.timestamp

    def read_tail(self, max_records: int) -> List[VisitRecord]:
        if max_records < 1:
            raise ValueError("max_records must be a positive integer")
        return list(deque(self._records(), maxlen=max_records))

    def count(self) -> int:
        return sum(1 for _ in self._records())

    # ── helpers -------------------------------------------------------
    def _data_lines(self):
        """(line number, text) of every non-empty line below the header."""
        try:
            # a torn multi-byte character must not poison every later read
            with self.path.open(encoding="utf-8", errors="replace", newline="") as fh:
                contents = fh.read()
        except FileNotFoundError:
            return []
        # first line is the header, whatever it holds
        return [
            (lineno, line)
            for lineno, line in enumerate(contents.split("\n")[1:], start=2)
            if line
        ]

    def _records(self):
        for lineno, line in self._data_lines():
            record = VisitRecord.from_line(line)
            if record is None:
                _logger.warning("Skipping malformed line %s in %s", lineno, self.path)
                continue
            yield record
