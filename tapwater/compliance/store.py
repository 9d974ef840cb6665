"""Read-only access to the bundled SDWA violation/enforcement dataset."""

from __future__ import annotations

import sqlite3
import threading
from datetime import date
from pathlib import Path

from tapwater.common.constants import VIOLATION_PAGE_SIZE, VIOLATIONS_TABLE
from tapwater.common.errors import StoreUnavailable
from tapwater.common.models import ViolationRecord, ViolationStatus
from tapwater.common.time_utils import parse_iso_date

REQUIRED_COLUMNS = (
    "PWSID",
    "VIOLATION_DESC",
    "NON_COMPL_PER_BEGIN_DATE",
    "NON_COMPL_PER_END_DATE",
    "VIOLATION_STATUS",
    "IS_HEALTH_BASED_IND",
)

# 2 = open or unresolved health-based violation, 1 = any violation closed
# on or after the cutoff, 0 = neither.
_FLAG_SQL = f"""
SELECT
  CASE
    WHEN EXISTS(
      SELECT 1 FROM {VIOLATIONS_TABLE}
      WHERE PWSID = ?
        AND IS_HEALTH_BASED_IND = 'Y'
        AND (NON_COMPL_PER_END_DATE IS NULL
             OR NON_COMPL_PER_END_DATE = ''
             OR VIOLATION_STATUS IN ('Unaddressed', 'Addressed'))
    ) THEN 2
    WHEN EXISTS(
      SELECT 1 FROM {VIOLATIONS_TABLE}
      WHERE PWSID = ?
        AND DATE(NON_COMPL_PER_END_DATE) >= DATE(?)
    ) THEN 1
    ELSE 0
  END AS flag
"""

_LIST_SQL = f"""
SELECT VIOLATION_DESC, NON_COMPL_PER_BEGIN_DATE, NON_COMPL_PER_END_DATE,
       VIOLATION_STATUS, IS_HEALTH_BASED_IND
FROM {VIOLATIONS_TABLE}
WHERE PWSID = ?
ORDER BY NON_COMPL_PER_BEGIN_DATE DESC
LIMIT ?
"""


def _row_to_record(row: tuple) -> ViolationRecord:
    description, begin, end, status, health_flag = row
    try:
        period_start = parse_iso_date(begin)
        period_end = parse_iso_date(end)
    except ValueError as exc:
        raise StoreUnavailable(f"Malformed date in compliance dataset: {exc}") from exc
    return ViolationRecord(
        description=description or "",
        period_start=period_start,
        period_end=period_end,
        status=ViolationStatus(status or "Unknown"),
        is_health_based=health_flag == "Y",
    )


class ComplianceStore:
    """
    Read-only SQLite connection to the violation dataset.

    The dataset never changes for the lifetime of the process, so one
    connection is opened lazily under a lock and shared. ``check_same_thread``
    is off because queries run on worker threads; SQLite serialises access.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _open(self) -> sqlite3.Connection:
        if not self._path.is_file():
            raise StoreUnavailable(f"Compliance database not found at: {self._path}")
        try:
            conn = sqlite3.connect(f"file:{self._path}?mode=ro", uri=True, check_same_thread=False)
            conn.execute("PRAGMA query_only = ON")
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot open compliance database {self._path}: {exc}") from exc
        return conn

    def _connection(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is None:
                self._conn = self._open()
            return self._conn

    def _execute(self, sql: str, params: tuple = ()) -> list[tuple]:
        conn = self._connection()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            if not self._path.is_file():
                self.close()
            raise StoreUnavailable(f"Compliance query failed on {self._path}: {exc}") from exc

    def validate(self) -> None:
        """Raise StoreUnavailable unless the violations table has every expected column."""
        rows = self._execute(f"PRAGMA table_info({VIOLATIONS_TABLE})")
        if not rows:
            raise StoreUnavailable(f"Missing table {VIOLATIONS_TABLE} in {self._path}")
        missing = set(REQUIRED_COLUMNS) - {row[1] for row in rows}
        if missing:
            raise StoreUnavailable(
                f"Missing columns in {VIOLATIONS_TABLE}: {', '.join(sorted(missing))}"
            )

    def health_check(self) -> dict:
        status: dict = {"healthy": True, "path": str(self._path), "store": "ok"}
        try:
            self.validate()
        except StoreUnavailable as exc:
            status["healthy"] = False
            status["store"] = str(exc)
        return status

    def violation_flag(self, system_id: str, cutoff: date) -> int:
        rows = self._execute(_FLAG_SQL, (system_id, system_id, cutoff.isoformat()))
        if not rows or rows[0][0] is None:
            return 0
        return int(rows[0][0])

    def violations_for(self, system_id: str, limit: int = VIOLATION_PAGE_SIZE) -> list[ViolationRecord]:
        rows = self._execute(_LIST_SQL, (system_id, limit))
        return [_row_to_record(row) for row in rows]

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "ComplianceStore":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
