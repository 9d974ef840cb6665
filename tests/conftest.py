"""Shared fixtures: a small violations database and fake HTTP services."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Callable

import pytest

SPRINGFIELD_PWSID = "IL1234567"


def census_payload(matches: list[tuple[float, float]]) -> dict:
    return {
        "result": {
            "input": {"benchmark": {"benchmarkName": "Public_AR_Current"}},
            "addressMatches": [
                {"matchedAddress": "123 MAIN ST, SPRINGFIELD, IL, 62701", "coordinates": {"x": lon, "y": lat}}
                for lat, lon in matches
            ],
        }
    }


def arcgis_payload(systems: list[tuple[str, str, str]]) -> dict:
    return {
        "objectIdFieldName": "OBJECTID",
        "features": [
            {"attributes": {"PWSID": pwsid, "PWS_Name": name, "Primacy_Agency": agency}}
            for pwsid, name, agency in systems
        ],
    }


class FakeHttpClient:
    """Answers get_json from per-URL-fragment payloads and records every call."""

    def __init__(self, routes: dict[str, object] | None = None):
        self.routes = dict(routes or {})
        self.calls: list[tuple[str, dict]] = []

    def get_json(self, url: str, **kwargs):
        self.calls.append((url, kwargs))
        token = kwargs.get("cancel_token")
        if token is not None:
            token.raise_if_cancelled()
        for fragment, answer in self.routes.items():
            if fragment in url:
                if isinstance(answer, Exception):
                    raise answer
                if callable(answer):
                    return answer(url, **kwargs)
                return answer
        raise AssertionError(f"unexpected url {url}")

    def calls_to(self, fragment: str) -> list[tuple[str, dict]]:
        return [call for call in self.calls if fragment in call[0]]

    def close(self):
        return None


def write_violations_db(path: Path, rows: list[tuple]) -> Path:
    conn = sqlite3.connect(str(path))
    conn.execute(
        """
        CREATE TABLE SDWA_VIOLATIONS_ENFORCEMENT (
            PWSID TEXT,
            VIOLATION_DESC TEXT,
            NON_COMPL_PER_BEGIN_DATE TEXT,
            NON_COMPL_PER_END_DATE TEXT,
            VIOLATION_STATUS TEXT,
            IS_HEALTH_BASED_IND TEXT
        )
        """
    )
    conn.execute("CREATE INDEX idx_violations_pwsid ON SDWA_VIOLATIONS_ENFORCEMENT (PWSID)")
    conn.executemany("INSERT INTO SDWA_VIOLATIONS_ENFORCEMENT VALUES (?, ?, ?, ?, ?, ?)", rows)
    conn.commit()
    conn.close()
    return path


@pytest.fixture()
def make_violations_db(tmp_path: Path) -> Callable[[list[tuple]], Path]:
    counter = iter(range(1000))

    def _make(rows: list[tuple]) -> Path:
        return write_violations_db(tmp_path / f"violations_{next(counter)}.db", rows)

    return _make


@pytest.fixture()
def sample_db(make_violations_db) -> Path:
    return make_violations_db(
        [
            ("IL1234567", "Nitrate MCL", "2026-01-01", None, "Unaddressed", "Y"),
            ("IL1234567", "Monitoring, routine major", "2020-04-01", "2020-06-30", "Resolved", "N"),
            ("IL7654321", "Consumer confidence report", "2024-01-01", "2024-09-30", "Resolved", "N"),
            ("IL7654321", "Coliform TT", "2015-01-01", "2015-03-31", "Resolved", "Y"),
            ("IL0000001", "Lead consumer notice", "2010-01-01", "2010-12-31", "Archived", "N"),
        ]
    )
