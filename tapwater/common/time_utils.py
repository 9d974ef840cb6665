"""UTC-focused date helpers."""

from __future__ import annotations

from datetime import date, datetime, timezone


def utc_today() -> date:
    return datetime.now(tz=timezone.utc).date()


def parse_as_of(value: str | None) -> date:
    if not value:
        return utc_today()
    return date.fromisoformat(value)


def parse_iso_date(value: object) -> date | None:
    if value is None or value == "":
        return None
    return date.fromisoformat(str(value)[:10])


def years_before(as_of: date, years: int) -> date:
    """Same calendar day *years* earlier; 29 February falls back to the 28th."""
    try:
        return as_of.replace(year=as_of.year - years)
    except ValueError:
        return as_of.replace(year=as_of.year - years, day=28)


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")
