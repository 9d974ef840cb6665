"""Three-tier safety classification over a utility's violation history."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Protocol

from tapwater.common.constants import LOOKBACK_YEARS
from tapwater.common.models import SafetyTier, ViolationRecord
from tapwater.common.time_utils import utc_today, years_before


class ViolationFlagSource(Protocol):
    def violation_flag(self, system_id: str, cutoff: date) -> int: ...


def lookback_cutoff(as_of: date, years: int = LOOKBACK_YEARS) -> date:
    return years_before(as_of, years)


def is_red(record: ViolationRecord) -> bool:
    return record.is_health_based and (record.is_open or record.status.unresolved)


def is_recent(record: ViolationRecord, cutoff: date) -> bool:
    return record.period_end is not None and record.period_end >= cutoff


def tier_for_records(
    records: Iterable[ViolationRecord],
    as_of: date,
    lookback_years: int = LOOKBACK_YEARS,
) -> SafetyTier:
    """
    Evaluate the tier rules over already materialised records.

    Rules apply in strict priority order: an open or unresolved health-based
    violation is RED; otherwise any violation closed within the lookback
    window (boundary inclusive) is AMBER; anything else, including no
    records at all, is GREEN.
    """
    records = list(records)
    if any(is_red(record) for record in records):
        return SafetyTier.RED
    cutoff = lookback_cutoff(as_of, lookback_years)
    if any(is_recent(record, cutoff) for record in records):
        return SafetyTier.AMBER
    return SafetyTier.GREEN


def triggering_records(
    records: Iterable[ViolationRecord],
    tier: SafetyTier,
    as_of: date,
    lookback_years: int = LOOKBACK_YEARS,
) -> list[ViolationRecord]:
    if tier is SafetyTier.RED:
        return [record for record in records if is_red(record)]
    if tier is SafetyTier.AMBER:
        cutoff = lookback_cutoff(as_of, lookback_years)
        return [record for record in records if is_recent(record, cutoff)]
    return []


class SafetyClassifier:
    def __init__(self, store: ViolationFlagSource, lookback_years: int = LOOKBACK_YEARS) -> None:
        self.store = store
        self.lookback_years = lookback_years

    def classify(self, system_id: str, as_of: date | None = None) -> SafetyTier:
        as_of = as_of or utc_today()
        if not system_id:
            # No system to look up has no records either.
            return SafetyTier.GREEN
        flag = self.store.violation_flag(system_id, lookback_cutoff(as_of, self.lookback_years))
        return SafetyTier(max(0, min(flag, SafetyTier.RED.value)))
