"""Data models used across the resolution pipeline."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Union

from tapwater.common.constants import WGS84_EPSG
from tapwater.common.errors import InvalidInput, ResolutionError


@dataclass(frozen=True)
class Coordinates:
    """Geographic point in degrees, expressed in the CRS named by ``epsg``."""

    latitude: float
    longitude: float
    epsg: int = WGS84_EPSG

    def __post_init__(self) -> None:
        if not -90 <= self.latitude <= 90:
            raise InvalidInput(f"Latitude out of range: {self.latitude}")
        if not -180 <= self.longitude <= 180:
            raise InvalidInput(f"Longitude out of range: {self.longitude}")

    @property
    def key(self) -> tuple[float, float, int]:
        return (self.latitude, self.longitude, self.epsg)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UtilityMatch:
    system_id: str
    name: str
    regulating_agency: str
    candidate_count: int = 1

    def __post_init__(self) -> None:
        if not self.system_id:
            raise ValueError("system_id must be non-empty")

    @property
    def ambiguous(self) -> bool:
        return self.candidate_count > 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ViolationStatus(str, enum.Enum):
    UNADDRESSED = "Unaddressed"
    ADDRESSED = "Addressed"
    RESOLVED = "Resolved"
    ARCHIVED = "Archived"
    UNKNOWN = "Unknown"

    @classmethod
    def _missing_(cls, value: object) -> "ViolationStatus":
        return cls.UNKNOWN

    @property
    def unresolved(self) -> bool:
        return self in (ViolationStatus.UNADDRESSED, ViolationStatus.ADDRESSED)


@dataclass(frozen=True)
class ViolationRecord:
    description: str
    period_start: date | None
    period_end: date | None
    status: ViolationStatus
    is_health_based: bool

    @property
    def is_open(self) -> bool:
        return self.period_end is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "status": self.status.value,
            "is_health_based": self.is_health_based,
        }


_TIER_TEXT = {
    0: (
        "Safe",
        "This water system currently has no health-based violations and meets EPA safety standards.",
    ),
    1: (
        "Caution",
        "This water system has had some violations in recent years but no current health-based violations.",
    ),
    2: (
        "Do Not Drink",
        "This water system currently has active health-based violations that may pose health risks.",
    ),
}


class SafetyTier(enum.IntEnum):
    GREEN = 0
    AMBER = 1
    RED = 2

    @property
    def verdict(self) -> str:
        return _TIER_TEXT[self.value][0]

    @property
    def summary(self) -> str:
        return _TIER_TEXT[self.value][1]


class Stage(str, enum.Enum):
    GEOCODER = "geocoder"
    SPATIAL_RESOLVER = "spatial_resolver"
    SAFETY_CLASSIFIER = "safety_classifier"


@dataclass(frozen=True)
class AddressQuery:
    text: str


@dataclass(frozen=True)
class CoordinateQuery:
    coordinates: Coordinates


LocationQuery = Union[AddressQuery, CoordinateQuery]


@dataclass(frozen=True)
class Loading:
    stage: Stage | None = None


@dataclass(frozen=True)
class Success:
    utility: UtilityMatch
    tier: SafetyTier
    coordinates: Coordinates | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "success",
            "utility": self.utility.to_dict(),
            "tier": self.tier.name,
            "verdict": self.tier.verdict,
            "summary": self.tier.summary,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
        }


@dataclass(frozen=True)
class Failure:
    stage: Stage
    error: ResolutionError

    @property
    def kind(self) -> str:
        return self.error.error_code

    @property
    def reason(self) -> str:
        return str(self.error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "failure",
            "stage": self.stage.value,
            "kind": self.kind,
            "reason": self.reason,
        }


PipelineResult = Union[Loading, Success, Failure]
