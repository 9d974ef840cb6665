"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tapwater.common import constants
from tapwater.common.errors import ConfigError
from tapwater.common.fs import read_yaml
from tapwater.common.http import RetryConfig, TimeoutConfig
from tapwater.common.schema import validate_services_config

SERVICES_FILENAME = "services.yml"


@dataclass(frozen=True)
class GeocoderSettings:
    base_url: str = constants.CENSUS_GEOCODER_URL
    benchmark: str = constants.CENSUS_BENCHMARK
    response_epsg: int = constants.CENSUS_RESPONSE_EPSG
    min_address_length: int = constants.MIN_ADDRESS_LENGTH


@dataclass(frozen=True)
class SpatialSettings:
    layer_url: str = constants.WATER_SYSTEM_LAYER_URL
    service_epsg: int = constants.WGS84_EPSG
    out_fields: tuple[str, ...] = constants.WATER_SYSTEM_OUT_FIELDS


@dataclass(frozen=True)
class CacheSettings:
    geocoder_ttl_seconds: float | None = 300.0
    spatial_ttl_seconds: float | None = None
    classifier_ttl_seconds: float | None = None


@dataclass(frozen=True)
class ComplianceSettings:
    lookback_years: int = constants.LOOKBACK_YEARS
    page_size: int = constants.VIOLATION_PAGE_SIZE


@dataclass(frozen=True)
class ServiceConfig:
    geocoder: GeocoderSettings = GeocoderSettings()
    spatial: SpatialSettings = SpatialSettings()
    timeout: TimeoutConfig = TimeoutConfig()
    retry: RetryConfig = RetryConfig()
    cache: CacheSettings = CacheSettings()
    compliance: ComplianceSettings = ComplianceSettings()


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    return _deep_merge(base, overlay)


def _optional_float(value: object) -> float | None:
    return None if value is None else float(value)


def build_service_config(cfg: dict) -> ServiceConfig:
    geocoder = cfg["geocoder"]
    spatial = cfg["spatial"]
    http = cfg["http"]
    cache = cfg["cache"]
    compliance = cfg["compliance"]
    return ServiceConfig(
        geocoder=GeocoderSettings(
            base_url=str(geocoder["base_url"]),
            benchmark=str(geocoder["benchmark"]),
            response_epsg=int(geocoder["response_epsg"]),
            min_address_length=int(geocoder["min_address_length"]),
        ),
        spatial=SpatialSettings(
            layer_url=str(spatial["layer_url"]).rstrip("/"),
            service_epsg=int(spatial["service_epsg"]),
            out_fields=tuple(str(field) for field in spatial["out_fields"]),
        ),
        timeout=TimeoutConfig(
            connect=float(http["timeout"]["connect"]),
            read=float(http["timeout"]["read"]),
        ),
        retry=RetryConfig(
            max_attempts=int(http["retry"]["max_attempts"]),
            multiplier=float(http["retry"]["multiplier"]),
            max_wait=float(http["retry"]["max_wait"]),
        ),
        cache=CacheSettings(
            geocoder_ttl_seconds=_optional_float(cache["geocoder_ttl_seconds"]),
            spatial_ttl_seconds=_optional_float(cache["spatial_ttl_seconds"]),
            classifier_ttl_seconds=_optional_float(cache["classifier_ttl_seconds"]),
        ),
        compliance=ComplianceSettings(
            lookback_years=int(compliance["lookback_years"]),
            page_size=int(compliance["page_size"]),
        ),
    )


def load_service_config(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ServiceConfig:
    overlay_path = None
    if overlay_config_dir is not None:
        overlay_path = overlay_config_dir / SERVICES_FILENAME
    cfg = _load_yaml_with_overlay(config_dir / SERVICES_FILENAME, overlay_path)
    return build_service_config(validate_services_config(cfg, allow_unknown=allow_unknown))
