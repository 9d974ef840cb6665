"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from tapwater.common.errors import ConfigError

_SECTIONS = {
    "geocoder": {"base_url", "benchmark", "response_epsg", "min_address_length"},
    "spatial": {"layer_url", "service_epsg", "out_fields"},
    "http": {"timeout", "retry"},
    "cache": {"geocoder_ttl_seconds", "spatial_ttl_seconds", "classifier_ttl_seconds"},
    "compliance": {"lookback_years", "page_size"},
}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive(value: object, ctx: str, *, allow_none: bool = False) -> None:
    if value is None and allow_none:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive number, got {value!r}")


def validate_services_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    if not isinstance(cfg, dict):
        raise ConfigError("services config must be a mapping")
    _assert_required_keys(cfg, set(_SECTIONS), "services config")
    _assert_no_unknown_keys(cfg, set(_SECTIONS), "services config", allow_unknown)

    for section, keys in _SECTIONS.items():
        if not isinstance(cfg[section], dict):
            raise ConfigError(f"{section} must be a mapping")
        _assert_required_keys(cfg[section], keys, section)
        _assert_no_unknown_keys(cfg[section], keys, section, allow_unknown)

    _assert_required_keys(cfg["http"]["timeout"], {"connect", "read"}, "http.timeout")
    _assert_required_keys(cfg["http"]["retry"], {"max_attempts", "multiplier", "max_wait"}, "http.retry")
    _assert_positive(cfg["http"]["timeout"]["connect"], "http.timeout.connect")
    _assert_positive(cfg["http"]["timeout"]["read"], "http.timeout.read")
    _assert_positive(cfg["http"]["retry"]["max_attempts"], "http.retry.max_attempts")

    for key in _SECTIONS["cache"]:
        _assert_positive(cfg["cache"][key], f"cache.{key}", allow_none=True)

    _assert_positive(cfg["geocoder"]["min_address_length"], "geocoder.min_address_length")
    _assert_positive(cfg["compliance"]["lookback_years"], "compliance.lookback_years")
    _assert_positive(cfg["compliance"]["page_size"], "compliance.page_size")

    out_fields = cfg["spatial"]["out_fields"]
    # Read as system id, name, regulating agency.
    if not isinstance(out_fields, list) or len(out_fields) < 3:
        raise ConfigError("spatial.out_fields must list the id, name and agency fields")

    return cfg
