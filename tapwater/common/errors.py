"""Domain errors and failure typing."""


class ResolutionError(Exception):
    """Base class for resolution failures."""

    error_code = "RESOLUTION_ERROR"


class ConfigError(ResolutionError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class InvalidInput(ResolutionError):
    """Raised before any network call for malformed input."""

    error_code = "INVALID_INPUT"


class NotFound(ResolutionError):
    """The geocoder returned no address match."""

    error_code = "NOT_FOUND"


class NoUtilityFound(ResolutionError):
    """No water-system service area intersects the point."""

    error_code = "NO_UTILITY_FOUND"


class ServiceUnavailable(ResolutionError):
    """Transport failure, timeout or non-success status from an external service."""

    error_code = "SERVICE_UNAVAILABLE"


class InvalidResponse(ResolutionError):
    """An external service answered with an unexpected payload."""

    error_code = "INVALID_RESPONSE"


class StoreUnavailable(ResolutionError):
    """The compliance dataset cannot be opened or queried."""

    error_code = "STORE_UNAVAILABLE"


class ResolutionCancelled(ResolutionError):
    """The caller abandoned the resolution; never reported as a stage failure."""

    error_code = "CANCELLED"


STAGE_FAILURES = (
    InvalidInput,
    NotFound,
    NoUtilityFound,
    ServiceUnavailable,
    InvalidResponse,
    StoreUnavailable,
)
