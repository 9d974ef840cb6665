"""Address geocoding against the Census one-line address service."""

from __future__ import annotations

import logging

from tapwater.common.cancellation import CancelToken
from tapwater.common.config_loader import GeocoderSettings
from tapwater.common.errors import InvalidInput, InvalidResponse, NotFound
from tapwater.common.http import HttpClient
from tapwater.common.logging import get_logger, log_event
from tapwater.common.models import Coordinates, Stage


def _first_match_coordinates(payload: dict) -> tuple[object, object] | None:
    result = payload.get("result")
    if not isinstance(result, dict):
        raise InvalidResponse("Geocoder payload has no 'result' object")
    matches = result.get("addressMatches")
    if matches is None:
        return None
    if not isinstance(matches, list):
        raise InvalidResponse("Geocoder 'addressMatches' is not a list")
    if not matches:
        return None
    first = matches[0]
    coordinates = first.get("coordinates") if isinstance(first, dict) else None
    if not isinstance(coordinates, dict):
        raise InvalidResponse("Geocoder match has no 'coordinates' object")
    return coordinates.get("x"), coordinates.get("y")


class CensusGeocoder:
    """Resolve one free-text address to the first matching coordinate pair."""

    def __init__(
        self,
        http_client: HttpClient,
        settings: GeocoderSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.http_client = http_client
        self.settings = settings or GeocoderSettings()
        self.logger = logger or get_logger("geocoder")

    def validate(self, address: str) -> str:
        if not isinstance(address, str):
            raise InvalidInput("Address must be a string")
        stripped = address.strip()
        if len(stripped) < self.settings.min_address_length:
            raise InvalidInput(
                f"Address too short: {len(stripped)} characters, "
                f"need at least {self.settings.min_address_length}"
            )
        return stripped

    def resolve_address(self, address: str, cancel_token: CancelToken | None = None) -> Coordinates:
        self.validate(address)
        payload = self.http_client.get_json(
            self.settings.base_url,
            params={
                "address": address,
                "benchmark": self.settings.benchmark,
                "format": "json",
            },
            cancel_token=cancel_token,
        )

        pair = _first_match_coordinates(payload)
        if pair is None:
            log_event(self.logger, "no address match", stage=Stage.GEOCODER.value, event="NOT_FOUND", status="miss")
            raise NotFound(f"No address match for '{address}'")

        x, y = pair
        try:
            lon = float(x)
            lat = float(y)
        except (TypeError, ValueError) as exc:
            raise InvalidResponse(f"Geocoder returned non-numeric coordinates: {pair!r}") from exc

        try:
            return Coordinates(latitude=lat, longitude=lon, epsg=self.settings.response_epsg)
        except InvalidInput as exc:
            raise InvalidResponse(f"Geocoder returned out-of-range coordinates: {exc}") from exc
