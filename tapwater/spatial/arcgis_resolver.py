"""Point-in-polygon lookup of the water system serving a location."""

from __future__ import annotations

import logging

from tapwater.common.cancellation import CancelToken
from tapwater.common.config_loader import SpatialSettings
from tapwater.common.errors import InvalidResponse, NoUtilityFound
from tapwater.common.geometry import esri_point, to_crs
from tapwater.common.http import HttpClient
from tapwater.common.logging import get_logger, log_event
from tapwater.common.models import Coordinates, Stage, UtilityMatch


def _text(attributes: dict, key: str) -> str:
    value = attributes.get(key)
    if value is None:
        return ""
    return str(value).strip()


def build_query_params(point: Coordinates, settings: SpatialSettings) -> dict[str, str]:
    return {
        "where": "1=1",
        "geometry": esri_point(point),
        "geometryType": "esriGeometryPoint",
        "inSR": str(settings.service_epsg),
        "spatialRel": "esriSpatialRelIntersects",
        "outFields": ",".join(settings.out_fields),
        "returnGeometry": "false",
        "f": "json",
    }


class ArcGisUtilityResolver:
    """
    Identify the public water system whose service area contains a point.

    Overlapping service areas are resolved by taking the first feature in the
    order the service returns them; the match records how many candidates
    there were and a warning event is logged when there is more than one.
    """

    def __init__(
        self,
        http_client: HttpClient,
        settings: SpatialSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.http_client = http_client
        self.settings = settings or SpatialSettings()
        self.logger = logger or get_logger("spatial")

    @property
    def query_url(self) -> str:
        return f"{self.settings.layer_url.rstrip('/')}/query"

    def resolve_utility(self, coords: Coordinates, cancel_token: CancelToken | None = None) -> UtilityMatch:
        point = to_crs(coords, self.settings.service_epsg)
        payload = self.http_client.get_json(
            self.query_url,
            params=build_query_params(point, self.settings),
            cancel_token=cancel_token,
        )

        if "error" in payload:
            raise InvalidResponse(f"ArcGIS query failed for {self.query_url}: {payload['error']}")

        features = payload.get("features")
        if features is None:
            raise InvalidResponse("ArcGIS payload has no 'features' list")
        if not isinstance(features, list):
            raise InvalidResponse("ArcGIS 'features' is not a list")
        if not features:
            raise NoUtilityFound(f"No water system service area contains {point.latitude},{point.longitude}")

        chosen = self._to_match(features[0], len(features))
        if len(features) > 1:
            others = [
                system_id
                for system_id in (self._candidate_id(feature) for feature in features[1:])
                if system_id
            ]
            log_event(
                self.logger,
                "multiple service areas intersect point; using first: "
                + ",".join([chosen.system_id, *others]),
                level=logging.WARNING,
                stage=Stage.SPATIAL_RESOLVER.value,
                event="AMBIGUOUS_SERVICE_AREA",
                status="warning",
                system_id=chosen.system_id,
                candidate_count=len(features),
            )
        return chosen

    def _candidate_id(self, feature: object) -> str:
        attributes = feature.get("attributes") if isinstance(feature, dict) else None
        if not isinstance(attributes, dict):
            return ""
        return _text(attributes, self.settings.out_fields[0])

    def _to_match(self, feature: object, candidate_count: int) -> UtilityMatch:
        attributes = feature.get("attributes") if isinstance(feature, dict) else None
        if not isinstance(attributes, dict):
            raise InvalidResponse("ArcGIS feature has no 'attributes' object")
        id_field, name_field, agency_field = self.settings.out_fields[:3]
        system_id = _text(attributes, id_field)
        if not system_id:
            raise InvalidResponse(f"ArcGIS feature is missing {id_field}")
        return UtilityMatch(
            system_id=system_id,
            name=_text(attributes, name_field),
            regulating_agency=_text(attributes, agency_field),
            candidate_count=candidate_count,
        )
