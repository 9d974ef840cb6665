"""CRS conversion for points sent to spatial services."""

from __future__ import annotations

from functools import lru_cache

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from tapwater.common.errors import InvalidInput
from tapwater.common.models import Coordinates


@lru_cache(maxsize=16)
def _transformer(source_epsg: int, target_epsg: int) -> Transformer:
    return Transformer.from_crs(CRS.from_epsg(source_epsg), CRS.from_epsg(target_epsg), always_xy=True)


def to_crs(coords: Coordinates, target_epsg: int) -> Coordinates:
    if coords.epsg == target_epsg:
        return coords
    try:
        transformer = _transformer(coords.epsg, target_epsg)
        lon, lat = transformer.transform(coords.longitude, coords.latitude, errcheck=True)
    except (CRSError, ProjError) as exc:
        raise InvalidInput(f"Cannot convert EPSG:{coords.epsg} point to EPSG:{target_epsg}: {exc}") from exc
    return Coordinates(latitude=lat, longitude=lon, epsg=target_epsg)


def esri_point(coords: Coordinates) -> str:
    # ArcGIS point geometry is x,y order.
    return f"{coords.longitude},{coords.latitude}"
