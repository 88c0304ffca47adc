"""Geometry helpers: ring validation, local metric projection and geodesic area."""

import math
from typing import Any, Dict, Iterable, List, Sequence, Tuple

import shapely
from pyproj import CRS, Geod, Transformer
from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

from ..exceptions import InvalidGeometryError


SQ_METERS_PER_ACRE = 4046.86
MIN_RING_POINTS = 4

_GEOD = Geod(ellps="WGS84")

Coordinate = Tuple[float, float]


def _as_coordinate(position: Any) -> Coordinate:
    if not isinstance(position, (list, tuple)) or len(position) < 2:
        raise ValueError(f"position {position!r} is not a [lon, lat] pair")
    lon, lat = position[0], position[1]
    for value in (lon, lat):
        if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"position {position!r} has a non-numeric coordinate")
        if not math.isfinite(value):
            raise ValueError(f"position {position!r} has a non-finite coordinate")
    return (float(lon), float(lat))


def clean_ring(ring: Any) -> List[Coordinate]:
    """
    Check a raw ring and return it as (lon, lat) tuples.

    Raises:
        ValueError: If the ring is missing, too short or has unusable positions
    """
    if not ring or not isinstance(ring, (list, tuple)):
        raise ValueError("ring is empty")
    if len(ring) < MIN_RING_POINTS:
        raise ValueError(f"ring has {len(ring)} points, need at least {MIN_RING_POINTS}")
    return [_as_coordinate(p) for p in ring]


def build_polygon(parcel_id: Any, ring: Any) -> Polygon:
    """
    Construct a shapely polygon from a parcel ring.

    Self-intersecting rings are returned as-is (``is_valid`` is False); only
    rings that cannot form a polygon with area are rejected.

    Raises:
        InvalidGeometryError: If the ring cannot form a polygon
    """
    try:
        coords = clean_ring(ring)
        polygon = Polygon(coords)
    except (ValueError, TypeError, GEOSException) as e:
        raise InvalidGeometryError(parcel_id, str(e)) from e

    if polygon.is_empty or polygon.area == 0:
        raise InvalidGeometryError(parcel_id, "ring encloses no area")
    return polygon


def combined_bounds(geometries: Iterable[BaseGeometry]) -> Tuple[float, float, float, float]:
    """
    Bounding box over shapely geometries.

    Returns:
        (min_lon, min_lat, max_lon, max_lat)
    """
    min_lon = min_lat = float("inf")
    max_lon = max_lat = float("-inf")
    for geom in geometries:
        x0, y0, x1, y1 = geom.bounds
        min_lon, min_lat = min(min_lon, x0), min(min_lat, y0)
        max_lon, max_lat = max(max_lon, x1), max(max_lat, y1)

    if min_lon == float("inf"):
        return (0.0, 0.0, 0.0, 0.0)
    return (min_lon, min_lat, max_lon, max_lat)


class LocalProjection:
    """
    Azimuthal equidistant projection centred on a group of parcels.

    Distances from the centre are true meters. One instance per owner-group
    task; the underlying pyproj transformer must not be shared between threads.
    """

    def __init__(self, center_lon: float, center_lat: float):
        self.center_lon = center_lon
        self.center_lat = center_lat
        local_crs = CRS.from_dict(
            {
                "proj": "aeqd",
                "lat_0": center_lat,
                "lon_0": center_lon,
                "datum": "WGS84",
                "units": "m",
            }
        )
        self._transformer = Transformer.from_crs("EPSG:4326", local_crs, always_xy=True)

    @classmethod
    def for_geometries(cls, geometries: Sequence[BaseGeometry]) -> "LocalProjection":
        min_lon, min_lat, max_lon, max_lat = combined_bounds(geometries)
        return cls((min_lon + max_lon) / 2, (min_lat + max_lat) / 2)

    def to_meters(self, geom: BaseGeometry) -> BaseGeometry:
        return shapely.transform(geom, self._transformer.transform, interleaved=False)


def geodesic_area_m2(geom: BaseGeometry) -> float:
    """Area on the WGS84 ellipsoid in square meters.

    Each part is oriented counter-clockwise first so that multi-part
    geometries never cancel out.
    """
    if geom.is_empty:
        return 0.0
    if isinstance(geom, Polygon):
        parts = [geom]
    elif isinstance(geom, MultiPolygon):
        parts = list(geom.geoms)
    else:
        raise ValueError(f"Unsupported geometry type: {geom.geom_type}")

    total = 0.0
    for part in parts:
        area, _ = _GEOD.geometry_area_perimeter(orient(part, sign=1.0))
        total += abs(area)
    return total


def area_acres(geom: BaseGeometry, sq_meters_per_acre: float = SQ_METERS_PER_ACRE) -> float:
    return geodesic_area_m2(geom) / sq_meters_per_acre


def ring_to_geojson(ring: Sequence[Any]) -> Dict[str, Any]:
    """GeoJSON Polygon holding one ring, positions untouched."""
    return {"type": "Polygon", "coordinates": [[list(p) for p in ring]]}


def rings_to_multipolygon(rings: Sequence[Sequence[Any]]) -> Dict[str, Any]:
    """GeoJSON MultiPolygon whose parts are exactly the given rings."""
    return {
        "type": "MultiPolygon",
        "coordinates": [[[list(p) for p in ring]] for ring in rings],
    }


def reduce_coordinate_precision(
    geojson: Dict[str, Any], precision: int = 6
) -> Dict[str, Any]:
    """
    Reduce coordinate precision to shrink feature payloads.

    Args:
        geojson: GeoJSON geometry object
        precision: Decimal places to keep (6 = ~0.1m accuracy)

    Returns:
        GeoJSON with reduced precision coordinates
    """

    def round_coords(coords):
        if isinstance(coords[0], (list, tuple)):
            return [round_coords(c) for c in coords]
        return [round(coords[0], precision), round(coords[1], precision)]

    result = geojson.copy()
    result["coordinates"] = round_coords(geojson["coordinates"])
    return result
