"""GeoJSON in and out: upstream parcel features to Parcels, holdings to features."""

import logging
from typing import Any, Dict, List, Optional, Union

from ..models.schemas import AggregationResult, Parcel
from .geometry_utils import SQ_METERS_PER_ACRE, reduce_coordinate_precision

logger = logging.getLogger(__name__)

_OWNER_FALLBACKS = ("DEEDHOLDER", "deed_holder", "owner", "OWNER", "ownername")
_ID_FALLBACKS = ("PARCELNUMB", "parcelnumb", "STATEPARID", "apn", "pin", "id")


def _lookup(props: Dict[str, Any], preferred: str, fallbacks) -> Any:
    """First non-empty value for ``preferred`` then ``fallbacks``.

    Regrid-style payloads nest attributes under ``properties.fields``.
    """
    fields = props.get("fields") or {}
    for name in (preferred, *fallbacks):
        for source in (props, fields):
            value = source.get(name)
            if value not in (None, ""):
                return value
    return None


def _area_hint(props: Dict[str, Any]) -> Optional[float]:
    acres = _lookup(props, "ACRES", ("acres", "gisacre", "ll_gisacre"))
    if acres is not None:
        try:
            return max(float(acres), 0.0)
        except (TypeError, ValueError):
            return None
    area_sqm = _lookup(props, "area_sqm", ("AREA_SQM",))
    if area_sqm is not None:
        try:
            return max(float(area_sqm), 0.0) / SQ_METERS_PER_ACRE
        except (TypeError, ValueError):
            return None
    return None


def _outer_rings(geometry: Optional[Dict[str, Any]]) -> List[Any]:
    """Exterior ring of each polygon part; [None] when there is nothing usable."""
    if not geometry:
        return [None]
    geom_type = geometry.get("type")
    coords = geometry.get("coordinates") or []
    if geom_type == "Polygon":
        return [coords[0] if coords else None]
    if geom_type == "MultiPolygon":
        rings = [part[0] if part else None for part in coords]
        return rings or [None]
    return [None]


def parcels_from_features(
    features: Union[Dict[str, Any], List[Dict[str, Any]]],
    owner_field: str = "DEEDHOLDER",
    id_field: str = "PARCELNUMB",
) -> List[Parcel]:
    """
    Convert upstream parcel features into Parcels.

    Args:
        features: FeatureCollection dict or list of Feature dicts
        owner_field: Property holding the deed holder
        id_field: Property holding the parcel number

    Returns:
        One Parcel per Polygon feature, one per part (``"<id>:<n>"``) for
        MultiPolygon features. Features without geometry still produce a
        Parcel (with no ring) so the pipeline can report them.
    """
    if isinstance(features, dict):
        features = features.get("features") or []

    parcels: List[Parcel] = []
    for position, feature in enumerate(features):
        props = feature.get("properties") or {}
        parcel_id = _lookup(props, id_field, _ID_FALLBACKS)
        if parcel_id is None:
            parcel_id = feature.get("id", f"feature-{position}")
        owner = _lookup(props, owner_field, _OWNER_FALLBACKS)
        hint = _area_hint(props)

        rings = _outer_rings(feature.get("geometry"))
        if len(rings) == 1:
            parcels.append(
                Parcel(id=parcel_id, owner_raw=owner, ring=rings[0], area_hint_acres=hint)
            )
            continue

        # Per-feature acreage cannot be split across parts
        for n, ring in enumerate(rings, start=1):
            parcels.append(Parcel(id=f"{parcel_id}:{n}", owner_raw=owner, ring=ring))

    logger.debug(f"Converted {len(features)} features into {len(parcels)} parcels")
    return parcels


def build_feature_collection(
    result: AggregationResult, precision: Optional[int] = None
) -> Dict[str, Any]:
    """
    Render an aggregation result as a GeoJSON FeatureCollection.

    Args:
        result: Pipeline output
        precision: Round coordinates to this many decimals (None keeps them)

    Returns:
        FeatureCollection with one feature per holding plus run metadata
    """
    features = []
    for holding in result.holdings:
        feature = holding.to_feature()
        if precision is not None and feature["geometry"] is not None:
            feature["geometry"] = reduce_coordinate_precision(feature["geometry"], precision)
        features.append(feature)

    return {
        "type": "FeatureCollection",
        "features": features,
        "metadata": {
            "truncated": result.truncated,
            "parcels_in": result.parcels_in,
            "invalid_parcels": result.invalid_parcels,
            "holdings": len(result.holdings),
        },
    }
