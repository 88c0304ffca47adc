"""Geometry helpers and GeoJSON adapters for holdings display."""

from .geometry_utils import (
    LocalProjection,
    area_acres,
    build_polygon,
    geodesic_area_m2,
    reduce_coordinate_precision,
)
from .feature_builder import build_feature_collection, parcels_from_features

__all__ = [
    "LocalProjection",
    "area_acres",
    "build_polygon",
    "geodesic_area_m2",
    "reduce_coordinate_precision",
    "build_feature_collection",
    "parcels_from_features",
]
