# src/parcel_holdings/__init__.py
from .config.settings import HoldingsSettings, get_settings
from .models.schemas import AggregatedHolding, AggregationResult, Parcel
from .orchestrator.aggregation_pipeline import (
    AggregationPipeline,
    CancellationToken,
    aggregate,
)
from .mapping.feature_builder import build_feature_collection, parcels_from_features
from .utils.owner import UNKNOWN_OWNER, normalize_owner

__all__ = [
    "aggregate",
    "AggregationPipeline",
    "CancellationToken",
    "Parcel",
    "AggregatedHolding",
    "AggregationResult",
    "HoldingsSettings",
    "get_settings",
    "build_feature_collection",
    "parcels_from_features",
    "normalize_owner",
    "UNKNOWN_OWNER",
]
