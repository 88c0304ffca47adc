# src/parcel_holdings/models/schemas.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional, Union

from ..utils.owner import normalize_owner

ParcelId = Union[int, str]


class Parcel(BaseModel):
    """One cadastral parcel from the upstream snapshot.

    The ring is stored exactly as supplied. It is validated by the pipeline,
    not here, so a broken upstream ring never fails construction.
    """

    model_config = ConfigDict(frozen=True)

    id: ParcelId
    owner_raw: Optional[str] = None
    ring: Optional[List[Any]] = None  # [[lon, lat], ...], first == last
    area_hint_acres: Optional[float] = Field(default=None, ge=0)

    @field_validator("owner_raw", mode="before")
    @classmethod
    def coerce_owner(cls, v):
        """Upstream sometimes sends numeric owner ids; keep them as text."""
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @property
    def owner_key(self) -> str:
        return normalize_owner(self.owner_raw)


class AggregatedHolding(BaseModel):
    """All of one owner's spatially connected parcels, merged for display."""

    model_config = ConfigDict(frozen=True)

    owner_key: str
    parcel_ids: List[ParcelId]
    parcel_count: int = Field(ge=1)
    total_acres: float = Field(ge=0)
    combined: bool = False
    degraded: bool = False  # union failed; geometry is the unmerged rings
    excluded: bool = False  # ring unusable; never clustered or merged
    geometry: Optional[Dict[str, Any]] = None  # GeoJSON Polygon / MultiPolygon
    consistency_warning: Optional[str] = None

    def feature_properties(self) -> Dict[str, Any]:
        """Scalar fields in the property names the map layer reads."""
        return {
            "OWNER": self.owner_key,
            "PARCEL_COUNT": self.parcel_count,
            "TOTAL_ACRES": round(self.total_acres, 2),
            "COMBINED": self.combined,
            "DEGRADED": self.degraded,
            "EXCLUDED": self.excluded,
            "ORIGINAL_PARCELS": ", ".join(str(pid) for pid in self.parcel_ids),
        }

    def to_feature(self) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": self.geometry,
            "properties": self.feature_properties(),
        }


class AggregationResult(BaseModel):
    holdings: List[AggregatedHolding] = []
    truncated: bool = False  # budget or cancellation cut the run short

    # Run metadata
    parcels_in: int = 0
    invalid_parcels: int = 0
    owner_groups: int = 0
    runtime_ms: Optional[float] = None
