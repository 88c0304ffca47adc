# src/parcel_holdings/services/holding_builder.py
"""
Holding Record Builder

Turns a cluster's parcels and its merge result into the AggregatedHolding the
map layer draws. Acreage comes from the merged geometry's geodesic area; the
sum of per-parcel acreage is only a cross-check, because overlapping or
gappy parcels make that sum drift from the real footprint.
"""

import logging
from typing import Optional, Sequence

from ..clustering.merger import Degraded, MergeResult
from ..config.settings import get_settings
from ..exceptions import InvalidGeometryError
from ..mapping.geometry_utils import area_acres, build_polygon, clean_ring, ring_to_geojson
from ..models.schemas import AggregatedHolding, Parcel

logger = logging.getLogger(__name__)


class HoldingBuilder:
    """Derive parcel count, combined flag and acreage for one cluster."""

    def __init__(
        self,
        sq_meters_per_acre: Optional[float] = None,
        mismatch_ratio: Optional[float] = None,
    ):
        """
        Args:
            sq_meters_per_acre: Area conversion (defaults to settings)
            mismatch_ratio: Relative merged-vs-summed difference that is reported
        """
        settings = get_settings()
        self.sq_meters_per_acre = sq_meters_per_acre or settings.SQ_METERS_PER_ACRE
        self.mismatch_ratio = (
            settings.ACREAGE_MISMATCH_RATIO if mismatch_ratio is None else mismatch_ratio
        )

    def parcel_acres(self, parcel: Parcel) -> float:
        """Independently reported acreage, or the ring's own area."""
        if parcel.area_hint_acres is not None:
            return parcel.area_hint_acres
        try:
            return area_acres(build_polygon(parcel.id, parcel.ring), self.sq_meters_per_acre)
        except InvalidGeometryError:
            return 0.0

    def _consistency_warning(
        self, owner_key: str, total_acres: float, summed_acres: float
    ) -> Optional[str]:
        if summed_acres <= 0:
            return None
        drift = abs(total_acres - summed_acres) / summed_acres
        if drift <= self.mismatch_ratio:
            return None
        message = (
            f"Merged area {total_acres:.2f} ac differs from summed parcels "
            f"{summed_acres:.2f} ac by {drift:.1%}"
        )
        logger.warning(f"{owner_key}: {message}")
        return message

    def build(
        self,
        owner_key: str,
        cluster_parcels: Sequence[Parcel],
        merge_result: MergeResult,
    ) -> AggregatedHolding:
        """
        Build the holding record for one cluster.

        Args:
            owner_key: Normalized owner shared by every parcel in the cluster
            cluster_parcels: The cluster's parcels, input order
            merge_result: PolygonMerger output for their rings

        Returns:
            AggregatedHolding with acreage from the merged geometry
        """
        parcel_count = len(cluster_parcels)
        total_acres = area_acres(merge_result.shape, self.sq_meters_per_acre)
        summed_acres = sum(self.parcel_acres(p) for p in cluster_parcels)

        return AggregatedHolding(
            owner_key=owner_key,
            parcel_ids=[p.id for p in cluster_parcels],
            parcel_count=parcel_count,
            total_acres=total_acres,
            combined=parcel_count > 1,
            degraded=isinstance(merge_result, Degraded),
            geometry=merge_result.geometry,
            consistency_warning=self._consistency_warning(
                owner_key, total_acres, summed_acres
            ),
        )

    def build_singleton(self, parcel: Parcel) -> AggregatedHolding:
        """Lone parcel of its owner: no clustering, geometry is its own ring."""
        polygon = build_polygon(parcel.id, parcel.ring)
        total_acres = area_acres(polygon, self.sq_meters_per_acre)
        summed_acres = self.parcel_acres(parcel)

        return AggregatedHolding(
            owner_key=parcel.owner_key,
            parcel_ids=[parcel.id],
            parcel_count=1,
            total_acres=total_acres,
            geometry=ring_to_geojson(parcel.ring),
            consistency_warning=self._consistency_warning(
                parcel.owner_key, total_acres, summed_acres
            ),
        )

    def build_excluded(self, parcel: Parcel) -> AggregatedHolding:
        """Parcel whose ring is unusable; passed through, never merged.

        Rings with usable positions but no area (collinear, repeated points)
        are still drawn; anything else gets no geometry.
        """
        try:
            clean_ring(parcel.ring)
            geometry = ring_to_geojson(parcel.ring)
        except ValueError:
            geometry = None

        return AggregatedHolding(
            owner_key=parcel.owner_key,
            parcel_ids=[parcel.id],
            parcel_count=1,
            total_acres=parcel.area_hint_acres or 0.0,
            excluded=True,
            geometry=geometry,
        )
