"""Fold a cluster's parcel rings into one holding geometry."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Polygon, mapping
from shapely.geometry.base import BaseGeometry

from ..exceptions import BudgetExceededError, InvalidGeometryError, UnionFailureError
from ..mapping.geometry_utils import build_polygon, rings_to_multipolygon

logger = logging.getLogger(__name__)


@dataclass
class Merged:
    """Union succeeded."""

    shape: BaseGeometry  # Polygon or MultiPolygon, WGS84

    @property
    def geometry(self) -> Dict[str, Any]:
        return mapping(self.shape)


@dataclass
class Degraded:
    """Union failed; the rings are kept exactly as they came in."""

    rings: List[Sequence[Any]]
    reason: str = ""
    shape: BaseGeometry = field(init=False, repr=False)

    def __post_init__(self):
        # Area only; geometry keeps every ring
        parts = []
        for i, ring in enumerate(self.rings):
            try:
                parts.append(build_polygon(i, ring))
            except InvalidGeometryError:
                continue
        self.shape = MultiPolygon(parts)

    @property
    def geometry(self) -> Dict[str, Any]:
        return rings_to_multipolygon(self.rings)


MergeResult = Union[Merged, Degraded]


def _check_step(result: BaseGeometry, step: int):
    if result.is_empty:
        raise UnionFailureError(step, "empty result")
    if not isinstance(result, (Polygon, MultiPolygon)):
        raise UnionFailureError(step, f"unexpected {result.geom_type}")
    if not result.is_valid:
        raise UnionFailureError(step, "result is not a valid polygon")
    if result.area <= 0:
        raise UnionFailureError(step, "result has no area")


class PolygonMerger:
    """Left fold of pairwise unions with an all-or-nothing fallback."""

    def _fold(
        self, polygons: List[Polygon], should_stop: Optional[Callable[[], bool]] = None
    ) -> BaseGeometry:
        combined = polygons[0]
        _check_step(combined, 0)
        for step, polygon in enumerate(polygons[1:], start=1):
            if should_stop is not None and should_stop():
                raise BudgetExceededError(f"Stopped at union step {step} of {len(polygons) - 1}")
            _check_step(polygon, step)
            try:
                combined = combined.union(polygon)
            except GEOSException as e:
                raise UnionFailureError(step, str(e)) from e
            _check_step(combined, step)
        return combined

    def merge(
        self,
        rings: Sequence[Sequence[Any]],
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> MergeResult:
        """
        Union a cluster's rings.

        Args:
            rings: Closed [lon, lat] rings of one cluster, already validated
            should_stop: Polled before each union step

        Returns:
            Merged(shape) when every union step is valid, otherwise
            Degraded(rings) with the input left untouched

        Raises:
            BudgetExceededError: If ``should_stop`` fires mid-fold
        """
        rings = list(rings)
        if not rings:
            raise ValueError("Cannot merge an empty cluster")

        try:
            polygons = [build_polygon(i, ring) for i, ring in enumerate(rings)]
        except InvalidGeometryError as e:
            logger.warning(f"Keeping {len(rings)} rings unmerged: {e.detail}")
            return Degraded(rings=rings, reason=e.detail)

        if len(polygons) == 1:
            return Merged(shape=polygons[0])

        try:
            return Merged(shape=self._fold(polygons, should_stop))
        except UnionFailureError as e:
            logger.warning(f"Keeping {len(rings)} rings unmerged: {e.detail}")
            return Degraded(rings=rings, reason=e.detail)
