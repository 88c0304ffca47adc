"""Connected-component clustering of one owner's parcels.

Two parcels are adjacent when one, grown outward by the adjacency tolerance,
intersects the other. The buffer absorbs digitization gaps between survey
boundaries that should touch; ``intersects`` (rather than ``touches``) also
accepts the small overlaps left by re-surveys.

Clusters grow from a seed by repeatedly testing every unvisited parcel
against the buffered *frontier*, the union of everything already in the
cluster, until a full pass adds nothing. A-B and B-C adjacency therefore
puts A, B and C together even when A and C never touch.
"""

import logging
from typing import Callable, List, Optional, Protocol, Sequence, Set, Tuple

from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry
from shapely.prepared import prep
from shapely.strtree import STRtree

from ..config.settings import get_settings
from ..exceptions import BudgetExceededError
from ..mapping.geometry_utils import LocalProjection

logger = logging.getLogger(__name__)


# Index protocol so the brute-force scan and the STRtree are interchangeable
class AdjacencyIndex(Protocol):
    def query(self, region: BaseGeometry) -> List[int]:
        """Indices (ascending) of indexed polygons that intersect ``region``."""
        ...


def _intersects(prepared_region, polygon: BaseGeometry) -> bool:
    try:
        return prepared_region.intersects(polygon)
    except GEOSException as e:
        logger.debug(f"Intersection test failed, treating as not adjacent: {e}")
        return False


class BruteForceAdjacencyIndex:
    """Tests every polygon. O(n) per query, O(n^2) per owner group."""

    def __init__(self, polygons: Sequence[BaseGeometry]):
        self.polygons = list(polygons)

    def query(self, region: BaseGeometry) -> List[int]:
        prepared = prep(region)
        return [i for i, polygon in enumerate(self.polygons) if _intersects(prepared, polygon)]


class STRtreeAdjacencyIndex:
    """Prunes candidates by bounding box before the exact intersection test.

    Uses the same exact test as the brute-force index, so both return the
    same indices for the same region.
    """

    def __init__(self, polygons: Sequence[BaseGeometry]):
        self.polygons = list(polygons)
        self._tree = STRtree(self.polygons)

    def query(self, region: BaseGeometry) -> List[int]:
        prepared = prep(region)
        candidates = sorted(int(i) for i in self._tree.query(region))
        return [i for i in candidates if _intersects(prepared, self.polygons[i])]


IndexFactory = Callable[[Sequence[BaseGeometry]], AdjacencyIndex]


class AdjacencyClusterer:
    """Partition one owner's parcels into spatially connected clusters."""

    def __init__(
        self,
        tolerance_m: Optional[float] = None,
        spatial_index_min_parcels: Optional[int] = None,
        index_factory: Optional[IndexFactory] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ):
        """
        Args:
            tolerance_m: Adjacency buffer in meters (defaults to settings)
            spatial_index_min_parcels: Group size at which the STRtree index is used
            index_factory: Force a specific index implementation
            should_stop: Polled before every query and union; True aborts with BudgetExceededError
        """
        settings = get_settings()
        self.tolerance_m = (
            settings.ADJACENCY_TOLERANCE_M if tolerance_m is None else tolerance_m
        )
        self.spatial_index_min_parcels = (
            settings.SPATIAL_INDEX_MIN_PARCELS
            if spatial_index_min_parcels is None
            else spatial_index_min_parcels
        )
        self.index_factory = index_factory
        self.should_stop = should_stop

    def _make_index(self, projected: Sequence[BaseGeometry]) -> AdjacencyIndex:
        if self.index_factory is not None:
            return self.index_factory(projected)
        if len(projected) >= self.spatial_index_min_parcels:
            return STRtreeAdjacencyIndex(projected)
        return BruteForceAdjacencyIndex(projected)

    def _check_budget(self):
        if self.should_stop is not None and self.should_stop():
            raise BudgetExceededError("Stopped while clustering parcels")

    def _buffered(self, region: BaseGeometry) -> BaseGeometry:
        try:
            return region.buffer(self.tolerance_m)
        except GEOSException as e:
            logger.debug(f"Buffer failed, testing unbuffered region: {e}")
            return region

    @staticmethod
    def _grow(frontier: BaseGeometry, polygon: BaseGeometry) -> Tuple[BaseGeometry, bool]:
        """Union ``polygon`` into the frontier; on failure keep the old frontier."""
        try:
            grown = frontier.union(polygon)
        except GEOSException as e:
            logger.debug(f"Frontier union failed: {e}")
            return frontier, False
        if grown.is_empty or not grown.is_valid:
            return frontier, False
        return grown, True

    def cluster(self, polygons: Sequence[BaseGeometry]) -> List[List[int]]:
        """
        Cluster same-owner parcel polygons (WGS84).

        Args:
            polygons: Valid-ring parcel polygons, indexed like the caller's arena

        Returns:
            Partition of ``range(len(polygons))``; each cluster sorted, clusters
            ordered by their lowest index

        Raises:
            BudgetExceededError: If ``should_stop`` fires mid-run
        """
        n = len(polygons)
        if n == 0:
            return []
        if n == 1:
            return [[0]]

        projection = LocalProjection.for_geometries(polygons)
        projected = [projection.to_meters(p) for p in polygons]
        index = self._make_index(projected)

        visited: Set[int] = set()
        clusters: List[List[int]] = []

        for seed in range(n):
            if seed in visited:
                continue
            self._check_budget()

            visited.add(seed)
            members = [seed]
            frontier = projected[seed]
            # Members whose union into the frontier failed still get tested
            stragglers: List[BaseGeometry] = []

            grew = True
            while grew:
                grew = False
                for region in [frontier, *stragglers]:
                    self._check_budget()
                    for j in index.query(self._buffered(region)):
                        if j in visited:
                            continue
                        # Polled per union: one pass can absorb thousands of slivers
                        self._check_budget()
                        visited.add(j)
                        members.append(j)
                        grew = True
                        frontier, merged = self._grow(frontier, projected[j])
                        if not merged:
                            stragglers.append(projected[j])

            clusters.append(sorted(members))

        logger.debug(f"Clustered {n} parcels into {len(clusters)} group(s)")
        return clusters
