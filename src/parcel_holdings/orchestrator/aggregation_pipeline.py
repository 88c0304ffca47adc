# src/parcel_holdings/orchestrator/aggregation_pipeline.py
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from shapely.geometry import Polygon

from ..clustering.adjacency import AdjacencyClusterer, IndexFactory
from ..clustering.merger import PolygonMerger
from ..config.settings import get_settings
from ..exceptions import BudgetExceededError, InvalidGeometryError
from ..mapping.geometry_utils import build_polygon
from ..models.schemas import AggregatedHolding, AggregationResult, Parcel
from ..services.holding_builder import HoldingBuilder

logger = logging.getLogger(__name__)

OwnerGroup = List[Tuple[Parcel, Polygon]]


class CancellationToken:
    """Cooperative cancel flag shared with the caller's request handler."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class GroupOutcome:
    """Holdings finalized for one owner group."""

    owner_key: str
    holdings: List[AggregatedHolding] = field(default_factory=list)
    complete: bool = True


class AggregationPipeline:
    """
    Group parcels by owner, cluster each owner's adjacent parcels, merge
    every cluster and build the holding records.

    Owner groups share nothing, so multi-parcel groups fan out over a thread
    pool; each task reads only its own group and returns its own holdings.
    """

    def __init__(
        self,
        tolerance_m: Optional[float] = None,
        max_workers: Optional[int] = None,
        time_budget_s: Optional[float] = None,
        spatial_index_min_parcels: Optional[int] = None,
        index_factory: Optional[IndexFactory] = None,
        merger: Optional[PolygonMerger] = None,
        builder: Optional[HoldingBuilder] = None,
    ):
        """
        Args:
            tolerance_m: Adjacency buffer in meters
            max_workers: Thread pool size for owner-group tasks
            time_budget_s: Wall-clock budget; on expiry the run is truncated
            spatial_index_min_parcels: Group size that switches on the STRtree index
            index_factory: Force an AdjacencyIndex implementation
            merger: PolygonMerger to use
            builder: HoldingBuilder to use

        Unset values come from settings.
        """
        settings = get_settings()
        self.tolerance_m = (
            settings.ADJACENCY_TOLERANCE_M if tolerance_m is None else tolerance_m
        )
        self.max_workers = max_workers or settings.MAX_WORKERS
        self.time_budget_s = (
            settings.TIME_BUDGET_S if time_budget_s is None else time_budget_s
        )
        self.spatial_index_min_parcels = (
            settings.SPATIAL_INDEX_MIN_PARCELS
            if spatial_index_min_parcels is None
            else spatial_index_min_parcels
        )
        self.index_factory = index_factory
        self.merger = merger or PolygonMerger()
        self.builder = builder or HoldingBuilder()

    # ── Owner-group task ─────────────────────────────────────────────

    def _process_group(
        self,
        owner_key: str,
        members: OwnerGroup,
        should_stop: Callable[[], bool],
    ) -> GroupOutcome:
        """Cluster, merge and build one owner's holdings."""
        parcels = [parcel for parcel, _ in members]
        polygons = [polygon for _, polygon in members]
        outcome = GroupOutcome(owner_key=owner_key)

        clusterer = AdjacencyClusterer(
            tolerance_m=self.tolerance_m,
            spatial_index_min_parcels=self.spatial_index_min_parcels,
            index_factory=self.index_factory,
            should_stop=should_stop,
        )

        try:
            clusters = clusterer.cluster(polygons)
            for indices in clusters:
                if should_stop():
                    raise BudgetExceededError("Stopped between clusters")
                cluster_parcels = [parcels[i] for i in indices]
                result = self.merger.merge(
                    [p.ring for p in cluster_parcels], should_stop=should_stop
                )
                outcome.holdings.append(
                    self.builder.build(owner_key, cluster_parcels, result)
                )
        except BudgetExceededError as e:
            logger.warning(
                f"{owner_key}: {e.detail}; kept {len(outcome.holdings)} finished holding(s)"
            )
            outcome.complete = False

        logger.debug(
            f"{owner_key}: {len(parcels)} parcels -> {len(outcome.holdings)} holding(s)"
        )
        return outcome

    def _fallback_group(self, owner_key: str, members: OwnerGroup) -> GroupOutcome:
        """Unmerged singletons for a group whose task crashed."""
        return GroupOutcome(
            owner_key=owner_key,
            holdings=[self.builder.build_singleton(parcel) for parcel, _ in members],
        )

    # ── Main entry point ─────────────────────────────────────────────

    def aggregate(
        self,
        parcels: Iterable[Parcel],
        cancel_token: Optional[CancellationToken] = None,
    ) -> AggregationResult:
        """
        Aggregate a parcel snapshot into owner holdings.

        Args:
            parcels: Parcels for the queried region
            cancel_token: Optional caller-side cancellation

        Returns:
            AggregationResult; ``truncated`` is set when the budget or the
            token stopped the run before every owner group finished
        """
        start = time.monotonic()
        deadline = None if self.time_budget_s is None else start + self.time_budget_s
        stop = threading.Event()

        def should_stop() -> bool:
            if stop.is_set():
                return True
            if cancel_token is not None and cancel_token.cancelled:
                return True
            return deadline is not None and time.monotonic() >= deadline

        parcels = list(parcels)
        if not parcels:
            return AggregationResult(runtime_ms=0.0)

        # 1. Split off unusable rings, group the rest by owner
        groups: Dict[str, OwnerGroup] = {}
        excluded: List[Parcel] = []
        for parcel in parcels:
            try:
                polygon = build_polygon(parcel.id, parcel.ring)
            except InvalidGeometryError as e:
                logger.warning(f"Excluding parcel from clustering: {e.detail}")
                excluded.append(parcel)
                continue
            groups.setdefault(parcel.owner_key, []).append((parcel, polygon))

        owner_keys = sorted(groups)
        multi_owner_keys = [key for key in owner_keys if len(groups[key]) > 1]
        logger.info(
            f"Aggregating {len(parcels)} parcels: {len(owner_keys)} owners, "
            f"{len(multi_owner_keys)} with multiple parcels, {len(excluded)} excluded"
        )

        # 2. Singleton owners skip clustering entirely
        outcomes: Dict[str, GroupOutcome] = {
            key: GroupOutcome(
                owner_key=key,
                holdings=[self.builder.build_singleton(groups[key][0][0])],
            )
            for key in owner_keys
            if len(groups[key]) == 1
        }

        # 3. Fan out multi-parcel owners
        truncated = False
        if multi_owner_keys and should_stop():
            truncated = True
        elif multi_owner_keys:
            truncated = self._fan_out(multi_owner_keys, groups, outcomes, should_stop, stop, deadline)

        # 4. Flatten in owner order, excluded parcels last
        holdings: List[AggregatedHolding] = []
        for key in owner_keys:
            if key in outcomes:
                holdings.extend(outcomes[key].holdings)
        holdings.extend(self.builder.build_excluded(parcel) for parcel in excluded)

        runtime_ms = (time.monotonic() - start) * 1000
        if truncated:
            logger.warning(
                f"Aggregation truncated after {runtime_ms:.0f}ms: "
                f"{len(holdings)} holdings finalized"
            )
        logger.info(
            f"Aggregated {len(parcels)} parcels into {len(holdings)} holdings in {runtime_ms:.0f}ms"
        )

        return AggregationResult(
            holdings=holdings,
            truncated=truncated,
            parcels_in=len(parcels),
            invalid_parcels=len(excluded),
            owner_groups=len(owner_keys),
            runtime_ms=runtime_ms,
        )

    def _fan_out(
        self,
        owner_keys: List[str],
        groups: Dict[str, OwnerGroup],
        outcomes: Dict[str, GroupOutcome],
        should_stop: Callable[[], bool],
        stop: threading.Event,
        deadline: Optional[float],
    ) -> bool:
        """Run owner-group tasks; returns True when the run was cut short."""
        truncated = False
        timeout = None if deadline is None else max(0.0, deadline - time.monotonic())

        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        future_to_owner = {
            executor.submit(self._process_group, key, groups[key], should_stop): key
            for key in owner_keys
        }

        def collect(future, owner_key):
            try:
                outcome = future.result()
            except Exception as e:
                logger.error(
                    f"{owner_key}: aggregation task failed, emitting unmerged parcels: {e}",
                    exc_info=True,
                )
                outcome = self._fallback_group(owner_key, groups[owner_key])
            outcomes[owner_key] = outcome
            return outcome.complete

        try:
            for future in as_completed(future_to_owner, timeout=timeout):
                if not collect(future, future_to_owner[future]):
                    truncated = True
        except FuturesTimeout:
            # Running tasks see the flag and return what they finished
            stop.set()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        # Tasks that were mid-flight when the deadline hit
        for future, owner_key in future_to_owner.items():
            if owner_key in outcomes or future.cancelled():
                continue
            if not collect(future, owner_key):
                truncated = True

        if any(f.cancelled() for f in future_to_owner):
            truncated = True
        return truncated


def aggregate(
    parcels: Iterable[Parcel],
    cancel_token: Optional[CancellationToken] = None,
    **options,
) -> AggregationResult:
    """Module-level shortcut: ``AggregationPipeline(**options).aggregate(parcels)``."""
    return AggregationPipeline(**options).aggregate(parcels, cancel_token=cancel_token)
