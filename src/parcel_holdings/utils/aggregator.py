"""Cross-holding statistics for owner panels and run reports."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..models.schemas import AggregatedHolding, AggregationResult
from .owner import normalize_owner


@dataclass
class OwnerStats:
    """Everything one owner holds in the queried region."""

    owner_key: str
    parcel_count: int
    holding_count: int
    total_acres: float
    largest_holding_acres: float


@dataclass
class HoldingsSummary:
    total_parcels: int = 0
    holdings: int = 0
    combined_holdings: int = 0
    degraded_holdings: int = 0
    excluded_holdings: int = 0
    owners_with_multiple_parcels: int = 0
    top_owners: List[OwnerStats] = field(default_factory=list)
    truncated: bool = False


def _group_by_owner(holdings: Sequence[AggregatedHolding]) -> Dict[str, List[AggregatedHolding]]:
    by_owner: Dict[str, List[AggregatedHolding]] = {}
    for holding in holdings:
        by_owner.setdefault(holding.owner_key, []).append(holding)
    return by_owner


def _owner_stats(owner_key: str, holdings: List[AggregatedHolding]) -> OwnerStats:
    return OwnerStats(
        owner_key=owner_key,
        parcel_count=sum(h.parcel_count for h in holdings),
        holding_count=len(holdings),
        total_acres=round(sum(h.total_acres for h in holdings), 1),
        largest_holding_acres=round(max(h.total_acres for h in holdings), 1),
    )


def owner_stats(
    holdings: Sequence[AggregatedHolding], owner: Optional[str]
) -> Optional[OwnerStats]:
    """Totals for one owner (raw or normalized name); None if they hold nothing."""
    owner_key = normalize_owner(owner)
    mine = [h for h in holdings if h.owner_key == owner_key]
    if not mine:
        return None
    return _owner_stats(owner_key, mine)


def summarize_holdings(result: AggregationResult, top_n: int = 10) -> HoldingsSummary:
    """Counts and the largest owners by acreage for one pipeline run."""
    holdings = result.holdings
    by_owner = _group_by_owner(holdings)

    ranked = sorted(
        (_owner_stats(key, owner_holdings) for key, owner_holdings in by_owner.items()),
        key=lambda s: (-s.total_acres, s.owner_key),
    )

    return HoldingsSummary(
        total_parcels=sum(h.parcel_count for h in holdings),
        holdings=len(holdings),
        combined_holdings=sum(1 for h in holdings if h.combined),
        degraded_holdings=sum(1 for h in holdings if h.degraded),
        excluded_holdings=sum(1 for h in holdings if h.excluded),
        owners_with_multiple_parcels=sum(
            1 for owner_holdings in by_owner.values()
            if sum(h.parcel_count for h in owner_holdings) > 1
        ),
        top_owners=ranked[:top_n],
        truncated=result.truncated,
    )
