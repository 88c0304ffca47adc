"""Tests for owner statistics and run summaries."""

from parcel_holdings.models.schemas import AggregatedHolding, AggregationResult
from parcel_holdings.utils.aggregator import owner_stats, summarize_holdings


def _holding(owner, acres, count=1, **flags):
    return AggregatedHolding(
        owner_key=owner,
        parcel_ids=list(range(count)),
        parcel_count=count,
        total_acres=acres,
        combined=count > 1,
        **flags,
    )


# =============================================================================
# TestOwnerStats
# =============================================================================


class TestOwnerStats:
    def test_totals_across_holdings(self):
        holdings = [_holding("SMITH", 120.04, 3), _holding("SMITH", 40.0), _holding("JONES", 80.0)]
        stats = owner_stats(holdings, " smith ")
        assert stats.owner_key == "SMITH"
        assert stats.parcel_count == 4
        assert stats.holding_count == 2
        assert stats.total_acres == 160.0
        assert stats.largest_holding_acres == 120.0

    def test_unknown_owner_returns_none(self):
        assert owner_stats([_holding("SMITH", 1.0)], "NOBODY") is None


# =============================================================================
# TestSummarizeHoldings
# =============================================================================


class TestSummarizeHoldings:
    def test_counts(self):
        result = AggregationResult(
            holdings=[
                _holding("SMITH", 120.0, 3),
                _holding("SMITH", 40.0),
                _holding("JONES", 80.0, 2, degraded=True),
                _holding("LONE", 5.0),
                _holding("BROKEN", 0.0, excluded=True),
            ],
            truncated=True,
        )
        summary = summarize_holdings(result)
        assert summary.total_parcels == 8
        assert summary.holdings == 5
        assert summary.combined_holdings == 2
        assert summary.degraded_holdings == 1
        assert summary.excluded_holdings == 1
        assert summary.owners_with_multiple_parcels == 2
        assert summary.truncated is True

    def test_top_owners_ranked_by_acreage(self):
        result = AggregationResult(
            holdings=[_holding("B", 10.0), _holding("A", 10.0), _holding("C", 50.0)]
        )
        summary = summarize_holdings(result, top_n=2)
        assert [s.owner_key for s in summary.top_owners] == ["C", "A"]

    def test_empty(self):
        summary = summarize_holdings(AggregationResult())
        assert summary.holdings == 0
        assert summary.top_owners == []
