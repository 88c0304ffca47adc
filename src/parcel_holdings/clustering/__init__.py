"""Adjacency clustering and polygon merging for one owner's parcels."""

from .adjacency import (
    AdjacencyClusterer,
    AdjacencyIndex,
    BruteForceAdjacencyIndex,
    STRtreeAdjacencyIndex,
)
from .merger import Degraded, Merged, MergeResult, PolygonMerger

__all__ = [
    "AdjacencyClusterer",
    "AdjacencyIndex",
    "BruteForceAdjacencyIndex",
    "STRtreeAdjacencyIndex",
    "PolygonMerger",
    "MergeResult",
    "Merged",
    "Degraded",
]
