"""Error taxonomy for ownership aggregation.

None of these escape ``aggregate()``. They are raised inside a component and
turned into flagged output (excluded, degraded or truncated holdings) at the
seam that owns the decision.
"""


class HoldingsError(Exception):
    """Base exception for aggregation errors."""

    def __init__(self, detail: str, code: str = "HOLDINGS_ERROR"):
        super().__init__(detail)
        self.detail = detail
        self.code = code


class InvalidGeometryError(HoldingsError, ValueError):
    def __init__(self, parcel_id, reason: str):
        self.parcel_id = parcel_id
        self.reason = reason
        super().__init__(
            detail=f"Parcel {parcel_id!r} has an unusable ring: {reason}",
            code="INVALID_GEOMETRY",
        )


class UnionFailureError(HoldingsError):
    def __init__(self, step: int, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(
            detail=f"Polygon union failed at fold step {step}: {reason}",
            code="UNION_FAILURE",
        )


class BudgetExceededError(HoldingsError):
    def __init__(self, detail: str = "Aggregation budget exhausted"):
        super().__init__(detail=detail, code="BUDGET_EXCEEDED")
