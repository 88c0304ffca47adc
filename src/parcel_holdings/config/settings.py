# src/parcel_holdings/config/settings.py
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env is at repo root
# This file: <repo>/src/parcel_holdings/config/settings.py (4 levels deep)
_ENV_FILE = Path(__file__).parent.parent.parent.parent / ".env"


class HoldingsSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="HOLDINGS_",
        env_file=_ENV_FILE,
        extra="ignore",  # Ignore extra environment variables
    )

    # Adjacency
    ADJACENCY_TOLERANCE_M: float = Field(
        default=1.0,
        ge=0.0,
        description="Buffer (meters) within which parcel boundaries count as touching",
    )
    SPATIAL_INDEX_MIN_PARCELS: int = Field(
        default=200,
        ge=1,
        description="Owner-group size at which the STRtree index replaces the brute-force scan",
    )

    # Acreage
    SQ_METERS_PER_ACRE: float = 4046.86
    ACREAGE_MISMATCH_RATIO: float = Field(
        default=0.01,
        ge=0.0,
        description="Merged-area vs summed-parcel difference that triggers a consistency warning",
    )

    # Concurrency & deadline
    MAX_WORKERS: int = Field(default=4, ge=1)
    TIME_BUDGET_S: Optional[float] = Field(
        default=None, description="Wall-clock budget per run; None disables the deadline"
    )


@lru_cache
def get_settings() -> HoldingsSettings:
    """Get the settings instance."""
    return HoldingsSettings()
