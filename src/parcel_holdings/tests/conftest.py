"""Shared geometry fixtures: metric grids of parcels near a fixed Iowa origin."""

import math

import pytest
from pyproj import Geod

from parcel_holdings.config.settings import get_settings
from parcel_holdings.models.schemas import Parcel

GEOD = Geod(ellps="WGS84")
ORIGIN = (-95.7159, 41.7407)  # Woodbine, IA
ACRE_SIDE_M = math.sqrt(4046.86)


def east_of(lon, lat, meters):
    """Longitude ``meters`` east of (lon, lat)."""
    return GEOD.fwd(lon, lat, 90, meters)[0]


def north_of(lon, lat, meters):
    """Latitude ``meters`` north of (lon, lat)."""
    return GEOD.fwd(lon, lat, 0, meters)[1]


def square_ring(west, south, size_m):
    east = east_of(west, south, size_m)
    north = north_of(west, south, size_m)
    return [[west, south], [east, south], [east, north], [west, north], [west, south]]


class ParcelGrid:
    """Square cells of ``cell_m`` meters that share exact edge coordinates."""

    def __init__(self, cell_m=ACRE_SIDE_M, origin=ORIGIN):
        self.cell_m = cell_m
        self.lon0, self.lat0 = origin

    def lon(self, col):
        return east_of(self.lon0, self.lat0, col * self.cell_m)

    def lat(self, row):
        return north_of(self.lon0, self.lat0, row * self.cell_m)

    def ring(self, col, row):
        w, e = self.lon(col), self.lon(col + 1)
        s, n = self.lat(row), self.lat(row + 1)
        return [[w, s], [e, s], [e, n], [w, n], [w, s]]

    def self_intersecting_ring(self, col, row):
        """Cell-sized ring whose last edge cuts back across its bottom edge."""
        w, e = self.lon(col), self.lon(col + 1)
        s, n = self.lat(row), self.lat(row + 1)

        def at(u, v):
            return [w + u * (e - w), s + v * (n - s)]

        return [at(0, 0), at(1, 0), at(1, 1), at(0, 1), at(0.5, -0.5), at(0, 0)]

    def parcel(self, parcel_id, owner, col, row, **kwargs):
        return Parcel(id=parcel_id, owner_raw=owner, ring=self.ring(col, row), **kwargs)


@pytest.fixture
def grid():
    return ParcelGrid()


@pytest.fixture
def forty_acre_side():
    return math.sqrt(40 * 4046.86)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached; tests that patch the environment need a clean slate."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
