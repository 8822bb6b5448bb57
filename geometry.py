# geometry.py
"""Planar lon/lat primitives shared by the raster and routing code.

All distances used for search are plain Euclidean distances in degrees
(no geodesic correction): longitude is x, latitude is y, and latitude
decreases downward the way image rows do. ``geodesic_meters`` exists only
to report human-readable route lengths.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from pyproj import Geod

GEOD = Geod(ellps="WGS84")


@dataclass(frozen=True)
class GeoPoint:
    lon: float
    lat: float


@dataclass(frozen=True)
class BoundingBox:
    upper_left: GeoPoint
    lower_right: GeoPoint

    @classmethod
    def from_coords(cls, ul_lon: float, ul_lat: float, lr_lon: float, lr_lat: float) -> "BoundingBox":
        return cls(GeoPoint(ul_lon, ul_lat), GeoPoint(lr_lon, lr_lat))

    @property
    def ul_lon(self) -> float:
        return self.upper_left.lon

    @property
    def ul_lat(self) -> float:
        return self.upper_left.lat

    @property
    def lr_lon(self) -> float:
        return self.lower_right.lon

    @property
    def lr_lat(self) -> float:
        return self.lower_right.lat

    @property
    def width(self) -> float:
        """Longitudinal extent in degrees."""
        return self.lr_lon - self.ul_lon

    @property
    def height(self) -> float:
        """Latitudinal extent in degrees."""
        return self.ul_lat - self.lr_lat

    def is_well_formed(self) -> bool:
        return self.ul_lon < self.lr_lon and self.ul_lat > self.lr_lat

    def intersects(self, other: "BoundingBox") -> bool:
        """True when the two boxes share a region of positive area."""
        return (
            self.ul_lon < other.lr_lon
            and other.ul_lon < self.lr_lon
            and self.lr_lat < other.ul_lat
            and other.lr_lat < self.ul_lat
        )

    def intersection(self, other: "BoundingBox") -> Optional["BoundingBox"]:
        if not self.intersects(other):
            return None
        return BoundingBox.from_coords(
            max(self.ul_lon, other.ul_lon),
            min(self.ul_lat, other.ul_lat),
            min(self.lr_lon, other.lr_lon),
            max(self.lr_lat, other.lr_lat),
        )

    def contains_box(self, other: "BoundingBox") -> bool:
        return (
            self.ul_lon <= other.ul_lon
            and self.lr_lon >= other.lr_lon
            and self.ul_lat >= other.ul_lat
            and self.lr_lat <= other.lr_lat
        )


def union(boxes: Iterable[BoundingBox]) -> Optional[BoundingBox]:
    """Smallest box enclosing every box in ``boxes`` (None when empty)."""
    boxes = list(boxes)
    if not boxes:
        return None
    return BoundingBox.from_coords(
        min(b.ul_lon for b in boxes),
        max(b.ul_lat for b in boxes),
        max(b.lr_lon for b in boxes),
        min(b.lr_lat for b in boxes),
    )


def euclidean(a: GeoPoint, b: GeoPoint) -> float:
    return math.hypot(a.lon - b.lon, a.lat - b.lat)


def geodesic_meters(a: GeoPoint, b: GeoPoint) -> float:
    """WGS84 geodesic distance in meters between two lon/lat points."""
    _, _, d = GEOD.inv(a.lon, a.lat, b.lon, b.lat)
    return float(d)
