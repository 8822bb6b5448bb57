# quadtree.py
"""
Implicit quadtree over the root tile bounding box.

The pyramid is never materialized: a tile is a pure function of its quadrant
path. At depth d each axis of the root box is split into 2**d equal segments
by repeated interval halving; path digits pick a quadrant per step:

    1 | 2
    --+--
    3 | 4

The empty path is the root tile, stored under the key "root"; every other
tile is stored under its path string (e.g. "1423").
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Dict, List, Tuple

import config
from geometry import BoundingBox

QUADRANTS = "1234"
ROOT_KEY = "root"


@dataclass(frozen=True)
class Tile:
    path: str
    col: int
    row: int
    bbox: BoundingBox

    @property
    def depth(self) -> int:
        return len(self.path)

    @property
    def key(self) -> str:
        """Storage key of the pre-rendered image for this tile."""
        return self.path or ROOT_KEY


def _halved_edges(first: float, last: float, depth: int) -> List[float]:
    edges = [first, last]
    for _ in range(depth):
        split: List[float] = []
        for a, b in zip(edges, edges[1:]):
            split.append(a)
            split.append((a + b) / 2.0)
        split.append(edges[-1])
        edges = split
    return edges


class QuadTree:
    def __init__(self, root: BoundingBox, max_depth: int = config.MAX_DEPTH, tile_size: int = config.TILE_SIZE):
        if not root.is_well_formed():
            raise ValueError(f"Root bounding box is not well formed: {root}")
        if max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        self.root = root
        self.max_depth = max_depth
        self.tile_size = tile_size
        # depth -> (lon edges ascending, negated lat edges ascending)
        self._edges: Dict[int, Tuple[List[float], List[float]]] = {}

    @classmethod
    def default(cls) -> "QuadTree":
        return cls(
            BoundingBox.from_coords(config.ROOT_ULLON, config.ROOT_ULLAT, config.ROOT_LRLON, config.ROOT_LRLAT),
            config.MAX_DEPTH,
            config.TILE_SIZE,
        )

    # -------- resolution --------

    def lon_per_pixel(self, depth: int) -> float:
        """Longitude degrees covered by one pixel of a tile at ``depth``."""
        return (self.root.width / (1 << depth)) / self.tile_size

    # -------- path <-> grid --------

    def path_for(self, depth: int, col: int, row: int) -> str:
        n = 1 << depth
        if not (0 <= col < n and 0 <= row < n):
            raise ValueError(f"Tile ({col}, {row}) outside the {n}x{n} grid at depth {depth}")
        digits = []
        for shift in range(depth - 1, -1, -1):
            dx = (col >> shift) & 1
            dy = (row >> shift) & 1
            digits.append(QUADRANTS[dy * 2 + dx])
        return "".join(digits)

    @staticmethod
    def grid_position(path: str) -> Tuple[int, int]:
        """(col, row) of the tile addressed by ``path`` at depth len(path)."""
        col = row = 0
        for q in path:
            idx = QUADRANTS.find(q)
            if idx < 0:
                raise ValueError(f"Invalid quadrant {q!r} in tile path {path!r}")
            col = (col << 1) | (idx & 1)
            row = (row << 1) | (idx >> 1)
        return col, row

    # -------- geometry --------

    def tile_bounding_box(self, depth: int, path: str) -> BoundingBox:
        """Bounding box of a tile, halving the parent's extent per path step."""
        if len(path) != depth:
            raise ValueError(f"Tile path {path!r} does not have depth {depth}")
        ul_lon, ul_lat = self.root.ul_lon, self.root.ul_lat
        lr_lon, lr_lat = self.root.lr_lon, self.root.lr_lat
        for q in path:
            if q not in QUADRANTS:
                raise ValueError(f"Invalid quadrant {q!r} in tile path {path!r}")
            mid_lon = (ul_lon + lr_lon) / 2.0
            mid_lat = (ul_lat + lr_lat) / 2.0
            if q in "13":
                lr_lon = mid_lon
            else:
                ul_lon = mid_lon
            if q in "12":
                lr_lat = mid_lat
            else:
                ul_lat = mid_lat
        return BoundingBox.from_coords(ul_lon, ul_lat, lr_lon, lr_lat)

    def tile(self, depth: int, col: int, row: int) -> Tile:
        path = self.path_for(depth, col, row)
        return Tile(path=path, col=col, row=row, bbox=self.tile_bounding_box(depth, path))

    def _grid_edges(self, depth: int) -> Tuple[List[float], List[float]]:
        # Same midpoints as tile_bounding_box, so edges agree exactly with tile boxes
        edges = self._edges.get(depth)
        if edges is None:
            lons = _halved_edges(self.root.ul_lon, self.root.lr_lon, depth)
            lats = _halved_edges(self.root.ul_lat, self.root.lr_lat, depth)
            edges = (lons, [-lat for lat in lats])
            self._edges[depth] = edges
        return edges

    def tiles_at_depth(self, depth: int, query: BoundingBox) -> List[Tile]:
        """Tiles at ``depth`` covering ``query`` clipped to the root, in row-major order.

        Row-major order (top row left to right, then the next row) lets the
        mosaic be reassembled by blitting fixed-size blocks sequentially.
        """
        clipped = self.root.intersection(query)
        if clipped is None:
            return []
        n = 1 << depth
        lon_edges, neg_lat_edges = self._grid_edges(depth)

        first_col = min(max(bisect_right(lon_edges, clipped.ul_lon) - 1, 0), n - 1)
        last_col = min(max(bisect_left(lon_edges, clipped.lr_lon) - 1, first_col), n - 1)
        first_row = min(max(bisect_right(neg_lat_edges, -clipped.ul_lat) - 1, 0), n - 1)
        last_row = min(max(bisect_left(neg_lat_edges, -clipped.lr_lat) - 1, first_row), n - 1)

        return [
            self.tile(depth, col, row)
            for row in range(first_row, last_row + 1)
            for col in range(first_col, last_col + 1)
        ]
