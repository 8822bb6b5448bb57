# raster.py
"""
Tile selection for raster queries.

Given a query box and a viewport size, pick the coarsest pyramid depth whose
tiles are still at least as fine as the viewport (in longitude degrees per
pixel), and the row-major list of tiles covering the query at that depth.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from geometry import BoundingBox, union
from quadtree import QuadTree, Tile

logger = logging.getLogger("bearmaps.raster")


@dataclass(frozen=True)
class RasterSolution:
    ul_lon: float
    ul_lat: float
    lr_lon: float
    lr_lat: float
    width: int
    height: int
    depth: int
    success: bool
    tiles: Tuple[Tile, ...] = field(default=(), repr=False)

    @classmethod
    def failed(cls) -> "RasterSolution":
        return cls(0.0, 0.0, 0.0, 0.0, 0, 0, 0, False, ())

    @property
    def bounding_box(self) -> Optional[BoundingBox]:
        if not self.success:
            return None
        return BoundingBox.from_coords(self.ul_lon, self.ul_lat, self.lr_lon, self.lr_lat)

    @property
    def tile_keys(self) -> Tuple[str, ...]:
        return tuple(t.key for t in self.tiles)

    def to_response(self) -> Dict[str, Any]:
        return {
            "raster_ul_lon": self.ul_lon,
            "raster_ul_lat": self.ul_lat,
            "raster_lr_lon": self.lr_lon,
            "raster_lr_lat": self.lr_lat,
            "raster_width": self.width,
            "raster_height": self.height,
            "depth": self.depth,
            "query_success": self.success,
        }


class TileSelector:
    def __init__(self, tree: QuadTree):
        self.tree = tree

    def select_depth(self, target_lon_dpp: float) -> int:
        """Coarsest depth with lon_per_pixel(depth) <= target, else the deepest level."""
        for depth in range(self.tree.max_depth + 1):
            if self.tree.lon_per_pixel(depth) <= target_lon_dpp:
                return depth
        return self.tree.max_depth

    def select(self, query: BoundingBox, width_px: float, height_px: float) -> RasterSolution:
        if width_px <= 0 or height_px <= 0:
            logger.debug("select: non-positive viewport %sx%s", width_px, height_px)
            return RasterSolution.failed()
        if not query.is_well_formed():
            logger.debug("select: malformed query box %s", query)
            return RasterSolution.failed()
        clipped = self.tree.root.intersection(query)
        if clipped is None:
            logger.debug("select: query box %s outside root %s", query, self.tree.root)
            return RasterSolution.failed()

        target = clipped.width / width_px
        depth = self.select_depth(target)
        tiles = self.tree.tiles_at_depth(depth, clipped)
        if not tiles:
            return RasterSolution.failed()

        assembled = union(t.bbox for t in tiles)
        cols = len({t.col for t in tiles})
        rows = len({t.row for t in tiles})
        logger.debug(
            "select: target_dpp=%.3g depth=%d tiles=%d grid=%dx%d", target, depth, len(tiles), cols, rows
        )
        return RasterSolution(
            ul_lon=assembled.ul_lon,
            ul_lat=assembled.ul_lat,
            lr_lon=assembled.lr_lon,
            lr_lat=assembled.lr_lat,
            width=cols * self.tree.tile_size,
            height=rows * self.tree.tile_size,
            depth=depth,
            success=True,
            tiles=tuple(tiles),
        )
