# mosaic.py
"""Assemble selected tiles into one image and draw a route on top."""

from __future__ import annotations

import io
import logging
import math
from typing import List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw

import config
from raster import RasterSolution
from road_graph import RoadGraph
from tile_store import TileStore

logger = logging.getLogger("bearmaps.mosaic")


class MosaicRenderer:
    def __init__(
        self,
        tile_store: TileStore,
        graph: RoadGraph,
        tile_size: int = config.TILE_SIZE,
        stroke_width: int = config.ROUTE_STROKE_WIDTH_PX,
        stroke_color: Tuple[int, int, int, int] = config.ROUTE_STROKE_COLOR,
    ):
        self.tile_store = tile_store
        self.graph = graph
        self.tile_size = tile_size
        self.stroke_width = stroke_width
        self.stroke_color = stroke_color

    def render(self, solution: RasterSolution, route: Optional[Sequence[int]] = None) -> Image.Image:
        if not solution.success:
            raise ValueError("Cannot render a failed raster solution")
        canvas = Image.new("RGBA", (solution.width, solution.height), (0, 0, 0, 255))

        # Tiles arrive row-major, so walk fixed-size blocks left to right, wrapping rows
        x = y = 0
        missing = 0
        for tile in solution.tiles:
            im = self.tile_store.load(tile)
            if im is None:
                missing += 1
            else:
                canvas.paste(im, (x, y))
            x += self.tile_size
            if x >= solution.width:
                x = 0
                y += self.tile_size
        if missing:
            logger.warning("render: %d of %d tiles missing at depth %d", missing, len(solution.tiles), solution.depth)

        if route and len(route) > 1:
            overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
            draw = ImageDraw.Draw(overlay)
            draw.line(self.route_pixels(solution, route), fill=self.stroke_color, width=self.stroke_width, joint="curve")
            canvas = Image.alpha_composite(canvas, overlay)
        return canvas.convert("RGB")

    def route_pixels(self, solution: RasterSolution, route: Sequence[int]) -> List[Tuple[int, int]]:
        """Pixel positions of route nodes within the mosaic (may fall outside it)."""
        w_ppd = solution.width / (solution.lr_lon - solution.ul_lon)
        h_ppd = solution.height / abs(solution.ul_lat - solution.lr_lat)
        points = []
        for node_id in route:
            node = self.graph.node(node_id)
            px = int(math.floor((node.lon - solution.ul_lon) * w_ppd))
            py = int(math.floor((solution.ul_lat - node.lat) * h_ppd))
            points.append((px, py))
        return points

    def render_png(self, solution: RasterSolution, route: Optional[Sequence[int]] = None) -> bytes:
        buf = io.BytesIO()
        self.render(solution, route).save(buf, "PNG")
        return buf.getvalue()
