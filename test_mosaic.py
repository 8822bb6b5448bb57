#!/usr/bin/env python3
"""Mosaic assembly: tile placement, gaps for missing tiles and route overlay."""

import io

import pytest
from PIL import Image

from geometry import BoundingBox
from mosaic import MosaicRenderer
from quadtree import QuadTree
from raster import RasterSolution, TileSelector
from road_graph import RoadGraph, RoadNode
from tile_store import DirectoryTileStore

ROOT = BoundingBox.from_coords(0.0, 1.0, 1.0, 0.0)
COLORS = {
    "1": (255, 0, 0),
    "2": (0, 255, 0),
    "3": (0, 0, 255),
    "4": (255, 255, 0),
}


@pytest.fixture
def tile_dir(tmp_path):
    for key, color in COLORS.items():
        Image.new("RGB", (256, 256), color).save(tmp_path / f"{key}.png")
    return tmp_path


def _graph() -> RoadGraph:
    return RoadGraph([RoadNode(1, 0.25, 0.75), RoadNode(2, 0.75, 0.25)], [(1, 2)])


def _solution() -> RasterSolution:
    solution = TileSelector(QuadTree(ROOT, max_depth=1)).select(ROOT, 512, 512)
    assert solution.depth == 1
    assert solution.tile_keys == ("1", "2", "3", "4")
    return solution


def test_tiles_placed_row_major(tile_dir):
    renderer = MosaicRenderer(DirectoryTileStore(tile_dir), _graph())
    im = renderer.render(_solution())
    assert im.size == (512, 512)
    assert im.getpixel((10, 10)) == COLORS["1"]
    assert im.getpixel((300, 10)) == COLORS["2"]
    assert im.getpixel((10, 300)) == COLORS["3"]
    assert im.getpixel((500, 500)) == COLORS["4"]


def test_missing_tile_leaves_gap(tile_dir):
    (tile_dir / "2.png").unlink()
    renderer = MosaicRenderer(DirectoryTileStore(tile_dir), _graph())
    im = renderer.render(_solution())
    assert im.getpixel((300, 10)) == (0, 0, 0)
    # Later tiles keep their positions
    assert im.getpixel((10, 300)) == COLORS["3"]
    assert im.getpixel((500, 500)) == COLORS["4"]


def test_route_overlay_draws_over_tiles(tile_dir):
    renderer = MosaicRenderer(DirectoryTileStore(tile_dir), _graph())
    plain = renderer.render(_solution())
    drawn = renderer.render(_solution(), route=[1, 2])
    assert drawn.getpixel((256, 256)) != plain.getpixel((256, 256))
    assert drawn.getpixel((10, 500)) == plain.getpixel((10, 500))


def test_single_node_route_draws_nothing(tile_dir):
    renderer = MosaicRenderer(DirectoryTileStore(tile_dir), _graph())
    assert renderer.render(_solution(), route=[1]).tobytes() == renderer.render(_solution()).tobytes()


def test_route_pixels():
    graph = RoadGraph([RoadNode(1, 0.0, 1.0), RoadNode(2, 0.5, 0.5)], [(1, 2)])
    renderer = MosaicRenderer(DirectoryTileStore("unused"), graph)
    assert renderer.route_pixels(_solution(), [1, 2]) == [(0, 0), (256, 256)]


def test_failed_solution_cannot_render(tile_dir):
    renderer = MosaicRenderer(DirectoryTileStore(tile_dir), _graph())
    with pytest.raises(ValueError):
        renderer.render(RasterSolution.failed())


def test_render_png_is_decodable(tile_dir):
    renderer = MosaicRenderer(DirectoryTileStore(tile_dir), _graph())
    with Image.open(io.BytesIO(renderer.render_png(_solution(), [1, 2]))) as im:
        assert im.format == "PNG"
        assert im.size == (512, 512)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
