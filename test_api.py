#!/usr/bin/env python3
"""HTTP surface: /raster, /route and the implicit current-route flow."""

import base64
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

import config
import main
from geometry import BoundingBox
from main import create_app
from quadtree import QuadTree
from road_graph import RoadGraph, RoadNode
from tile_store import DirectoryTileStore

ROOT = BoundingBox.from_coords(0.0, 1.0, 1.0, 0.0)
WHOLE_ROOT = {"ullon": 0.0, "ullat": 1.0, "lrlon": 1.0, "lrlat": 0.0, "w": 512, "h": 512}


def _graph() -> RoadGraph:
    nodes = [
        RoadNode(1, 0.1, 0.9),
        RoadNode(2, 0.5, 0.5),
        RoadNode(3, 0.9, 0.1),
        RoadNode(4, 0.9, 0.9),
        RoadNode(5, 0.95, 0.95),
    ]
    return RoadGraph(nodes, [(1, 2), (2, 3), (4, 5)])


@pytest.fixture
def tile_dir(tmp_path):
    for key in ("root", "1", "2", "3", "4"):
        Image.new("RGB", (256, 256), (200, 200, 200)).save(tmp_path / f"{key}.png")
    return tmp_path


@pytest.fixture
def app(tile_dir):
    return create_app(graph=_graph(), tile_store=DirectoryTileStore(tile_dir), tree=QuadTree(ROOT, max_depth=1))


@pytest.fixture
def client(app):
    return TestClient(app)


def test_raster_success(client):
    r = client.get("/raster", params=WHOLE_ROOT)
    assert r.status_code == 200
    body = r.json()
    assert body["query_success"] is True
    assert body["depth"] == 1
    assert (body["raster_width"], body["raster_height"]) == (512, 512)
    assert (body["raster_ul_lon"], body["raster_ul_lat"]) == (0.0, 1.0)
    with Image.open(io.BytesIO(base64.b64decode(body["b64_encoded_image_data"]))) as im:
        assert im.format == "PNG"
        assert im.size == (512, 512)


def test_raster_outside_root(client):
    r = client.get("/raster", params={"ullon": 5, "ullat": 6, "lrlon": 6, "lrlat": 5, "w": 512, "h": 512})
    assert r.status_code == 200
    body = r.json()
    assert body["query_success"] is False
    assert body["raster_width"] == 0
    assert "b64_encoded_image_data" not in body


def test_raster_missing_param(client):
    params = dict(WHOLE_ROOT)
    del params["w"]
    assert client.get("/raster", params=params).status_code == 422


def test_route_then_raster_consumes_current_route(app, client):
    r = client.get("/route", params={"start_lon": 0.12, "start_lat": 0.88, "end_lon": 0.85, "end_lat": 0.15})
    assert r.status_code == 200
    body = r.json()
    assert body["found"] is True
    assert body["route"] == [1, 2, 3]
    assert body["meta"]["start_node"] == 1
    assert body["meta"]["end_node"] == 3
    assert body["meta"]["distance_m"] > 0
    assert app.state.current_route.peek() == [1, 2, 3]

    plain = client.get("/raster", params=dict(WHOLE_ROOT, route="1")).json()
    drawn = client.get("/raster", params=WHOLE_ROOT).json()
    assert drawn["b64_encoded_image_data"] != plain["b64_encoded_image_data"]
    assert app.state.current_route.peek() is None


def test_explicit_route_does_not_consume_current_route(app, client):
    client.get("/route", params={"start_lon": 0.1, "start_lat": 0.9, "end_lon": 0.9, "end_lat": 0.1})
    r = client.get("/raster", params=dict(WHOLE_ROOT, route="1,2,3"))
    assert r.json()["query_success"] is True
    assert app.state.current_route.peek() == [1, 2, 3]


def test_route_between_components_not_found(app, client):
    client.get("/route", params={"start_lon": 0.1, "start_lat": 0.9, "end_lon": 0.9, "end_lat": 0.1})
    r = client.get("/route", params={"start_lon": 0.1, "start_lat": 0.9, "end_lon": 0.96, "end_lat": 0.96})
    assert r.status_code == 200
    assert r.json()["found"] is False
    assert r.json()["route"] == []
    assert app.state.current_route.peek() is None


def test_bad_route_param(client):
    assert client.get("/raster", params=dict(WHOLE_ROOT, route="1,99")).status_code == 400
    assert client.get("/raster", params=dict(WHOLE_ROOT, route="one,two")).status_code == 400


def test_clear_route(app, client):
    client.get("/route", params={"start_lon": 0.1, "start_lat": 0.9, "end_lon": 0.9, "end_lat": 0.1})
    r = client.get("/clear_route")
    assert r.status_code == 200
    assert r.json() is True
    assert app.state.current_route.peek() is None


def test_route_without_graph(tile_dir):
    app = create_app(graph=RoadGraph([], []), tile_store=DirectoryTileStore(tile_dir), tree=QuadTree(ROOT, 1))
    client = TestClient(app)
    r = client.get("/route", params={"start_lon": 0.1, "start_lat": 0.9, "end_lon": 0.9, "end_lat": 0.1})
    assert r.status_code == 503
    assert client.get("/health").json() == {"status": "ok", "graph_loaded": False}


@pytest.mark.parametrize("content", [
    "[1, 2, 3]",
    '{"type": "FeatureCollection", "features": [{"type": "Feature", "geometry": {"type": "Point"}, "properties": {"id": 1}}]}',
    "{not json",
])
def test_malformed_network_file_starts_with_empty_graph(tmp_path, monkeypatch, content):
    path = tmp_path / "roads.geojson"
    path.write_text(content)
    monkeypatch.setattr(config, "ROAD_NETWORK_PATH", str(path))
    graph = main._load_default_graph()
    assert len(graph) == 0

    app = create_app(tile_store=DirectoryTileStore(tmp_path), tree=QuadTree(ROOT, 1))
    assert TestClient(app).get("/health").json() == {"status": "ok", "graph_loaded": False}


def test_raster_over_pixel_cap_rejected(client, monkeypatch):
    monkeypatch.setattr(config, "MAX_RASTER_PIXELS", 256 * 256)
    r = client.get("/raster", params=WHOLE_ROOT)
    assert r.status_code == 400
    small = client.get("/raster", params=dict(WHOLE_ROOT, w=256, h=256))
    assert small.status_code == 200
    assert small.json()["raster_width"] == 256

    monkeypatch.setattr(config, "MAX_RASTER_PIXELS", 0)
    assert client.get("/raster", params=WHOLE_ROOT).status_code == 200


def test_health_and_debug(client):
    assert client.get("/health").json() == {"status": "ok", "graph_loaded": True}
    assert client.get("/debug/graph").json() == {"nodes": 5, "edges": 3, "components": 2}
    tiles = client.get("/debug/tiles").json()
    assert tiles["ok"] is True
    assert tiles["stats"]["backend"] == "directory"
    assert tiles["stats"]["tile_count"] == 5
    assert tiles["max_depth"] == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
