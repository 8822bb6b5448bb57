# main.py
import base64
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

import config
from geometry import BoundingBox, GeoPoint, geodesic_meters
from mosaic import MosaicRenderer
from quadtree import QuadTree
from raster import TileSelector
from road_graph import RoadGraph, load_graph_from_geojson
from route_finder import NoRouteFound, RouteFinder
from route_state import CurrentRoute
from tile_store import TileStore, open_tile_store

# Basic logging config; respect LOG_LEVEL env var (default INFO)
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("bearmaps.api")


class RouteResponse(BaseModel):
    route: List[int] = Field(default_factory=list, description="Node ids from start to end; empty when no route exists")
    found: bool
    meta: Dict[str, Any] = Field(default_factory=dict)


def _load_default_graph() -> RoadGraph:
    try:
        return load_graph_from_geojson(config.ROAD_NETWORK_PATH)
    except (OSError, ValueError) as e:
        logger.warning("startup: failed to load road network %s: %s", config.ROAD_NETWORK_PATH, e)
        return RoadGraph([], [])


def _parse_route_param(raw: str, graph: RoadGraph) -> List[int]:
    try:
        ids = [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise HTTPException(400, "route must be a comma-separated list of node ids")
    unknown = [i for i in ids if i not in graph]
    if unknown:
        raise HTTPException(400, f"Unknown node ids in route: {unknown[:5]}")
    return ids


def _route_meta(graph: RoadGraph, finder: RouteFinder, path: List[int]) -> Dict[str, Any]:
    points = [graph.node(i).point for i in path]
    return {
        "nodes": len(path),
        "start_node": path[0],
        "end_node": path[-1],
        "cost_deg": finder.path_cost(path),
        "distance_m": sum(geodesic_meters(a, b) for a, b in zip(points, points[1:])),
    }


def create_app(
    graph: Optional[RoadGraph] = None,
    tile_store: Optional[TileStore] = None,
    tree: Optional[QuadTree] = None,
) -> FastAPI:
    graph = graph if graph is not None else _load_default_graph()
    tile_store = tile_store if tile_store is not None else open_tile_store(config.TILE_ROOT)
    tree = tree or QuadTree.default()

    selector = TileSelector(tree)
    finder = RouteFinder(graph)
    renderer = MosaicRenderer(tile_store, graph, tile_size=tree.tile_size)
    current_route = CurrentRoute()

    app = FastAPI(title="BearMaps", version="1.0.0")
    # Allow any origin; the server is unauthenticated
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.graph = graph
    app.state.tile_store = tile_store
    app.state.current_route = current_route

    @app.on_event("startup")
    def _startup_log():
        logger.info("startup: graph=%s tiles=%s max_depth=%d", graph.stats(), tile_store.stats(), tree.max_depth)

    @app.get("/raster")
    def raster(
        ullon: float = Query(...),
        ullat: float = Query(...),
        lrlon: float = Query(...),
        lrlat: float = Query(...),
        w: float = Query(...),
        h: float = Query(...),
        route: Optional[str] = Query(None, description="Comma-separated node ids to overlay"),
    ):
        """Select and assemble the tiles covering the query box for a w x h viewport.

        The overlay is the explicit ``route`` when given, otherwise the route
        last set by /route (consumed by this call).
        """
        solution = selector.select(BoundingBox.from_coords(ullon, ullat, lrlon, lrlat), w, h)
        body = solution.to_response()
        logger.info(
            "/raster: box=(%s,%s,%s,%s) viewport=%sx%s depth=%s tiles=%d success=%s",
            ullon, ullat, lrlon, lrlat, w, h, solution.depth, len(solution.tiles), solution.success,
        )
        if not solution.success:
            return body
        if 0 < config.MAX_RASTER_PIXELS < solution.width * solution.height:
            logger.warning("/raster: mosaic %dx%d exceeds pixel cap", solution.width, solution.height)
            raise HTTPException(
                400, f"Raster of {solution.width}x{solution.height} exceeds {config.MAX_RASTER_PIXELS} pixels"
            )
        overlay = _parse_route_param(route, graph) if route is not None else current_route.take()
        png = renderer.render_png(solution, overlay)
        body["b64_encoded_image_data"] = base64.b64encode(png).decode("ascii")
        return body

    @app.get("/route", response_model=RouteResponse)
    def find_route(
        start_lon: float = Query(...),
        start_lat: float = Query(...),
        end_lon: float = Query(...),
        end_lat: float = Query(...),
    ):
        if len(graph) == 0:
            raise HTTPException(503, "Road network not loaded")
        try:
            path = finder.find_path(GeoPoint(start_lon, start_lat), GeoPoint(end_lon, end_lat))
        except NoRouteFound as e:
            logger.warning("/route: %s", e)
            current_route.clear()
            return RouteResponse(route=[], found=False, meta={"reason": str(e)})
        current_route.set(path)
        meta = _route_meta(graph, finder, path)
        logger.info("/route: success nodes=%d distance_m=%.1f", meta["nodes"], meta["distance_m"])
        return RouteResponse(route=path, found=True, meta=meta)

    @app.get("/clear_route")
    def clear_route():
        current_route.clear()
        return True

    @app.get("/health")
    def health():
        return {"status": "ok", "graph_loaded": len(graph) > 0}

    @app.get("/debug/graph")
    def debug_graph():
        """Return basic road graph stats for debugging."""
        return graph.stats()

    @app.get("/debug/tiles")
    def debug_tiles():
        """Return basic tile store stats for debugging."""
        return {"ok": True, "stats": tile_store.stats(), "max_depth": tree.max_depth}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=4567)
