# road_graph.py
"""Road network graph used by the route finder.

The graph is built exactly once at startup and never mutated afterwards,
which is what lets request handlers read it concurrently without locking.

Edges are undirected and weighted by the planar Euclidean distance (degrees)
between their endpoints. Nearest-node lookup is served by a shapely STRtree
over the node coordinates; equidistant candidates resolve to the lowest id.

Source format (GeoJSON FeatureCollection, lon/lat):
* ``Point`` features with an integer ``properties.id`` are nodes.
* ``LineString`` features with ``properties.nodes`` (list of node ids) are
  ways; each consecutive pair of ids becomes an edge. Ways tagged with a
  ``highway`` type outside ``config.ROUTABLE_HIGHWAY_TYPES`` are skipped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import networkx as nx
from shapely.geometry import Point
from shapely.strtree import STRtree

import config
from geometry import GeoPoint, euclidean

logger = logging.getLogger("bearmaps.graph")

_WEIGHT_TOLERANCE = 1e-12


class NodeNotFound(LookupError):
    pass


@dataclass(frozen=True)
class RoadNode:
    id: int
    lon: float
    lat: float

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.lon, self.lat)


class RoadGraph:
    """Undirected road graph.

    ``edges`` holds ``(u, v)`` pairs weighted by straight-line distance, or
    ``(u, v, weight)`` triples. An explicit weight may not be shorter than the
    straight line between its endpoints, otherwise the A* heuristic would
    overestimate.
    """

    def __init__(self, nodes: Iterable[RoadNode], edges: Iterable[Sequence]):
        G = nx.Graph()
        for node in nodes:
            G.add_node(node.id, node=node)
        for edge in edges:
            u, v = edge[0], edge[1]
            if u not in G or v not in G:
                missing = u if u not in G else v
                raise ValueError(f"Edge ({u}, {v}) references unknown node {missing}")
            if u == v:
                continue
            d = euclidean(G.nodes[u]["node"].point, G.nodes[v]["node"].point)
            w = d if len(edge) < 3 else float(edge[2])
            if w < d - _WEIGHT_TOLERANCE:
                raise ValueError(f"Edge ({u}, {v}) weight {w} is shorter than its straight-line length {d}")
            G.add_edge(u, v, weight=w)
        self.G = G

        # Index position -> node; sorted by id so ties resolve deterministically
        self._indexed: List[RoadNode] = [G.nodes[i]["node"] for i in sorted(G.nodes)]
        self._index: Optional[STRtree] = (
            STRtree([Point(n.lon, n.lat) for n in self._indexed]) if self._indexed else None
        )

    def __len__(self) -> int:
        return self.G.number_of_nodes()

    def __contains__(self, node_id: int) -> bool:
        return node_id in self.G

    def number_of_edges(self) -> int:
        return self.G.number_of_edges()

    def node(self, node_id: int) -> RoadNode:
        try:
            return self.G.nodes[node_id]["node"]
        except KeyError:
            raise NodeNotFound(f"No road node with id {node_id}") from None

    def neighbors(self, node_id: int) -> Iterator[Tuple[RoadNode, float]]:
        """Adjacent nodes of ``node_id`` with the connecting edge weight."""
        if node_id not in self.G:
            raise NodeNotFound(f"No road node with id {node_id}")
        adjacency = self.G.adj[node_id]
        nodes = self.G.nodes
        return ((nodes[nbr]["node"], data["weight"]) for nbr, data in adjacency.items())

    def edge_weight(self, u: int, v: int) -> float:
        data = self.G.get_edge_data(u, v)
        if data is None:
            raise NodeNotFound(f"No road edge between {u} and {v}")
        return data["weight"]

    def nearest_node(self, point: GeoPoint) -> RoadNode:
        """Node closest to ``point`` in the planar metric (lowest id on ties)."""
        if self._index is None:
            raise NodeNotFound("Road graph has no nodes")
        matches = self._index.query_nearest(Point(point.lon, point.lat), all_matches=True)
        return min((self._indexed[int(i)] for i in matches), key=lambda n: n.id)

    def stats(self) -> Dict[str, int]:
        return {
            "nodes": self.G.number_of_nodes(),
            "edges": self.G.number_of_edges(),
            "components": nx.number_connected_components(self.G),
        }


# ------------------------ GeoJSON loading ----------------------

def _way_is_routable(props: Dict) -> bool:
    highway = props.get("highway")
    return highway is None or highway in config.ROUTABLE_HIGHWAY_TYPES


def _point_node(geom: Dict, props: Dict) -> Optional[RoadNode]:
    """Node for a Point feature, or None when its id or coordinates are unusable."""
    coords = geom.get("coordinates")
    if props.get("id") is None or not isinstance(coords, (list, tuple)) or len(coords) < 2:
        return None
    try:
        return RoadNode(int(props["id"]), float(coords[0]), float(coords[1]))
    except (TypeError, ValueError):
        return None


def _way_refs(props: Dict) -> Optional[List[int]]:
    refs = props.get("nodes")
    if not isinstance(refs, list) or len(refs) < 2:
        return None
    try:
        return [int(r) for r in refs]
    except (TypeError, ValueError):
        return None


def build_graph_from_features(features: Iterable[dict], prune_isolated: bool = True) -> RoadGraph:
    """Build a graph from GeoJSON features; malformed features are counted and skipped."""
    nodes: Dict[int, RoadNode] = {}
    ways: List[List[int]] = []
    skipped_ways = 0
    malformed = 0
    for feat in features:
        if not isinstance(feat, dict):
            malformed += 1
            continue
        geom = feat.get("geometry") or {}
        props = feat.get("properties") or {}
        if not isinstance(geom, dict) or not isinstance(props, dict):
            malformed += 1
            continue
        gtype = geom.get("type")
        if gtype == "Point":
            node = _point_node(geom, props)
            if node is None:
                malformed += 1
                continue
            nodes[node.id] = node
        elif gtype == "LineString":
            if not _way_is_routable(props):
                skipped_ways += 1
                continue
            refs = _way_refs(props)
            if refs is None:
                skipped_ways += 1
                continue
            ways.append(refs)

    edges: List[Tuple[int, int]] = []
    dangling = 0
    for refs in ways:
        for a, b in zip(refs, refs[1:]):
            if a not in nodes or b not in nodes:
                dangling += 1
                continue
            edges.append((a, b))

    if prune_isolated:
        connected = {n for edge in edges for n in edge}
        pruned = len(nodes) - len(connected)
        nodes = {i: n for i, n in nodes.items() if i in connected}
    else:
        pruned = 0
    logger.info(
        "build_graph: nodes=%d edges=%d ways=%d skipped_ways=%d malformed=%d dangling_refs=%d pruned=%d",
        len(nodes), len(edges), len(ways), skipped_ways, malformed, dangling, pruned,
    )
    return RoadGraph(nodes.values(), edges)


@lru_cache(maxsize=4)
def load_graph_from_geojson(path: str) -> RoadGraph:
    """Load & build (cached) road graph from a GeoJSON file.

    Raises ValueError when the file is not a FeatureCollection-shaped object.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict) or not isinstance(data.get("features", []), list):
        raise ValueError(f"{path}: expected a GeoJSON object with a 'features' list")
    return build_graph_from_features(data.get("features", []))
