# route_finder.py
"""A* shortest-path search over the road graph.

Both endpoints are snapped to their nearest road node. The heuristic is the
planar Euclidean distance to the destination node; because edge weights use
the same metric on straight segments the heuristic is consistent, so a node
that has been popped (settled) never needs to be reopened. That guarantee has
to be re-checked if edge costs ever stop being straight-line distances.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

import config
from geometry import GeoPoint, euclidean
from road_graph import RoadGraph, RoadNode

logger = logging.getLogger("bearmaps.route")


class NoRouteFound(Exception):
    pass


class RouteSearchExhausted(NoRouteFound):
    """The search settled more nodes than its budget allows."""


@dataclass(eq=False)
class FrontierEntry:
    node: RoadNode
    g_cost: float
    priority: float
    predecessor: Optional["FrontierEntry"] = field(default=None, repr=False)
    removed: bool = field(default=False, repr=False)


class _Frontier:
    """Binary heap of entries keyed by node id, with remove-and-reinsert updates.

    A superseded entry is only marked removed and is discarded when it
    surfaces at the top of the heap.
    """

    def __init__(self):
        self._heap: List[Tuple[float, int, FrontierEntry]] = []
        self._index: Dict[int, FrontierEntry] = {}
        self._seq = itertools.count()

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._index

    def __len__(self) -> int:
        return len(self._index)

    def get(self, node_id: int) -> FrontierEntry:
        return self._index[node_id]

    def push(self, entry: FrontierEntry) -> None:
        old = self._index.get(entry.node.id)
        if old is not None:
            old.removed = True
        self._index[entry.node.id] = entry
        heapq.heappush(self._heap, (entry.priority, next(self._seq), entry))

    def pop(self) -> Optional[FrontierEntry]:
        while self._heap:
            _, _, entry = heapq.heappop(self._heap)
            if entry.removed:
                continue
            del self._index[entry.node.id]
            return entry
        return None


class RouteFinder:
    def __init__(self, graph: RoadGraph, max_expansions: int = config.ROUTE_MAX_EXPANSIONS):
        self.graph = graph
        self.max_expansions = max_expansions

    def find_path(self, source: GeoPoint, destination: GeoPoint) -> List[int]:
        """Node ids from the node nearest ``source`` to the node nearest ``destination``."""
        start = self.graph.nearest_node(source)
        goal = self.graph.nearest_node(destination)
        logger.debug("find_path: start=%s goal=%s", start.id, goal.id)
        return self.shortest_path(start.id, goal.id)

    def shortest_path(self, source_id: int, destination_id: int) -> List[int]:
        start = self.graph.node(source_id)
        goal = self.graph.node(destination_id)
        goal_point = goal.point

        frontier = _Frontier()
        frontier.push(FrontierEntry(start, 0.0, euclidean(start.point, goal_point)))
        settled: Set[int] = set()

        while True:
            current = frontier.pop()
            if current is None:
                logger.info("shortest_path: no route %s -> %s (settled=%d)", source_id, destination_id, len(settled))
                raise NoRouteFound(f"No route between nodes {source_id} and {destination_id}")
            settled.add(current.node.id)

            if current.node.id == goal.id:
                path = _unwind(current)
                logger.debug(
                    "shortest_path: %s -> %s nodes=%d cost=%.6g settled=%d",
                    source_id, destination_id, len(path), current.g_cost, len(settled),
                )
                return path

            if 0 < self.max_expansions <= len(settled):
                logger.warning(
                    "shortest_path: budget of %d settled nodes exhausted (%s -> %s)",
                    self.max_expansions, source_id, destination_id,
                )
                raise RouteSearchExhausted(
                    f"Search budget of {self.max_expansions} nodes exhausted before reaching {destination_id}"
                )

            for neighbor, weight in self.graph.neighbors(current.node.id):
                if neighbor.id in settled:
                    continue
                g = current.g_cost + weight
                priority = g + euclidean(neighbor.point, goal_point)
                if neighbor.id in frontier and priority >= frontier.get(neighbor.id).priority:
                    continue
                frontier.push(FrontierEntry(neighbor, g, priority, current))

    def path_cost(self, path: Sequence[int]) -> float:
        """Sum of edge weights along consecutive ids of ``path``."""
        return sum(self.graph.edge_weight(u, v) for u, v in zip(path, path[1:]))


def _unwind(entry: FrontierEntry) -> List[int]:
    ids: List[int] = []
    cursor: Optional[FrontierEntry] = entry
    while cursor is not None:
        ids.append(cursor.node.id)
        cursor = cursor.predecessor
    ids.reverse()
    return ids
