# route_state.py
"""Last computed route, kept for clients that render without passing a route.

Preferred usage is explicit: take the ids returned by /route and pass them
to /raster. This holder only exists for the implicit flow, where the next
raster render consumes (and clears) whatever route was set last. Every
read-modify-clear happens under one lock.
"""

from __future__ import annotations

import threading
from typing import List, Optional, Sequence


class CurrentRoute:
    def __init__(self):
        self._lock = threading.Lock()
        self._route: Optional[List[int]] = None

    def set(self, route: Sequence[int]) -> None:
        with self._lock:
            self._route = list(route)

    def take(self) -> Optional[List[int]]:
        """Return the current route and clear it atomically."""
        with self._lock:
            route, self._route = self._route, None
        return route

    def peek(self) -> Optional[List[int]]:
        with self._lock:
            return list(self._route) if self._route is not None else None

    def clear(self) -> None:
        with self._lock:
            self._route = None
