# tile_store.py
"""
Pre-rendered tile images addressed by quadtree tile.

Two layouts are supported:
- a directory of PNGs named by tile key (``root.png``, ``1.png``, ``1423.png``)
- an MBTiles (sqlite) file where zoom_level is the quadtree depth and
  tile_row is stored TMS-style (flipped)

A missing or unreadable tile is a per-tile failure: ``load`` logs it and
returns None so the mosaic is assembled with a gap.
"""

from __future__ import annotations

import io
import logging
import sqlite3
import threading
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

from quadtree import Tile

logger = logging.getLogger("bearmaps.tiles")


class DirectoryTileStore:
    def __init__(self, root: Union[str, Path], suffix: str = ".png"):
        self.root = Path(root)
        self.suffix = suffix

    def path_for(self, tile: Tile) -> Path:
        return self.root / f"{tile.key}{self.suffix}"

    def load(self, tile: Tile) -> Optional[Image.Image]:
        path = self.path_for(tile)
        try:
            with Image.open(path) as im:
                im.load()
                return im.convert("RGBA")
        except FileNotFoundError:
            logger.warning("tile missing: %s", path)
        except (UnidentifiedImageError, OSError) as e:
            logger.warning("tile unreadable: %s (%s)", path, e)
        return None

    def stats(self) -> Dict[str, Optional[Union[str, int]]]:
        exists = self.root.is_dir()
        return {
            "backend": "directory",
            "root": str(self.root),
            "exists": exists,
            "tile_count": sum(1 for _ in self.root.glob(f"*{self.suffix}")) if exists else 0,
        }


# ---------------------- MBTiles I/O ------------------

@lru_cache(maxsize=4)
def _open_mbtiles(path: str) -> Tuple[sqlite3.Connection, threading.Lock]:
    """Shared read-only connection for ``path`` and the lock that serialises it."""
    uri = f"file:{path}?mode=ro"
    conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA query_only = ON;")
    logger.info("Opened MBTiles: %s", path)
    return conn, threading.Lock()


class MBTilesTileStore:
    def __init__(self, path: Union[str, Path]):
        self.path = str(path)
        self._conn, self._lock = _open_mbtiles(self.path)

    def _fetch(self, tile: Tile) -> Optional[bytes]:
        # MBTiles uses TMS (y flipped)
        tms_row = (1 << tile.depth) - 1 - tile.row
        with self._lock:
            row = self._conn.execute(
                "SELECT tile_data FROM tiles WHERE zoom_level=? AND tile_column=? AND tile_row=?",
                (tile.depth, tile.col, tms_row),
            ).fetchone()
        return row["tile_data"] if row else None

    def load(self, tile: Tile) -> Optional[Image.Image]:
        buf = self._fetch(tile)
        if buf is None:
            logger.warning("tile missing: %s z=%d x=%d y=%d", self.path, tile.depth, tile.col, tile.row)
            return None
        try:
            with Image.open(io.BytesIO(buf)) as im:
                im.load()
                return im.convert("RGBA")
        except (UnidentifiedImageError, OSError) as e:
            logger.warning("tile unreadable: %s key=%s (%s)", self.path, tile.key, e)
            return None

    def stats(self) -> Dict[str, Optional[Union[str, int]]]:
        """Return basic MBTiles stats for debugging."""
        out: Dict[str, Optional[Union[str, int]]] = {"backend": "mbtiles", "path": self.path}
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT COUNT(1) AS c, MIN(zoom_level) AS zmin, MAX(zoom_level) AS zmax FROM tiles"
                ).fetchone()
                out["tile_count"] = int(row["c"]) if row and row["c"] is not None else 0
                out["min_zoom"] = int(row["zmin"]) if row and row["zmin"] is not None else None
                out["max_zoom"] = int(row["zmax"]) if row and row["zmax"] is not None else None
            except sqlite3.Error as e:
                logger.warning("mbtiles stats: failed tiles query: %s", e)
            try:
                meta = {r["name"]: r["value"] for r in self._conn.execute("SELECT name, value FROM metadata")}
            except sqlite3.Error:
                meta = {}
        for k in ["name", "format", "bounds"]:
            out[k] = meta.get(k)
        return out


TileStore = Union[DirectoryTileStore, MBTilesTileStore]


def open_tile_store(location: Union[str, Path]) -> TileStore:
    if str(location).endswith(".mbtiles"):
        return MBTilesTileStore(location)
    return DirectoryTileStore(location)
