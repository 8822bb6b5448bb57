# config.py
"""
Static configuration for the BearMaps raster/route service.

Geometry constants describe the coverage of the pre-rendered tile pyramid
(the images in TILE_ROOT were scraped for exactly this box). Paths and the
search budget can be overridden with environment variables:

    TILE_ROOT             directory of <key>.png tiles, or an .mbtiles file
    ROAD_NETWORK_PATH     GeoJSON road network loaded at startup
    ROUTE_MAX_EXPANSIONS  settled-node budget for one route search (<=0: none)
    MAX_RASTER_PIXELS     largest mosaic /raster will render (<=0: none)
    LOG_LEVEL             DEBUG / INFO / WARNING / ERROR
"""

from __future__ import annotations

import logging
import os
from typing import Tuple

logger = logging.getLogger("bearmaps.config")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Invalid integer for %s: %r, using default %d", name, value, default)
        return default


# --------------------------- Config ---------------------------

# Root tile bounding box. Longitude == x-axis; latitude == y-axis.
ROOT_ULLON = -122.2998046875
ROOT_ULLAT = 37.892195547244356
ROOT_LRLON = -122.2119140625
ROOT_LRLAT = 37.82280243352756

# Each tile is TILE_SIZE x TILE_SIZE pixels
TILE_SIZE = 256

# Deepest level present in the pyramid
MAX_DEPTH = 7

# Route overlay: roads are rarely wider than 5px; cyan at ~80% opacity
ROUTE_STROKE_WIDTH_PX = 5
ROUTE_STROKE_COLOR: Tuple[int, int, int, int] = (108, 181, 230, 200)

# Way types kept when loading the road network
ROUTABLE_HIGHWAY_TYPES = {
    "motorway",
    "trunk",
    "primary",
    "secondary",
    "tertiary",
    "unclassified",
    "residential",
    "living_street",
    "motorway_link",
    "trunk_link",
    "primary_link",
    "secondary_link",
    "tertiary_link",
}

TILE_ROOT = os.getenv("TILE_ROOT", "img/")
ROAD_NETWORK_PATH = os.getenv("ROAD_NETWORK_PATH", "./berkeley.geojson")
ROUTE_MAX_EXPANSIONS = _env_int("ROUTE_MAX_EXPANSIONS", 1_000_000)
MAX_RASTER_PIXELS = _env_int("MAX_RASTER_PIXELS", 64 * 1024 * 1024)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
