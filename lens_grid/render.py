"""
Static raster rendering of a lens grid over OSM tiles.

Produces a PNG of the viewport: base map tiles, grid cells coloured through
the lens colormap, highlighted top-K boxes in red and the selected bbox
outlined in yellow. Tiles are kept in a bounded LRU cache owned by each
renderer instance.
"""
from __future__ import annotations

import io
import logging
import os
import urllib.request
from collections import OrderedDict
from typing import Callable, Iterable, Sequence

from PIL import Image, ImageDraw

from .geometry import (
    BoundingBox,
    cell_bounds,
    degrees_to_tile_number,
    project_to_pixel,
    tile_number_to_degrees,
)
from .lenses import hex_to_rgb, value_to_color
from .normalization import NormalizedGridCell

logger = logging.getLogger(__name__)

TILE_URL_TEMPLATE = os.environ.get("TILE_URL_TEMPLATE", "https://tile.openstreetmap.org/{z}/{x}/{y}.png")
TILE_CACHE_SIZE = int(os.environ.get("TILE_CACHE_SIZE", "256"))
TILE_TIMEOUT_S = 5

CELL_ALPHA = 140
BACKGROUND = (240, 240, 240, 255)

TileKey = tuple[int, int, int]


class TileCache:
    """LRU cache of decoded tiles keyed by (zoom, x, y)."""

    def __init__(self, max_size: int = TILE_CACHE_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._tiles: OrderedDict[TileKey, Image.Image] = OrderedDict()

    def __len__(self) -> int:
        return len(self._tiles)

    def __contains__(self, key: TileKey) -> bool:
        return key in self._tiles

    def get(self, key: TileKey) -> Image.Image | None:
        tile = self._tiles.get(key)
        if tile is not None:
            self._tiles.move_to_end(key)
        return tile

    def put(self, key: TileKey, tile: Image.Image) -> None:
        self._tiles[key] = tile
        self._tiles.move_to_end(key)
        while len(self._tiles) > self.max_size:
            self._tiles.popitem(last=False)

    def clear(self) -> None:
        self._tiles.clear()


def fetch_tile_bytes(zoom: int, x: int, y: int, url_template: str = TILE_URL_TEMPLATE) -> bytes:
    url = url_template.format(z=zoom, x=x, y=y)
    req = urllib.request.Request(url, headers={"User-Agent": "LensGrid/1.0"})
    with urllib.request.urlopen(req, timeout=TILE_TIMEOUT_S) as resp:
        return resp.read()


class StaticMapRenderer:
    def __init__(
        self,
        fetch_tile: Callable[[int, int, int], bytes] | None = None,
        cache: TileCache | None = None,
    ):
        self.fetch_tile = fetch_tile or fetch_tile_bytes
        self.cache = cache if cache is not None else TileCache()

    def get_tile(self, zoom: int, x: int, y: int) -> Image.Image | None:
        """Cached tile image, or None if it cannot be fetched or decoded."""
        key = (zoom, x, y)
        tile = self.cache.get(key)
        if tile is not None:
            return tile
        try:
            tile = Image.open(io.BytesIO(self.fetch_tile(zoom, x, y))).convert("RGBA")
        except (OSError, ValueError) as e:
            logger.warning("Failed to load tile %d/%d/%d: %s", zoom, x, y, e)
            return None
        self.cache.put(key, tile)
        return tile

    def _draw_tiles(self, canvas: Image.Image, view: BoundingBox, zoom: int) -> None:
        width, height = canvas.size
        x0, y0 = degrees_to_tile_number(view.north, view.west, zoom)
        x1, y1 = degrees_to_tile_number(view.south, view.east, zoom)
        n = 2**zoom
        for x in range(x0, x1 + 1):
            for y in range(y0, y1 + 1):
                if not (0 <= x < n and 0 <= y < n):
                    continue
                tile = self.get_tile(zoom, x, y)
                if tile is None:
                    continue
                nw_lat, nw_lon = tile_number_to_degrees(x, y, zoom)
                se_lat, se_lon = tile_number_to_degrees(x + 1, y + 1, zoom)
                px0, py0 = project_to_pixel(nw_lat, nw_lon, view, width, height)
                px1, py1 = project_to_pixel(se_lat, se_lon, view, width, height)
                size = (max(1, round(px1 - px0)), max(1, round(py1 - py0)))
                canvas.paste(tile.resize(size), (round(px0), round(py0)))

    def render(
        self,
        view: BoundingBox,
        zoom: int,
        cells: Sequence[NormalizedGridCell],
        colormap: str,
        bbox: BoundingBox | None = None,
        highlighted: Iterable[BoundingBox] = (),
        width: int = 800,
        height: int = 600,
        draw_tiles: bool = True,
    ) -> bytes:
        """Render the viewport to PNG bytes."""
        view.validate()
        canvas = Image.new("RGBA", (width, height), BACKGROUND)
        if draw_tiles:
            self._draw_tiles(canvas, view, zoom)

        overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)

        def _rect(box: BoundingBox) -> list[float]:
            x0, y0 = project_to_pixel(box.north, box.west, view, width, height)
            x1, y1 = project_to_pixel(box.south, box.east, view, width, height)
            return [x0, y0, x1, y1]

        for cell in cells:
            cb = cell_bounds(cell.lat, cell.lon, zoom)
            if not cb.overlaps(view):
                continue
            fill = hex_to_rgb(value_to_color(cell.similarity, colormap)) + (CELL_ALPHA,)
            draw.rectangle(_rect(cb), fill=fill, outline=(0, 0, 0, 30))

        for box in highlighted:
            draw.rectangle(_rect(box), fill=(255, 0, 0, 70), outline=(255, 0, 0, 255), width=2)

        if bbox is not None:
            draw.rectangle(_rect(bbox), outline=(255, 255, 0, 255), width=2)

        out = Image.alpha_composite(canvas, overlay)
        buf = io.BytesIO()
        out.save(buf, format="PNG")
        return buf.getvalue()
