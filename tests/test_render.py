"""
Tests for the tile cache and the static map renderer.

Tiles come from an in-memory fake fetcher, never from the network.
"""

import io

import pytest
from PIL import Image

from lens_grid.geometry import BoundingBox
from lens_grid.normalization import NormalizedGridCell
from lens_grid.render import StaticMapRenderer, TileCache

VIEW = BoundingBox(north=47.0, south=46.0, east=9.0, west=8.0)


def png_bytes(color=(10, 200, 10, 255), size=(256, 256)):
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


class FakeFetcher:
    def __init__(self, payload=None, fail=False):
        self.payload = payload if payload is not None else png_bytes()
        self.fail = fail
        self.calls = []

    def __call__(self, zoom, x, y):
        self.calls.append((zoom, x, y))
        if self.fail:
            raise OSError("tile server down")
        return self.payload


def decode(png):
    return Image.open(io.BytesIO(png)).convert("RGBA")


# =============================================================================
# TileCache Tests
# =============================================================================


class TestTileCache:
    """Tests for the bounded LRU tile cache."""

    def test_put_get(self):
        cache = TileCache(2)
        tile = Image.new("RGBA", (1, 1))
        cache.put((1, 0, 0), tile)
        assert cache.get((1, 0, 0)) is tile
        assert (1, 0, 0) in cache
        assert cache.get((1, 1, 1)) is None

    def test_evicts_least_recently_used(self):
        cache = TileCache(2)
        a, b, c = (Image.new("RGBA", (1, 1)) for _ in range(3))
        cache.put((1, 0, 0), a)
        cache.put((1, 0, 1), b)
        cache.get((1, 0, 0))
        cache.put((1, 1, 0), c)

        assert len(cache) == 2
        assert (1, 0, 1) not in cache
        assert (1, 0, 0) in cache

    def test_clear(self):
        cache = TileCache(2)
        cache.put((1, 0, 0), Image.new("RGBA", (1, 1)))
        cache.clear()
        assert len(cache) == 0

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            TileCache(0)


# =============================================================================
# Renderer Tests
# =============================================================================


class TestStaticMapRenderer:
    """Tests for StaticMapRenderer."""

    def test_output_is_png_of_requested_size(self):
        renderer = StaticMapRenderer(fetch_tile=FakeFetcher())
        img = decode(renderer.render(VIEW, 10, [], "seismic", width=320, height=240, draw_tiles=False))
        assert img.size == (320, 240)

    def test_cell_drawn_with_colormap(self):
        renderer = StaticMapRenderer(fetch_tile=FakeFetcher())
        cells = [NormalizedGridCell(lat=46.5, lon=8.5, similarity=1.0)]
        img = decode(renderer.render(VIEW, 10, cells, "seismic", draw_tiles=False))

        r, g, b, _ = img.getpixel((404, 297))
        assert r > 200
        assert g < 150
        assert b < 150
        # Far from the cell only the background remains
        assert img.getpixel((50, 50))[:3] == (240, 240, 240)

    def test_highlighted_box_is_red(self):
        renderer = StaticMapRenderer(fetch_tile=FakeFetcher())
        box = BoundingBox(north=46.9, south=46.7, east=8.3, west=8.1)
        img = decode(renderer.render(VIEW, 10, [], "seismic", highlighted=[box], draw_tiles=False))

        r, g, b, _ = img.getpixel((160, 120))
        assert r > g
        assert r > b

    def test_tiles_are_drawn(self):
        fetcher = FakeFetcher(png_bytes((10, 200, 10, 255)))
        renderer = StaticMapRenderer(fetch_tile=fetcher)
        img = decode(renderer.render(VIEW, 8, [], "seismic", width=200, height=150))

        assert fetcher.calls
        assert img.getpixel((100, 75))[:3] == (10, 200, 10)

    def test_tiles_cached_between_renders(self):
        fetcher = FakeFetcher()
        renderer = StaticMapRenderer(fetch_tile=fetcher)
        renderer.render(VIEW, 8, [], "seismic", width=200, height=150)
        first = len(fetcher.calls)
        renderer.render(VIEW, 8, [], "seismic", width=200, height=150)
        assert len(fetcher.calls) == first

    def test_failed_tiles_tolerated(self):
        fetcher = FakeFetcher(fail=True)
        renderer = StaticMapRenderer(fetch_tile=fetcher, cache=TileCache(8))
        img = decode(renderer.render(VIEW, 8, [], "seismic", width=200, height=150))

        assert img.getpixel((100, 75))[:3] == (240, 240, 240)
        assert len(renderer.cache) == 0

    def test_undecodable_tile_tolerated(self):
        renderer = StaticMapRenderer(fetch_tile=FakeFetcher(payload=b"not an image"))
        assert renderer.get_tile(8, 133, 90) is None

    def test_invalid_view(self):
        renderer = StaticMapRenderer(fetch_tile=FakeFetcher())
        with pytest.raises(ValueError):
            renderer.render(BoundingBox(north=46.0, south=47.0, east=9.0, west=8.0), 8, [], "seismic")
