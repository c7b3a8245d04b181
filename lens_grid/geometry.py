"""
Grid geometry and map projection helpers.

Pure functions: meters <-> degrees at a latitude, the zoom-dependent rendering
cell size, slippy-map tile math (Web Mercator) and linear lat/lon -> pixel
projection over a rectangular viewport. NaN inputs propagate; nothing here
guards against them.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from .errors import InvalidBoundsError

METERS_PER_DEGREE = 111_320

# Rendering cells are drawn slightly taller than wide to look square on the
# Mercator map at Swiss latitudes.
CELL_HEIGHT_SCALE = 1.15
CELL_WIDTH_SCALE = 0.8


@dataclass(frozen=True)
class BoundingBox:
    """Geographic rectangle in degrees. No anti-meridian wraparound."""

    north: float
    south: float
    east: float
    west: float

    def validate(self) -> "BoundingBox":
        # `not >` also rejects NaN edges
        if not self.north > self.south:
            raise InvalidBoundsError(
                f"north ({self.north}) must be greater than south ({self.south})"
            )
        if not self.east > self.west:
            raise InvalidBoundsError(
                f"east ({self.east}) must be greater than west ({self.west})"
            )
        return self

    def contains(self, lat: float, lon: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lon <= self.east

    @property
    def center(self) -> tuple[float, float]:
        return (self.north + self.south) / 2, (self.east + self.west) / 2

    def overlaps(self, other: "BoundingBox") -> bool:
        return not (
            self.east < other.west or other.east < self.west
            or self.north < other.south or other.north < self.south
        )

    def clamp_to(self, region: "BoundingBox") -> "BoundingBox":
        """Clamp every edge into `region`."""
        def _lat(v: float) -> float:
            return min(max(v, region.south), region.north)

        def _lon(v: float) -> float:
            return min(max(v, region.west), region.east)

        return BoundingBox(
            north=_lat(self.north), south=_lat(self.south),
            east=_lon(self.east), west=_lon(self.west),
        )

    def to_dict(self) -> dict[str, float]:
        return {"north": self.north, "south": self.south, "east": self.east, "west": self.west}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "BoundingBox":
        """Build from {north, south, east, west}. Raises InvalidBoundsError on bad values."""
        try:
            return cls(
                north=float(d["north"]),
                south=float(d["south"]),
                east=float(d["east"]),
                west=float(d["west"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidBoundsError(f"Malformed bounding box: {d!r}") from e


SWITZERLAND_BOUNDS = BoundingBox(north=47.8084, south=45.818, east=10.4922, west=5.9559)
SWITZERLAND_CENTER = (46.8182, 8.2275)


def meters_to_degrees_at_latitude(meters: float, lat: float) -> tuple[float, float]:
    """
    Convert a distance in meters to (lat_degrees, lng_degrees) at latitude `lat`.

    lng_degrees grows without bound as lat approaches +/-90; callers must not
    use this at the poles.
    """
    lat_radians = lat * math.pi / 180
    lat_degrees = meters / METERS_PER_DEGREE
    lng_degrees = meters / (METERS_PER_DEGREE * math.cos(lat_radians))
    return lat_degrees, lng_degrees


def cell_size_meters_for_zoom(zoom: int) -> int:
    """Rendering cell edge in meters: 1 km at zoom >= 10, 2 km at 9, 3 km below."""
    if zoom >= 10:
        return 1000
    if zoom >= 9:
        return 2000
    return 3000


def degrees_to_tile_number(lat: float, lon: float, zoom: int) -> tuple[int, int]:
    """Convert lat/lon to OSM tile x, y at given zoom."""
    lat_rad = math.radians(lat)
    n = 2.0**zoom
    xtile = math.floor((lon + 180.0) / 360.0 * n)
    ytile = math.floor((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n)
    return xtile, ytile


def tile_number_to_degrees(x: float, y: float, zoom: int) -> tuple[float, float]:
    """North-west corner (lat, lon) of tile x, y at given zoom."""
    n = 2.0**zoom
    lon = x / n * 360.0 - 180.0
    lat_rad = math.atan(math.sinh(math.pi * (1 - 2 * y / n)))
    return math.degrees(lat_rad), lon


def project_to_pixel(
    lat: float,
    lon: float,
    view_bounds: BoundingBox,
    width: float,
    height: float,
) -> tuple[float, float]:
    """Linear projection of lat/lon into a width x height raster covering view_bounds."""
    x = (lon - view_bounds.west) / (view_bounds.east - view_bounds.west) * width
    y = (view_bounds.north - lat) / (view_bounds.north - view_bounds.south) * height
    return x, y


def cell_bounds(lat: float, lon: float, zoom: int) -> BoundingBox:
    """
    Rendering rectangle for a grid cell anchored at its south-west corner.

    The edge comes from the zoom level, not from the aggregator's bin size.
    """
    lat_deg, lng_deg = meters_to_degrees_at_latitude(cell_size_meters_for_zoom(zoom), lat)
    return BoundingBox(
        north=lat + lat_deg * CELL_HEIGHT_SCALE,
        south=lat,
        east=lon + lng_deg * CELL_WIDTH_SCALE,
        west=lon,
    )


def view_bounds_for(center: tuple[float, float], zoom: int,
                    region: BoundingBox = SWITZERLAND_BOUNDS) -> BoundingBox:
    """
    Viewport around `center`, where zoom 8 shows the whole region and every
    further zoom level halves the span.
    """
    lat, lon = center
    scale = 2 * 2 ** (zoom - 8)
    half_lat = (region.north - region.south) / scale
    half_lon = (region.east - region.west) / scale
    return BoundingBox(
        north=lat + half_lat, south=lat - half_lat,
        east=lon + half_lon, west=lon - half_lon,
    )
