"""
Lens catalog: the fixed set of semantic lenses, their backing files and the
colormap each one is drawn with.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable

from .errors import NoValidLensesError

logger = logging.getLogger(__name__)


class Lens(str, Enum):
    WATER = "water"
    VEGETATION = "vegetation"
    TOPOGRAPHY = "topography"
    ROADS = "roads"

    @classmethod
    def parse(cls, name: object) -> "Lens | None":
        """Case-insensitive lookup; None for anything outside the catalog."""
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            return None


# None = lens is known but has no dataset yet
LENS_FILES: dict[Lens, str | None] = {
    Lens.TOPOGRAPHY: "topography.arrow",
    Lens.WATER: "water.arrow",
    Lens.ROADS: None,
    Lens.VEGETATION: "vegetation.arrow",
}

LENS_LABELS: dict[Lens, str] = {
    Lens.WATER: "Water",
    Lens.VEGETATION: "Vegetation",
    Lens.TOPOGRAPHY: "Topography",
    Lens.ROADS: "Road Network",
}

# Colour stops (position, hex), interpolated linearly
COLORMAPS: dict[str, list[tuple[float, str]]] = {
    "cividis_r": [(0.0, "#e6e6b3"), (1.0, "#001a4d")],
    "summer": [(0.0, "#008066"), (1.0, "#ffff66")],
    "plasma": [(0.0, "#330080"), (0.33, "#8033cc"), (0.66, "#e68033"), (1.0, "#ffff00")],
    "seismic": [(0.0, "#0000ff"), (0.5, "#ffffff"), (1.0, "#ff0000")],
    "viridis": [
        (0.0, "#440154"),
        (0.25, "#3b528b"),
        (0.5, "#21918c"),
        (0.75, "#5ec962"),
        (1.0, "#fde725"),
    ],
}

LENS_COLORMAPS: dict[Lens, str] = {
    Lens.WATER: "cividis_r",
    Lens.VEGETATION: "summer",
    Lens.TOPOGRAPHY: "plasma",
    Lens.ROADS: "seismic",
}
MULTI_LENS_COLORMAP = "viridis"


def resolve_lenses(names: Iterable[object]) -> list[tuple[Lens, str]]:
    """
    Map requested lens names to (lens, filename), keeping caller order.

    Unknown or dataset-less lenses are dropped; duplicates are dropped after
    their first occurrence. Raises NoValidLensesError if nothing is left.
    """
    resolved: list[tuple[Lens, str]] = []
    seen: set[Lens] = set()
    for name in names:
        lens = Lens.parse(name)
        if lens is None:
            logger.warning("Ignoring unknown lens %r", name)
            continue
        filename = LENS_FILES.get(lens)
        if filename is None:
            logger.warning("Ignoring lens %s: no backing dataset", lens.value)
            continue
        if lens in seen:
            continue
        seen.add(lens)
        resolved.append((lens, filename))
    if not resolved:
        raise NoValidLensesError("No valid lenses")
    return resolved


def colormap_for(lenses: Iterable[Lens]) -> str:
    """Per-lens colormap for a single lens, the shared one for a mix."""
    lenses = list(lenses)
    if len(lenses) == 1:
        return LENS_COLORMAPS[lenses[0]]
    return MULTI_LENS_COLORMAP


def value_to_color(value: float, colormap: str) -> str:
    """Map a [0, 1] value to a hex colour using the named colormap (value is clamped)."""
    scale = COLORMAPS[colormap]
    t = max(0.0, min(1.0, value)) if value == value else 0.0

    for i in range(len(scale) - 1):
        t0, c0 = scale[i]
        t1, c1 = scale[i + 1]
        if t <= t1:
            frac = (t - t0) / (t1 - t0) if t1 > t0 else 0.0
            r = round(int(c0[1:3], 16) + frac * (int(c1[1:3], 16) - int(c0[1:3], 16)))
            g = round(int(c0[3:5], 16) + frac * (int(c1[3:5], 16) - int(c0[3:5], 16)))
            b = round(int(c0[5:7], 16) + frac * (int(c1[5:7], 16) - int(c0[5:7], 16)))
            return f"#{r:02x}{g:02x}{b:02x}"
    return scale[-1][1]


def hex_to_rgb(color: str) -> tuple[int, int, int]:
    return int(color[1:3], 16), int(color[3:5], 16), int(color[5:7], 16)
