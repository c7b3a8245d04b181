"""
GetLensCatalog: the lens catalog with labels, dataset availability and colormaps.
"""
from __future__ import annotations

from typing import Any

from ..lenses import COLORMAPS, LENS_COLORMAPS, LENS_FILES, LENS_LABELS, MULTI_LENS_COLORMAP, Lens


def handler(params: dict[str, Any] | None = None, body: dict | None = None) -> dict[str, Any]:
    lenses = []
    for lens in Lens:
        cmap = LENS_COLORMAPS[lens]
        lenses.append({
            "lens": lens.value,
            "label": LENS_LABELS[lens],
            "available": LENS_FILES.get(lens) is not None,
            "colormap": cmap,
            "colorStops": [[pos, color] for pos, color in COLORMAPS[cmap]],
        })
    return {
        "lenses": lenses,
        "multiLensColormap": MULTI_LENS_COLORMAP,
    }
