"""
GetGridCells: normalized similarity grid for the selected lenses in a viewport.
"""
from __future__ import annotations

import logging
from typing import Any

from ..aggregation import DEFAULT_BIN_SIZE_DEG, DEFAULT_MERGE_MODE
from ..grid import compute_grid
from .validation import parse_params, validate_bbox_params, validate_lens_list, validate_normalization

logger = logging.getLogger(__name__)


def handler(params: dict[str, Any] | None, body: dict | None = None) -> dict[str, Any]:
    """
    GetGridCells tool handler.
    Input: lens (repeatable) or lenses, minLat, maxLat, minLon, maxLon, optional normalization
    Output: lenses used, index-aligned coordinates [{lat, lon}] and similarities in [0, 1]
    """
    p = parse_params(params, body)
    lens_names = validate_lens_list(p.get("lens") or p.get("lenses"))
    bbox = validate_bbox_params(p)
    normalization = validate_normalization(p.get("normalization"))

    result = compute_grid(
        lens_names,
        bbox,
        bin_size_deg=DEFAULT_BIN_SIZE_DEG,
        merge_mode=DEFAULT_MERGE_MODE,
        normalization=normalization,
    )
    return result.to_response()
