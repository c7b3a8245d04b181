"""
SearchTopK: forward a bounding-box similarity search to the external backend.
"""
from __future__ import annotations

import logging
from typing import Any

from ..errors import NoValidLensesError
from ..lenses import Lens
from ..search import SearchRequest, output_size_km_to_degrees, search_top_k
from .validation import (
    first_present,
    parse_params,
    validate_bbox,
    validate_lens_list,
    validate_output_size,
    validate_top_k,
)

logger = logging.getLogger(__name__)


def handler(params: dict[str, Any] | None, body: dict | None = None) -> dict[str, Any]:
    """
    SearchTopK tool handler.
    Input: boundingBox {north, south, east, west}, topK, outputSize (km, or
    degrees with sizeUnit=deg), lens / lenses
    Output: topKCells, similarities, lensSimilarity (index-aligned by rank)
    """
    p = parse_params(params, body)
    bbox = validate_bbox(first_present(p, "boundingBox", "bbox"))
    top_k = validate_top_k(first_present(p, "topK", "top_k"))
    size = validate_output_size(first_present(p, "outputSize", "size"))
    lens_names = validate_lens_list(p.get("lens") or p.get("lenses"))
    # The backend has its own datasets, so any catalog lens is accepted here
    lenses = list(dict.fromkeys(lens for lens in map(Lens.parse, lens_names) if lens is not None))
    if not lenses:
        raise NoValidLensesError("No valid lenses")

    if str(p.get("sizeUnit") or "km").lower() == "deg":
        size_deg = size
    else:
        size_deg = output_size_km_to_degrees(size, bbox.center[0])

    result = search_top_k(SearchRequest(
        bounding_box=bbox,
        top_k=top_k,
        output_size_deg=size_deg,
        lenses=lenses,
    ))
    response = result.to_response()
    if response["boundingBox"] is None:
        response["boundingBox"] = bbox.to_dict()
    return response
