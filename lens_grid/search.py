"""
Client for the external top-K similarity search backend.

The backend owns the search itself; this module only builds the request,
posts it as JSON and normalizes the index-aligned response.
"""
from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any

from .errors import InvalidBoundsError, SearchBackendError
from .geometry import BoundingBox, meters_to_degrees_at_latitude
from .lenses import Lens

logger = logging.getLogger(__name__)

SEARCH_BACKEND_URL = os.environ.get("SEARCH_BACKEND_URL", "http://localhost:5000/api/search")
SEARCH_TIMEOUT_S = float(os.environ.get("SEARCH_TIMEOUT_S", "30"))


def output_size_km_to_degrees(size_km: float, lat: float) -> float:
    """Side of a square result box in degrees: mean of the lat and lng spans at `lat`."""
    lat_deg, lng_deg = meters_to_degrees_at_latitude(size_km * 1000, lat)
    return (lat_deg + lng_deg) / 2


@dataclass(frozen=True)
class SearchRequest:
    bounding_box: BoundingBox
    top_k: int
    output_size_deg: float
    lenses: list[Lens]

    def to_payload(self) -> dict[str, Any]:
        bbox = self.bounding_box.to_dict()
        lens_names = [lens.value for lens in self.lenses]
        return {
            "bbox": bbox,
            "size": self.output_size_deg,
            "topK": self.top_k,
            "lens": lens_names,
            # UI-facing aliases
            "boundingBox": bbox,
            "outputSize": self.output_size_deg,
        }


@dataclass(frozen=True)
class SearchResult:
    top_k_cells: list[BoundingBox] = field(default_factory=list)
    similarities: list[float] = field(default_factory=list)
    lens_similarity: list[dict[str, float]] = field(default_factory=list)
    bounding_box: BoundingBox | None = None

    @classmethod
    def from_response(cls, data: Any) -> "SearchResult":
        """
        Parse a backend body. Missing similarities become 0.0 and missing
        per-lens maps become {} so all three lists stay index-aligned.
        """
        if not isinstance(data, dict):
            raise SearchBackendError("Search backend returned a non-object body")
        raw_cells = data.get("topKCells") or []
        raw_sims = data.get("similarities") or []
        raw_lens = data.get("lensSimilarity") or []
        try:
            cells = [BoundingBox.from_dict(c) for c in raw_cells]
            bbox = BoundingBox.from_dict(data["boundingBox"]) if data.get("boundingBox") else None
        except InvalidBoundsError as e:
            raise SearchBackendError(f"Malformed box in search response: {e}") from e

        sims: list[float] = []
        lens_sims: list[dict[str, float]] = []
        for i in range(len(cells)):
            try:
                sims.append(float(raw_sims[i]))
            except (IndexError, TypeError, ValueError):
                sims.append(0.0)
            entry = raw_lens[i] if i < len(raw_lens) else None
            if isinstance(entry, dict):
                lens_sims.append({str(k): float(v) for k, v in entry.items() if v is not None})
            else:
                lens_sims.append({})
        return cls(top_k_cells=cells, similarities=sims, lens_similarity=lens_sims, bounding_box=bbox)

    def to_response(self) -> dict[str, Any]:
        return {
            "boundingBox": self.bounding_box.to_dict() if self.bounding_box else None,
            "topKCells": [c.to_dict() for c in self.top_k_cells],
            "similarities": list(self.similarities),
            "lensSimilarity": [dict(d) for d in self.lens_similarity],
        }


def search_top_k(
    request: SearchRequest,
    url: str | None = None,
    timeout: float | None = None,
) -> SearchResult:
    """POST the request to the backend. Any transport or format failure raises SearchBackendError."""
    url = url or SEARCH_BACKEND_URL
    payload = json.dumps(request.to_payload()).encode("utf-8")
    req = urllib.request.Request(
        url,
        data=payload,
        headers={"Content-Type": "application/json", "User-Agent": "LensGrid/1.0"},
        method="POST",
    )
    logger.info("Search request: topK=%d lenses=%s url=%s",
                request.top_k, [lens.value for lens in request.lenses], url)
    try:
        with urllib.request.urlopen(req, timeout=timeout or SEARCH_TIMEOUT_S) as resp:
            body = json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as e:
        raise SearchBackendError(f"Search backend returned HTTP {e.code}") from e
    except (urllib.error.URLError, OSError) as e:
        raise SearchBackendError(f"Search backend unreachable: {e}") from e
    except json.JSONDecodeError as e:
        raise SearchBackendError("Search backend returned invalid JSON") from e

    if isinstance(body, dict) and body.get("error"):
        raise SearchBackendError(f"Search backend error: {body['error']}")
    result = SearchResult.from_response(body)
    logger.info("Search returned %d cells", len(result.top_k_cells))
    return result
