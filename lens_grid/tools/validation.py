"""
Input validation for lens grid request handlers.
"""
from __future__ import annotations

import json
import math
from typing import Any

from ..errors import InvalidBoundsError
from ..geometry import SWITZERLAND_BOUNDS, BoundingBox

NORMALIZATION_MODES = ("percentile", "minmax")


def parse_params(params: dict[str, Any] | None, body: dict | None) -> dict[str, Any]:
    """
    Flatten query parameters (single- or multi-valued) and a JSON body into one
    dict. Repeated query keys stay lists; body keys win over query keys.
    """
    p: dict[str, Any] = {}
    for k, v in (params or {}).items():
        if isinstance(v, (list, tuple)):
            p[k] = v[0] if len(v) == 1 else list(v)
        else:
            p[k] = v
    if body and isinstance(body, dict):
        p.update(body)
    return p


def first_present(p: dict[str, Any], *keys: str) -> Any:
    """Value of the first key that is present and not None."""
    for k in keys:
        if p.get(k) is not None:
            return p[k]
    return None


def validate_float(name: str, value: Any, default: float | None = None) -> float:
    """Parse a finite float; `default` is used for None or empty strings."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is None:
            raise ValueError(f"{name} is required")
        return default
    try:
        f = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number")
    if not math.isfinite(f):
        raise ValueError(f"{name} must be finite")
    return f


def validate_bbox_params(params: dict[str, Any]) -> BoundingBox:
    """
    Bounding box from minLat/maxLat/minLon/maxLon. A missing edge falls back
    to the Switzerland bounds.
    """
    try:
        bbox = BoundingBox(
            north=validate_float("maxLat", params.get("maxLat"), SWITZERLAND_BOUNDS.north),
            south=validate_float("minLat", params.get("minLat"), SWITZERLAND_BOUNDS.south),
            east=validate_float("maxLon", params.get("maxLon"), SWITZERLAND_BOUNDS.east),
            west=validate_float("minLon", params.get("minLon"), SWITZERLAND_BOUNDS.west),
        )
    except ValueError as e:
        raise InvalidBoundsError(str(e)) from e
    return bbox.validate()


def validate_bbox(raw: Any) -> BoundingBox:
    """Bounding box from a {north, south, east, west} dict (or its JSON string)."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidBoundsError("boundingBox must be a JSON object") from e
    if not isinstance(raw, dict):
        raise InvalidBoundsError("boundingBox is required")
    bbox = BoundingBox.from_dict(raw)
    for edge in (bbox.north, bbox.south, bbox.east, bbox.west):
        if not math.isfinite(edge):
            raise InvalidBoundsError("boundingBox edges must be finite")
    return bbox.validate()


def validate_lens_list(raw: Any) -> list[str]:
    """Lens names from a list, a JSON list string or a comma-separated string."""
    if raw is None:
        return []
    if isinstance(raw, str):
        raw_s = raw.strip()
        if raw_s.startswith("["):
            try:
                raw = json.loads(raw_s)
            except json.JSONDecodeError:
                raw = [raw_s]
        else:
            raw = raw_s.split(",")
    if not isinstance(raw, (list, tuple)):
        raise ValueError("lenses must be a list or string")
    out = []
    for x in raw:
        s = str(x).strip()
        if s:
            out.append(s)
    if len(out) > 10:
        raise ValueError("Maximum 10 lenses per request")
    return out


def validate_top_k(top_k: Any) -> int:
    """Validate topK (1-50, default 10)."""
    try:
        t = int(top_k) if top_k is not None else 10
    except (TypeError, ValueError):
        raise ValueError("topK must be an integer")
    if not 1 <= t <= 50:
        raise ValueError("topK must be between 1 and 50")
    return t


def validate_output_size(size: Any) -> float:
    """Validate output size (> 0, <= 100 in the request's unit)."""
    s = validate_float("outputSize", size)
    if not 0 < s <= 100:
        raise ValueError("outputSize must be greater than 0 and at most 100")
    return s


def validate_normalization(mode: Any) -> str:
    m = str(mode).strip().lower() if mode else "percentile"
    if m not in NORMALIZATION_MODES:
        raise ValueError(f"normalization must be one of {NORMALIZATION_MODES}")
    return m
