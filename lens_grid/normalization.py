"""
Rescale aggregated similarities to [0, 1].

The default normalizer clips to the 1st/99th percentile before rescaling so a
handful of outliers cannot flatten the colour range. Output order always
matches input order; callers zip it back against coordinates by index.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .aggregation import GridCell
from .errors import EmptyInputError

LOWER_PERCENTILE = 1
UPPER_PERCENTILE = 99
# Returned for every cell when all values collapse to one bound
DEGENERATE_VALUE = 0.5


@dataclass(frozen=True)
class NormalizedGridCell:
    lat: float
    lon: float
    similarity: float


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    p-th percentile of an ascending sequence, interpolating linearly between
    order statistics at index p/100 * (n - 1).
    """
    if len(sorted_values) == 0:
        raise EmptyInputError("percentile of an empty sequence")
    idx = p / 100 * (len(sorted_values) - 1)
    lower = math.floor(idx)
    upper = math.ceil(idx)
    if lower == upper:
        return float(sorted_values[lower])
    lo_val = float(sorted_values[lower])
    hi_val = float(sorted_values[upper])
    return lo_val + (hi_val - lo_val) * (idx - lower)


def _rescale(values: np.ndarray, lower_bound: float, upper_bound: float) -> np.ndarray:
    # `not <` also covers NaN bounds
    if not lower_bound < upper_bound:
        return np.full(len(values), DEGENERATE_VALUE)
    # Non-finite values pin to the nearest bound
    filled = np.nan_to_num(values, nan=lower_bound, posinf=upper_bound, neginf=lower_bound)
    clipped = np.clip(filled, lower_bound, upper_bound)
    return (clipped - lower_bound) / (upper_bound - lower_bound)


def normalize_values(values: Sequence[float]) -> np.ndarray:
    """
    Percentile-clipped rescale of raw values; same length and order as the input.
    Bounds come from the finite values only.
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        raise EmptyInputError("Cannot normalize zero values")
    ordered = np.sort(arr[np.isfinite(arr)])
    if ordered.size == 0:
        return np.full(arr.size, DEGENERATE_VALUE)
    lower_bound = percentile(ordered, LOWER_PERCENTILE)
    upper_bound = percentile(ordered, UPPER_PERCENTILE)
    return _rescale(arr, lower_bound, upper_bound)


def normalize_values_min_max(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        raise EmptyInputError("Cannot normalize zero values")
    finite = arr[np.isfinite(arr)]
    if finite.size == 0:
        return np.full(arr.size, DEGENERATE_VALUE)
    return _rescale(arr, float(finite.min()), float(finite.max()))


def _to_normalized(cells: Sequence[GridCell], scaled: np.ndarray) -> list[NormalizedGridCell]:
    return [
        NormalizedGridCell(lat=c.lat, lon=c.lon, similarity=float(v))
        for c, v in zip(cells, scaled.tolist())
    ]


def normalize(cells: Sequence[GridCell]) -> list[NormalizedGridCell]:
    """
    Percentile-clipped normalization of aggregated cells.

    Raises EmptyInputError on zero cells; callers short-circuit empty grids
    before getting here. All-equal inputs map to 0.5.
    """
    if not cells:
        raise EmptyInputError("Cannot normalize zero cells")
    return _to_normalized(cells, normalize_values([c.similarity for c in cells]))


def normalize_min_max(cells: Sequence[GridCell]) -> list[NormalizedGridCell]:
    """Plain min/max rescale without outlier clipping. Degrades to 0.5 like `normalize`."""
    if not cells:
        raise EmptyInputError("Cannot normalize zero cells")
    return _to_normalized(cells, normalize_values_min_max([c.similarity for c in cells]))
