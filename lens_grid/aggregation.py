"""
Spatial binning aggregator.

Filters each lens's samples to a bounding box, buckets them into a fixed
lat/lon grid (BinKey = floor(lat / bin), floor(lon / bin)) and merges
samples sharing a key, first within a lens and then across lenses in the
order the lenses were requested.

Two merge modes:
  pairwise   - replace the cell with the mean of the previous cell and the new
               value. Matches the historical output bit for bit, but the result
               depends on arrival order.
  cumulative - count-weighted running mean (prev + (new - prev) / count).
               Order-independent up to float rounding.
"""
from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

import numpy as np

from .errors import EmptyLensSelectionError
from .geometry import BoundingBox
from .source import LensSamples, Sample

logger = logging.getLogger(__name__)

MERGE_PAIRWISE = "pairwise"
MERGE_CUMULATIVE = "cumulative"
MERGE_MODES = (MERGE_PAIRWISE, MERGE_CUMULATIVE)

DEFAULT_BIN_SIZE_DEG = float(os.environ.get("GRID_BIN_SIZE_DEG", "0.01"))
DEFAULT_MERGE_MODE = os.environ.get("GRID_MERGE_MODE", MERGE_PAIRWISE)

BinKey = tuple[int, int]
SampleSet = Union[LensSamples, Iterable[Sample]]


@dataclass
class GridCell:
    """Running centroid and similarity of everything merged into one BinKey."""

    lat: float
    lon: float
    similarity: float
    count: int = 1


def bin_key(lat: float, lon: float, bin_size_deg: float) -> BinKey:
    return math.floor(lat / bin_size_deg), math.floor(lon / bin_size_deg)


def _merge_into(
    cells: dict[BinKey, GridCell],
    key: BinKey,
    lat: float,
    lon: float,
    similarity: float,
    merge_mode: str,
) -> None:
    prev = cells.get(key)
    if prev is None:
        cells[key] = GridCell(lat, lon, similarity)
        return
    prev.count += 1
    if merge_mode == MERGE_PAIRWISE:
        prev.lat = (prev.lat + lat) / 2
        prev.lon = (prev.lon + lon) / 2
        prev.similarity = (prev.similarity + similarity) / 2
    else:
        prev.lat += (lat - prev.lat) / prev.count
        prev.lon += (lon - prev.lon) / prev.count
        prev.similarity += (similarity - prev.similarity) / prev.count


def _check_params(bin_size_deg: float, merge_mode: str) -> None:
    if not bin_size_deg > 0:
        raise ValueError(f"bin_size_deg must be positive, got {bin_size_deg}")
    if merge_mode not in MERGE_MODES:
        raise ValueError(f"merge_mode must be one of {MERGE_MODES}, got {merge_mode!r}")


def aggregate_lens(
    samples: SampleSet,
    bbox: BoundingBox,
    bin_size_deg: float = DEFAULT_BIN_SIZE_DEG,
    merge_mode: str = DEFAULT_MERGE_MODE,
) -> dict[BinKey, GridCell]:
    """Bin one lens's samples that fall inside `bbox` (edges inclusive)."""
    _check_params(bin_size_deg, merge_mode)
    if not isinstance(samples, LensSamples):
        samples = LensSamples.from_samples(samples)

    mask = (
        (samples.lat >= bbox.south) & (samples.lat <= bbox.north) &
        (samples.lon >= bbox.west) & (samples.lon <= bbox.east)
    )
    lats = samples.lat[mask]
    lons = samples.lon[mask]
    sims = samples.similarity[mask]
    lat_bins = np.floor(lats / bin_size_deg).astype(np.int64)
    lon_bins = np.floor(lons / bin_size_deg).astype(np.int64)

    cells: dict[BinKey, GridCell] = {}
    for la, lo, s, kb_lat, kb_lon in zip(
        lats.tolist(), lons.tolist(), sims.tolist(), lat_bins.tolist(), lon_bins.tolist()
    ):
        _merge_into(cells, (kb_lat, kb_lon), la, lo, s, merge_mode)
    return cells


def merge_cells(
    combined: dict[BinKey, GridCell],
    lens_cells: dict[BinKey, GridCell],
    merge_mode: str = DEFAULT_MERGE_MODE,
) -> dict[BinKey, GridCell]:
    """Fold one lens's cells into `combined` in place; each lens counts once per cell."""
    for key, cell in lens_cells.items():
        _merge_into(combined, key, cell.lat, cell.lon, cell.similarity, merge_mode)
    return combined


def aggregate(
    lens_sample_sets: Sequence[SampleSet],
    bbox: BoundingBox,
    bin_size_deg: float = DEFAULT_BIN_SIZE_DEG,
    merge_mode: str = DEFAULT_MERGE_MODE,
) -> dict[BinKey, GridCell]:
    """
    Aggregate several lenses into one GridCell per BinKey.

    Raises EmptyLensSelectionError for an empty lens list and
    InvalidBoundsError for a malformed bbox. The result is rebuilt on every
    call; nothing is shared between calls.
    """
    if not lens_sample_sets:
        raise EmptyLensSelectionError("At least one lens sample set is required")
    bbox.validate()
    _check_params(bin_size_deg, merge_mode)

    combined: dict[BinKey, GridCell] = {}
    for i, samples in enumerate(lens_sample_sets):
        lens_cells = aggregate_lens(samples, bbox, bin_size_deg, merge_mode)
        logger.debug("Lens #%d contributed %d cells", i, len(lens_cells))
        merge_cells(combined, lens_cells, merge_mode)
    return combined
