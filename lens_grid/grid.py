"""
Grid pipeline: lens names + viewport bbox -> normalized grid cells.

resolve lenses -> load samples per lens -> aggregate -> normalize. Stateless
per call; the only shared state is the read-only sample cache in `source`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from . import source
from .aggregation import DEFAULT_BIN_SIZE_DEG, DEFAULT_MERGE_MODE, aggregate
from .errors import SourceUnavailableError
from .geometry import BoundingBox
from .lenses import Lens, colormap_for, resolve_lenses
from .normalization import NormalizedGridCell, normalize, normalize_min_max
from .source import LensSamples

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridResult:
    lenses: list[Lens]
    cells: list[NormalizedGridCell] = field(default_factory=list)

    @property
    def colormap(self) -> str:
        return colormap_for(self.lenses)

    def to_response(self) -> dict[str, Any]:
        """Index-aligned coordinates / similarities arrays."""
        return {
            "lenses": [lens.value for lens in self.lenses],
            "coordinates": [{"lat": c.lat, "lon": c.lon} for c in self.cells],
            "similarities": [c.similarity for c in self.cells],
        }


def _load_or_empty(lens: Lens, filename: str, data_dir: str | None) -> LensSamples:
    try:
        return source.load_lens_samples(filename, data_dir)
    except SourceUnavailableError as e:
        logger.warning("Lens %s unavailable, treating as empty: %s", lens.value, e)
        return LensSamples.empty()


def compute_grid(
    lens_names: Iterable[object],
    bbox: BoundingBox,
    bin_size_deg: float = DEFAULT_BIN_SIZE_DEG,
    merge_mode: str = DEFAULT_MERGE_MODE,
    normalization: str = "percentile",
    data_dir: str | None = None,
) -> GridResult:
    """
    Raises NoValidLensesError when no requested lens is usable and
    InvalidBoundsError for a malformed bbox. An empty viewport is not an error.
    """
    resolved = resolve_lenses(lens_names)
    bbox.validate()
    lenses = [lens for lens, _ in resolved]

    sample_sets = [_load_or_empty(lens, filename, data_dir) for lens, filename in resolved]
    cells = list(aggregate(sample_sets, bbox, bin_size_deg, merge_mode).values())
    if not cells:
        logger.info("No samples inside bbox for lenses %s", [lens.value for lens in lenses])
        return GridResult(lenses=lenses)

    if normalization == "minmax":
        normalized = normalize_min_max(cells)
    else:
        normalized = normalize(cells)
    logger.info("Grid for %s: %d cells", [lens.value for lens in lenses], len(normalized))
    return GridResult(lenses=lenses, cells=normalized)
