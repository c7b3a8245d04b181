"""
Columnar sample source: one immutable (lat, lon, similarity) file per lens.
Supports a local directory or an s3:// prefix in LENS_DATA_DIR (LENS_DATA_PROFILE
selects the AWS profile for S3).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Iterator, NamedTuple

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.ipc as pa_ipc
import pyarrow.parquet as pq

from .errors import SourceUnavailableError

logger = logging.getLogger(__name__)

_DATA_DIR = os.environ.get("LENS_DATA_DIR", "data")
_DATA_PROFILE = os.environ.get("LENS_DATA_PROFILE")

REQUIRED_COLUMNS = ("lat", "lon", "similarity")
IPC_SUFFIXES = (".arrow", ".feather", ".ipc")


class Sample(NamedTuple):
    lat: float
    lon: float
    similarity: float


@dataclass(frozen=True)
class LensSamples:
    """Equal-length float64 columns for one lens. Never mutated after load."""

    lat: np.ndarray
    lon: np.ndarray
    similarity: np.ndarray

    def __post_init__(self) -> None:
        if not (len(self.lat) == len(self.lon) == len(self.similarity)):
            raise SourceUnavailableError(
                f"Column length mismatch: lat={len(self.lat)} lon={len(self.lon)} "
                f"similarity={len(self.similarity)}"
            )

    def __len__(self) -> int:
        return len(self.lat)

    def __iter__(self) -> Iterator[Sample]:
        for la, lo, s in zip(self.lat, self.lon, self.similarity):
            yield Sample(float(la), float(lo), float(s))

    @classmethod
    def empty(cls) -> "LensSamples":
        return cls(np.empty(0), np.empty(0), np.empty(0))

    @classmethod
    def from_samples(cls, samples: Iterable[Sample | tuple[float, float, float]]) -> "LensSamples":
        rows = [tuple(s) for s in samples]
        if not rows:
            return cls.empty()
        arr = np.asarray(rows, dtype=np.float64)
        return cls(arr[:, 0].copy(), arr[:, 1].copy(), arr[:, 2].copy())


def lens_data_dir() -> str:
    return _DATA_DIR


def _get_filesystem(location: str) -> Any | None:
    """Return an s3fs filesystem for s3:// locations, None for local paths."""
    if not location.startswith("s3://"):
        return None
    import s3fs
    if _DATA_PROFILE:
        return s3fs.S3FileSystem(profile=_DATA_PROFILE)
    return s3fs.S3FileSystem()


def _read_table(fh: Any, suffix: str) -> pa.Table:
    if suffix == ".parquet":
        return pq.read_table(fh)
    if suffix in IPC_SUFFIXES:
        # Accept both the IPC file format and the streaming format
        try:
            return pa_ipc.open_file(fh).read_all()
        except pa.ArrowInvalid:
            fh.seek(0)
            return pa_ipc.open_stream(fh).read_all()
    raise SourceUnavailableError(f"Unsupported columnar format: {suffix!r}")


def table_to_samples(table: pa.Table) -> LensSamples:
    """Extract lat/lon/similarity as float64 arrays, dropping rows with null, infinite or non-numeric values."""
    missing = [c for c in REQUIRED_COLUMNS if c not in table.column_names]
    if missing:
        raise SourceUnavailableError(f"Missing required columns: {missing}")
    df = table.select(list(REQUIRED_COLUMNS)).to_pandas()
    for c in REQUIRED_COLUMNS:
        df[c] = pd.to_numeric(df[c], errors="coerce")
    n_raw = len(df)
    df = df.replace([np.inf, -np.inf], np.nan).dropna()
    if len(df) < n_raw:
        logger.warning("Dropped %d rows with missing values", n_raw - len(df))
    return LensSamples(
        df["lat"].to_numpy(dtype=np.float64),
        df["lon"].to_numpy(dtype=np.float64),
        df["similarity"].to_numpy(dtype=np.float64),
    )


def read_columnar(path: str) -> LensSamples:
    """
    Read one lens file.

    A missing file is "no data" and yields empty samples. An unreadable file
    raises SourceUnavailableError.
    """
    fs = _get_filesystem(path)
    suffix = Path(path).suffix.lower()
    try:
        if fs is not None:
            if not fs.exists(path):
                logger.info("No data file for %s", path)
                return LensSamples.empty()
            with fs.open(path, "rb") as fh:
                table = _read_table(fh, suffix)
        else:
            if not Path(path).exists():
                logger.info("No data file for %s", path)
                return LensSamples.empty()
            with open(path, "rb") as fh:
                table = _read_table(fh, suffix)
    except SourceUnavailableError:
        raise
    except (OSError, pa.ArrowException) as e:
        raise SourceUnavailableError(f"Failed to read {path}: {e}") from e

    samples = table_to_samples(table)
    logger.info("Loaded %d samples from %s", len(samples), path)
    return samples


@lru_cache(maxsize=32)
def _load_cached(data_dir: str, filename: str) -> LensSamples:
    return read_columnar(f"{data_dir.rstrip('/')}/{filename}")


def load_lens_samples(filename: str, data_dir: str | None = None) -> LensSamples:
    """Load (once per process) the samples stored in `filename` under the data directory."""
    return _load_cached(data_dir or lens_data_dir(), filename)


def clear_cache() -> None:
    _load_cached.cache_clear()
