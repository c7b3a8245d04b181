"""Shared fixtures: columnar lens files written into a temporary data directory."""

import pyarrow as pa
import pyarrow.ipc as pa_ipc
import pyarrow.parquet as pq
import pytest

from lens_grid import source


def make_table(rows):
    lats, lons, sims = zip(*rows) if rows else ((), (), ())
    return pa.table({
        "lat": pa.array(lats, type=pa.float64()),
        "lon": pa.array(lons, type=pa.float64()),
        "similarity": pa.array(sims, type=pa.float64()),
    })


def write_arrow(path, rows):
    table = make_table(rows)
    with pa.OSFile(str(path), "wb") as sink:
        with pa_ipc.new_file(sink, table.schema) as writer:
            writer.write_table(table)
    return path


def write_parquet(path, rows):
    pq.write_table(make_table(rows), str(path))
    return path


@pytest.fixture(autouse=True)
def _clear_sample_cache():
    source.clear_cache()
    yield
    source.clear_cache()


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """Temporary LENS_DATA_DIR used by handlers that read the module default."""
    monkeypatch.setattr(source, "_DATA_DIR", str(tmp_path))
    return tmp_path
