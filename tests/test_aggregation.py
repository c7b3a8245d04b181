"""
Tests for the spatial binning aggregator.

Tests cover:
- Bin key computation
- Bounding-box filtering
- Within-lens merging (pairwise and cumulative modes)
- Cross-lens merging in caller order
- Failure modes
"""

import pytest

from lens_grid.aggregation import (
    MERGE_CUMULATIVE,
    MERGE_PAIRWISE,
    aggregate,
    aggregate_lens,
    bin_key,
    merge_cells,
)
from lens_grid.errors import EmptyLensSelectionError, InvalidBoundsError
from lens_grid.geometry import BoundingBox
from lens_grid.source import LensSamples, Sample

BBOX = BoundingBox(north=47.0, south=46.0, east=9.0, west=8.0)


def samples(*rows):
    return LensSamples.from_samples(rows)


# =============================================================================
# Bin key Tests
# =============================================================================


class TestBinKey:
    """Tests for bin_key."""

    def test_same_cell(self):
        assert bin_key(46.5, 8.5, 0.01) == bin_key(46.5001, 8.5001, 0.01)

    def test_neighbouring_cells(self):
        assert bin_key(46.505, 8.505, 0.01) != bin_key(46.515, 8.505, 0.01)
        assert bin_key(46.505, 8.505, 0.01) != bin_key(46.505, 8.515, 0.01)

    def test_floor_for_negative_coordinates(self):
        assert bin_key(-0.005, -0.005, 0.01) == (-1, -1)


# =============================================================================
# Single-lens aggregation Tests
# =============================================================================


class TestAggregateLens:
    """Tests for aggregate_lens."""

    def test_scenario_two_samples_one_cell(self):
        """(46.5, 8.5, 0.2) and (46.5001, 8.5001, 0.8) collapse into one cell."""
        cells = aggregate_lens(samples((46.5, 8.5, 0.2), (46.5001, 8.5001, 0.8)), BBOX, 0.01)

        assert len(cells) == 1
        cell = next(iter(cells.values()))
        assert cell.lat == pytest.approx(46.50005)
        assert cell.lon == pytest.approx(8.50005)
        assert cell.similarity == pytest.approx(0.5)
        assert cell.count == 2

    def test_bbox_filter(self):
        cells = aggregate_lens(
            samples(
                (46.505, 8.505, 0.1),
                (47.5, 8.505, 0.2),    # north of bbox
                (46.505, 7.5, 0.3),    # west of bbox
                (45.9, 9.5, 0.4),      # south-east of bbox
            ),
            BBOX,
            0.01,
        )
        assert len(cells) == 1
        for cell in cells.values():
            assert BBOX.contains(cell.lat, cell.lon)

    def test_bbox_edges_inclusive(self):
        cells = aggregate_lens(samples((47.0, 9.0, 0.1), (46.0, 8.0, 0.2)), BBOX, 0.01)
        assert len(cells) == 2

    def test_distinct_cells_kept_separate(self):
        cells = aggregate_lens(
            samples((46.505, 8.505, 0.1), (46.515, 8.505, 0.2), (46.505, 8.515, 0.3)),
            BBOX,
            0.01,
        )
        assert len(cells) == 3

    def test_first_sample_is_initial_value(self):
        cells = aggregate_lens(samples((46.505, 8.505, 0.7)), BBOX, 0.01)
        cell = cells[bin_key(46.505, 8.505, 0.01)]
        assert (cell.lat, cell.lon, cell.similarity) == (46.505, 8.505, 0.7)

    def test_pairwise_running_average(self):
        """Each new sample is averaged with the running value, not the full history."""
        cells = aggregate_lens(
            samples((46.505, 8.505, 0.2), (46.505, 8.505, 0.4), (46.505, 8.505, 0.8)),
            BBOX,
            0.01,
            merge_mode=MERGE_PAIRWISE,
        )
        cell = next(iter(cells.values()))
        assert cell.similarity == pytest.approx(0.55)

    def test_pairwise_is_order_dependent(self):
        forward = aggregate_lens(
            samples((46.505, 8.505, 0.2), (46.505, 8.505, 0.4), (46.505, 8.505, 0.8)),
            BBOX, 0.01, merge_mode=MERGE_PAIRWISE,
        )
        backward = aggregate_lens(
            samples((46.505, 8.505, 0.8), (46.505, 8.505, 0.4), (46.505, 8.505, 0.2)),
            BBOX, 0.01, merge_mode=MERGE_PAIRWISE,
        )
        assert next(iter(forward.values())).similarity != pytest.approx(
            next(iter(backward.values())).similarity
        )

    def test_cumulative_mean(self):
        cells = aggregate_lens(
            samples((46.501, 8.505, 0.2), (46.503, 8.505, 0.4), (46.508, 8.505, 0.8)),
            BBOX,
            0.01,
            merge_mode=MERGE_CUMULATIVE,
        )
        cell = next(iter(cells.values()))
        assert cell.similarity == pytest.approx(1.4 / 3)
        assert cell.lat == pytest.approx((46.501 + 46.503 + 46.508) / 3)

    def test_cumulative_is_order_independent(self):
        rows = [(46.501, 8.505, 0.2), (46.503, 8.505, 0.4), (46.508, 8.505, 0.8)]
        forward = aggregate_lens(samples(*rows), BBOX, 0.01, merge_mode=MERGE_CUMULATIVE)
        backward = aggregate_lens(samples(*reversed(rows)), BBOX, 0.01, merge_mode=MERGE_CUMULATIVE)
        assert next(iter(forward.values())).similarity == pytest.approx(
            next(iter(backward.values())).similarity
        )

    def test_accepts_plain_sample_list(self):
        cells = aggregate_lens([Sample(46.505, 8.505, 0.3)], BBOX, 0.01)
        assert len(cells) == 1

    def test_empty_samples(self):
        assert aggregate_lens(LensSamples.empty(), BBOX, 0.01) == {}

    def test_invalid_merge_mode(self):
        with pytest.raises(ValueError):
            aggregate_lens(LensSamples.empty(), BBOX, 0.01, merge_mode="median")

    def test_invalid_bin_size(self):
        with pytest.raises(ValueError):
            aggregate_lens(LensSamples.empty(), BBOX, 0.0)


# =============================================================================
# Multi-lens aggregation Tests
# =============================================================================


class TestAggregate:
    """Tests for aggregate / merge_cells across lenses."""

    def test_cross_lens_average(self):
        water = samples((46.505, 8.505, 0.2))
        vegetation = samples((46.506, 8.506, 0.6), (46.705, 8.705, 0.9))

        cells = aggregate([water, vegetation], BBOX, 0.01)

        assert len(cells) == 2
        shared = cells[bin_key(46.505, 8.505, 0.01)]
        assert shared.similarity == pytest.approx(0.4)
        assert shared.lat == pytest.approx(46.5055)
        only_veg = cells[bin_key(46.705, 8.705, 0.01)]
        assert only_veg.similarity == pytest.approx(0.9)

    def test_cross_lens_pairwise_in_caller_order(self):
        a = samples((46.505, 8.505, 0.0))
        b = samples((46.505, 8.505, 1.0))
        c = samples((46.505, 8.505, 1.0))

        cells = aggregate([a, b, c], BBOX, 0.01, merge_mode=MERGE_PAIRWISE)
        assert next(iter(cells.values())).similarity == pytest.approx(0.75)

        cells = aggregate([b, c, a], BBOX, 0.01, merge_mode=MERGE_PAIRWISE)
        assert next(iter(cells.values())).similarity == pytest.approx(0.5)

    def test_cross_lens_cumulative_weights_each_lens_once(self):
        a = samples((46.505, 8.505, 0.0), (46.505, 8.505, 0.0), (46.505, 8.505, 0.0))
        b = samples((46.505, 8.505, 0.9))

        cells = aggregate([a, b], BBOX, 0.01, merge_mode=MERGE_CUMULATIVE)
        assert next(iter(cells.values())).similarity == pytest.approx(0.45)

    def test_merge_does_not_alias_lens_cells(self):
        lens_cells = aggregate_lens(samples((46.505, 8.505, 0.2)), BBOX, 0.01)
        combined = merge_cells({}, lens_cells)
        merge_cells(combined, aggregate_lens(samples((46.505, 8.505, 0.6)), BBOX, 0.01))

        assert next(iter(lens_cells.values())).similarity == pytest.approx(0.2)
        assert next(iter(combined.values())).similarity == pytest.approx(0.4)

    def test_output_never_exceeds_distinct_keys(self):
        rows = [(46.0 + i * 0.003, 8.0 + i * 0.003, i / 100) for i in range(100)]
        lens = samples(*rows)
        keys = {bin_key(la, lo, 0.01) for la, lo, _ in rows}
        cells = aggregate([lens, lens], BBOX, 0.01)
        assert len(cells) <= len(keys)

    def test_empty_lens_list(self):
        with pytest.raises(EmptyLensSelectionError):
            aggregate([], BBOX, 0.01)

    def test_invalid_bounds(self):
        bad = BoundingBox(north=46.0, south=47.0, east=9.0, west=8.0)
        with pytest.raises(InvalidBoundsError):
            aggregate([LensSamples.empty()], bad, 0.01)

    def test_all_samples_outside(self):
        assert aggregate([samples((50.0, 20.0, 0.5))], BBOX, 0.01) == {}
