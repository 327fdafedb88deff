"""Tests for banding detection."""
import pytest

from pixband.detection import (
    BandingDetection,
    check_endpoint_alignment,
    count_banding_error,
    detect,
    find_banding_pairs,
    get_segment_endpoints,
    group_consecutive_pairs,
)
from pixband.segmentation import make_segment
from pixband.types import Pixel

from conftest import BLUE, GREEN, RED, row


def _pair_keys(pairs):
    return sorted(tuple(sorted(s.key for s in pair)) for pair in pairs)


class TestEndpointAlignment:
    """Both endpoints must coincide on adjacent lines."""

    def test_both_aligned(self):
        assert check_endpoint_alignment((0, 5), (3, 5), (0, 6), (3, 6), True) == "both"

    def test_partial_alignment_is_not_banding(self):
        assert check_endpoint_alignment((0, 5), (3, 5), (0, 6), (4, 6), True) is None
        assert check_endpoint_alignment((0, 5), (3, 5), (1, 6), (3, 6), True) is None

    def test_not_adjacent(self):
        assert check_endpoint_alignment((0, 5), (3, 5), (0, 7), (3, 7), True) is None
        assert check_endpoint_alignment((0, 5), (3, 5), (0, 5), (3, 5), True) is None

    def test_vertical(self):
        assert check_endpoint_alignment((2, 0), (2, 3), (3, 0), (3, 3), False) == "both"
        assert check_endpoint_alignment((2, 0), (2, 3), (3, 1), (3, 4), False) is None

    def test_segment_endpoints(self):
        segment = make_segment([Pixel(RED, (3, 1)), Pixel(RED, (1, 1)), Pixel(RED, (2, 1))], True)
        assert get_segment_endpoints(segment, True) == ((1, 1), (3, 1))


class TestDetect:
    """Whole-canvas detection."""

    def test_aligned_runs_give_one_pair(self, banded_canvas):
        """Red (0..3, 5) over blue (0..3, 6) is exactly one banding pair."""
        result = detect(banded_canvas)
        assert result.error == 1
        assert len(result.horizontal_pairs) == 1
        assert result.vertical_pairs == []
        a, b = result.affected_pairs[0]
        assert {a.color, b.color} == {RED, BLUE}
        assert len(result.affected_segments) == 2

    def test_shifted_runs_give_no_pair(self, shifted_canvas):
        """Shifting the blue run by one breaks the alignment."""
        result = detect(shifted_canvas)
        assert result.error == 0
        assert result.affected_pairs == []
        assert result.affected_segments == []

    def test_vertical_banding(self, make_canvas):
        pixels = {(5, y): RED for y in range(4)}
        pixels.update({(6, y): BLUE for y in range(4)})
        canvas = make_canvas(10, 6, pixels)

        result = detect(canvas)
        assert result.error == 1
        assert result.horizontal_pairs == []
        assert len(result.vertical_pairs) == 1
        assert detect(canvas, horizontal=True).error == 0
        assert detect(canvas, horizontal=False).error == 1

    def test_endpoints_orthogonal_to_scan(self, banded_canvas):
        """Horizontal pairs lie on neighboring rows with equal x extents."""
        for a, b in detect(banded_canvas).horizontal_pairs:
            (ax0, ay0), (ax1, ay1) = get_segment_endpoints(a, True)
            (bx0, by0), (bx1, by1) = get_segment_endpoints(b, True)
            assert abs(ay0 - by0) == 1
            assert (ax0, ax1) == (bx0, bx1)

    def test_deterministic(self, make_canvas):
        pixels = {}
        pixels.update(row(RED, 1, 1, 4))
        pixels.update(row(BLUE, 2, 1, 4))
        pixels.update(row(GREEN, 3, 1, 4))
        pixels.update(row(RED, 4, 2, 5))
        canvas = make_canvas(8, 8, pixels)

        first = detect(canvas)
        second = detect(canvas)
        assert first.error == second.error == 2
        assert _pair_keys(first.affected_pairs) == _pair_keys(second.affected_pairs)

    def test_each_pair_counted_once(self, make_canvas):
        """A segment may join several pairs but every pair counts once."""
        pixels = {}
        pixels.update(row(RED, 1, 0, 2))
        pixels.update(row(BLUE, 2, 0, 2))
        pixels.update(row(GREEN, 3, 0, 2))
        canvas = make_canvas(5, 5, pixels)

        result = detect(canvas)
        assert result.error == 2
        assert len(result.affected_segments) == 3
        assert len(set(_pair_keys(result.affected_pairs))) == 2

    def test_single_pixels_never_band(self, make_canvas):
        canvas = make_canvas(4, 4, {(1, 1): RED, (1, 2): BLUE})
        assert count_banding_error(canvas) == 0

    def test_same_cluster_is_not_banding(self, make_canvas):
        pixels = {}
        pixels.update(row(RED, 1, 0, 3))
        pixels.update(row(RED, 2, 0, 3))
        canvas = make_canvas(5, 4, pixels)
        assert count_banding_error(canvas) == 0

    def test_find_pairs_on_clusters(self, banded_canvas):
        clusters = banded_canvas.segment_clusters(True)
        assert len(find_banding_pairs(clusters, True)) == 1


class TestGrouping:
    """Stacks of consecutive aligned segments."""

    def test_band_of_three_rows_is_one_group(self, make_canvas):
        pixels = {}
        pixels.update(row(RED, 1, 0, 3))
        pixels.update(row(BLUE, 2, 0, 3))
        pixels.update(row(GREEN, 3, 0, 3))
        canvas = make_canvas(6, 6, pixels)

        pairs = detect(canvas).horizontal_pairs
        groups = group_consecutive_pairs(pairs, True)
        assert len(groups) == 1
        assert len(groups[0]) == 3

    def test_separate_bands(self, make_canvas):
        pixels = {}
        pixels.update(row(RED, 1, 0, 2))
        pixels.update(row(BLUE, 2, 0, 2))
        pixels.update(row(RED, 1, 5, 7))
        pixels.update(row(BLUE, 2, 5, 7))
        canvas = make_canvas(9, 4, pixels)

        pairs = detect(canvas).horizontal_pairs
        assert len(pairs) == 2
        assert len(group_consecutive_pairs(pairs, True)) == 2

    def test_empty(self):
        assert group_consecutive_pairs([], True) == []


class TestBandingDetectionAlgorithm:
    def test_outlines_and_caches(self, make_canvas):
        pixels = {}
        pixels.update(row(RED, 1, 0, 3))
        pixels.update(row(BLUE, 2, 0, 3))
        pixels.update(row(GREEN, 3, 0, 3))
        canvas = make_canvas(6, 6, pixels)

        result = BandingDetection().run(canvas)
        assert result.initial_error == result.final_error == 2
        assert canvas.error == 2
        assert len(canvas.affected_segments) == 3
        # one rectangle around the stacked band
        assert len(canvas.debug_lines) == 4
        assert all(line[2] == RED for line in canvas.debug_lines)

    def test_reset(self, banded_canvas):
        algorithm = BandingDetection()
        algorithm.run(banded_canvas)
        algorithm.reset(banded_canvas)
        assert banded_canvas.debug_lines == []
        assert banded_canvas.error == 0

    def test_no_banding(self, shifted_canvas):
        result = BandingDetection().run(shifted_canvas)
        assert result.converged
        assert shifted_canvas.debug_lines == []
