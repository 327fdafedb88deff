"""Tests for segment-level banding correction."""
import numpy as np
import pytest

from pixband.correction import (
    BandingCorrection,
    detect_local_banding,
    determine_replacement_color,
    extract_neighboring_segments,
)
from pixband.detection import count_banding_error
from pixband.segmentation import find_segment_at
from pixband.subject import extract_subject_mask
from pixband.types import BandingConfig, ColorMode, EdgeDirection, OperationMode

from conftest import BLUE, GREEN, RED, WHITE, row


def _segment(canvas, pos, horizontal=True):
    return find_segment_at(canvas.segment_clusters(horizontal), pos)


class TestReplacementColor:
    """Color chosen for removed pixels."""

    def test_no_subject_neighbors_gives_white(self, make_canvas):
        canvas = make_canvas(5, 5, {(2, 2): RED})
        mask = extract_subject_mask(canvas)
        color = determine_replacement_color(canvas, (2, 2), RED, EdgeDirection.NONE, BandingConfig(), mask)
        assert color == WHITE

    def test_majority_tie_prefers_up(self, make_canvas):
        """Ties follow the up, left, right, down order."""
        canvas = make_canvas(3, 3, {
            (1, 1): RED, (1, 0): GREEN, (0, 1): GREEN, (2, 1): BLUE, (1, 2): BLUE,
        })
        mask = extract_subject_mask(canvas)
        config = BandingConfig(color_mode=ColorMode.MAJORITY_NEIGHBOR)
        assert determine_replacement_color(canvas, (1, 1), RED, EdgeDirection.NONE, config, mask) == GREEN

    def test_majority_ignores_removed_color(self, make_canvas):
        canvas = make_canvas(3, 3, {
            (1, 1): RED, (1, 0): RED, (0, 1): RED, (2, 1): BLUE,
        })
        mask = extract_subject_mask(canvas)
        config = BandingConfig(color_mode=ColorMode.MAJORITY_NEIGHBOR)
        assert determine_replacement_color(canvas, (1, 1), RED, EdgeDirection.NONE, config, mask) == BLUE

    def test_continuation_follows_edge(self, make_canvas):
        canvas = make_canvas(3, 3, {
            (1, 1): RED, (1, 0): GREEN, (0, 1): GREEN, (1, 2): GREEN, (2, 1): BLUE,
        })
        mask = extract_subject_mask(canvas)
        config = BandingConfig(color_mode=ColorMode.ENDPOINT_CONTINUATION)
        assert determine_replacement_color(canvas, (1, 1), RED, EdgeDirection.RIGHT, config, mask) == BLUE
        assert determine_replacement_color(canvas, (1, 1), RED, EdgeDirection.NONE, config, mask) == GREEN

    def test_continuation_outside_subject_falls_back(self, make_canvas):
        canvas = make_canvas(3, 3, {(1, 1): RED, (1, 0): GREEN})
        mask = extract_subject_mask(canvas)
        config = BandingConfig(color_mode=ColorMode.ENDPOINT_CONTINUATION)
        assert determine_replacement_color(canvas, (1, 1), RED, EdgeDirection.RIGHT, config, mask) == GREEN

    def test_average(self, make_canvas):
        canvas = make_canvas(3, 3, {(1, 1): BLUE, (1, 0): RED})
        mask = extract_subject_mask(canvas)
        config = BandingConfig(operation_mode=OperationMode.RECOLOR_AVERAGE)
        color = determine_replacement_color(canvas, (1, 1), BLUE, EdgeDirection.LEFT, config, mask)
        assert color == (127, 0, 127)


class TestNeighbors:
    def test_only_across_scan_axis(self, make_canvas):
        """A horizontal segment only sees rows above and below."""
        pixels = {}
        pixels.update(row(RED, 2, 1, 3))
        pixels.update(row(BLUE, 3, 1, 3))
        pixels[(4, 2)] = GREEN
        canvas = make_canvas(6, 5, pixels)

        clusters = canvas.segment_clusters(True)
        segment = find_segment_at(clusters, (2, 2))
        neighbors = extract_neighboring_segments(segment, clusters)
        assert [n.color for n in neighbors] == [BLUE]
        assert detect_local_banding(segment, neighbors)

    def test_no_local_banding_when_shifted(self, shifted_canvas):
        clusters = shifted_canvas.segment_clusters(True)
        segment = find_segment_at(clusters, (0, 5))
        neighbors = extract_neighboring_segments(segment, clusters)
        assert len(neighbors) == 1
        assert not detect_local_banding(segment, neighbors)


class TestShrink:
    """Default operation: remove segment ends."""

    def test_automatic_removes_banding(self, banded_canvas):
        result = BandingCorrection().run(banded_canvas)

        assert result.initial_error == 1
        assert result.final_error == 0
        assert result.converged
        assert result.improved
        assert result.changed_pixels == 2
        # the lower segment lost both ends to its neighbor's color
        assert banded_canvas.get_color((0, 6)) == RED
        assert banded_canvas.get_color((3, 6)) == RED
        assert banded_canvas.get_color((1, 6)) == BLUE
        assert banded_canvas.error == 0
        assert banded_canvas.selected_segment is None

    def test_manual_mode(self, banded_canvas):
        banded_canvas.select_segment_at((2, 5), horizontal=True)
        result = BandingCorrection().run(banded_canvas)

        assert result.iterations == 1
        assert result.final_error == 0
        assert banded_canvas.get_color((0, 5)) == BLUE
        assert banded_canvas.get_color((0, 6)) == BLUE

    def test_manual_without_banding_changes_nothing(self, shifted_canvas):
        before = shifted_canvas.base_array()
        shifted_canvas.select_segment_at((1, 5), horizontal=True)
        result = BandingCorrection().run(shifted_canvas)
        assert result.iterations == 0
        assert result.changed_pixels == 0
        np.testing.assert_array_equal(shifted_canvas.base_array(), before)

    def test_single_pixel_does_not_underflow(self, make_canvas):
        """Shrinking both ends of a 1-pixel segment removes it once."""
        pixels = row(RED, 5, 0, 3)
        pixels[(0, 6)] = BLUE
        canvas = make_canvas(6, 8, pixels)

        segment = _segment(canvas, (0, 6))
        changed = BandingCorrection().correct_segment(canvas, segment)
        assert changed == 1
        assert canvas.get_color((0, 6)) == RED

    def test_disabled_edges_leave_canvas(self, banded_canvas):
        config = BandingConfig(alter_left_edge=False, alter_right_edge=False)
        before = banded_canvas.base_array()
        result = BandingCorrection(config).run(banded_canvas)
        assert result.final_error == result.initial_error == 1
        np.testing.assert_array_equal(banded_canvas.base_array(), before)

    def test_reverted_when_error_rises(self, make_canvas):
        """Recoloring both ends would align them with the green columns."""
        pixels = {}
        pixels.update(row(RED, 5, 1, 4))
        pixels.update(row(BLUE, 6, 1, 4))
        for y in (5, 6):
            pixels[(0, y)] = GREEN
            pixels[(5, y)] = GREEN
        canvas = make_canvas(7, 9, pixels)
        before = canvas.base_array()
        assert count_banding_error(canvas) == 1

        config = BandingConfig(color_mode=ColorMode.MAJORITY_NEIGHBOR)
        segment = _segment(canvas, (1, 6))
        assert BandingCorrection(config).correct_segment(canvas, segment, config) == 0
        np.testing.assert_array_equal(canvas.base_array(), before)
        assert count_banding_error(canvas) == 1

    def test_shrink_ratio_removes_more(self, make_canvas):
        pixels = {}
        pixels.update(row(RED, 2, 0, 7))
        pixels.update(row(BLUE, 3, 0, 7))
        canvas = make_canvas(10, 6, pixels)

        config = BandingConfig(shrink_ratio=0.25, alter_right_edge=False)
        segment = _segment(canvas, (0, 3))
        changed = BandingCorrection(config).correct_segment(canvas, segment, config)
        assert changed == 3
        assert [canvas.get_color((x, 3)) for x in range(4)] == [RED, RED, RED, BLUE]


class TestOtherOperations:
    def test_recolor_average(self, banded_canvas):
        config = BandingConfig(operation_mode=OperationMode.RECOLOR_AVERAGE)
        result = BandingCorrection(config).run(banded_canvas)
        assert result.final_error == 0
        assert banded_canvas.get_color((0, 6)) == (127, 0, 127)
        assert banded_canvas.get_color((3, 6)) == (127, 0, 127)

    def test_remove(self, banded_canvas):
        config = BandingConfig(operation_mode=OperationMode.REMOVE)
        result = BandingCorrection(config).run(banded_canvas)
        assert result.final_error == 0
        assert all(banded_canvas.get_color((x, 6)) == RED for x in range(4))

    def test_expand_skips_canvas_border(self, make_canvas):
        """Growing left from x=0 is skipped, growing right still happens."""
        pixels = {}
        pixels.update(row(RED, 1, 0, 2))
        pixels.update(row(BLUE, 2, 0, 2))
        canvas = make_canvas(6, 4, pixels)

        config = BandingConfig(operation_mode=OperationMode.EXPAND)
        result = BandingCorrection(config).run(canvas)
        assert result.final_error == 0
        assert canvas.get_color((3, 2)) == BLUE
        assert canvas.get_color((0, 2)) == BLUE
        assert canvas.shape == (4, 6)

    def test_expand_only_blocked_edge(self, make_canvas):
        pixels = {}
        pixels.update(row(RED, 1, 0, 2))
        pixels.update(row(BLUE, 2, 0, 2))
        canvas = make_canvas(6, 4, pixels)

        config = BandingConfig(operation_mode=OperationMode.EXPAND, alter_right_edge=False)
        segment = _segment(canvas, (0, 2))
        assert BandingCorrection(config).correct_segment(canvas, segment, config) == 0
        assert count_banding_error(canvas) == 1


class TestAutomaticLoop:
    """Convergence loop over the whole canvas."""

    @pytest.fixture
    def striped_canvas(self, make_canvas):
        colors = [RED, BLUE, GREEN, (120, 80, 40)]
        pixels = {}
        for i, y in enumerate(range(2, 10)):
            pixels.update(row(colors[i % len(colors)], y, 2, 9))
        return make_canvas(12, 12, pixels)

    @pytest.mark.parametrize("mode", list(OperationMode))
    def test_never_increases_error(self, striped_canvas, mode):
        config = BandingConfig(operation_mode=mode)
        result = BandingCorrection(config).run(striped_canvas)
        assert result.final_error <= result.initial_error
        assert striped_canvas.error == result.final_error

    def test_iteration_cap(self, striped_canvas):
        config = BandingConfig(max_correction_iterations=1)
        result = BandingCorrection(config).run(striped_canvas)
        assert result.iterations == 1
        assert result.final_error <= result.initial_error

    def test_clean_canvas(self, shifted_canvas):
        result = BandingCorrection().run(shifted_canvas)
        assert result.iterations == 0
        assert result.converged
