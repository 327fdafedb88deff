"""Tests for cluster labelling and segment extraction."""
import numpy as np
import pytest

from pixband.segmentation import (
    build_position_index,
    find_segment_at,
    find_segment_by_key,
    is_segment_horizontal,
    label_clusters,
    make_segment,
    segment_array,
)
from pixband.subject import subject_mask_from_array
from pixband.types import Pixel, SegmentationError

from conftest import BLUE, GREEN, RED


def _sample_image():
    rng = np.random.default_rng(7)
    palette = np.array([[255, 255, 255], [255, 0, 0], [0, 0, 255], [0, 160, 0]], dtype=np.uint8)
    return palette[rng.integers(0, len(palette), size=(9, 11))]


class TestLabelClusters:
    """4-connected same-color regions."""

    def test_same_color_diagonal_is_two_clusters(self):
        image = np.full((3, 3, 3), 255, dtype=np.uint8)
        image[0, 0] = RED
        image[1, 1] = RED
        labels = label_clusters(image, subject_mask_from_array(image))
        assert labels[0, 0] != labels[1, 1]
        assert labels.max() == 2

    def test_raster_order(self):
        image = np.full((2, 3, 3), 255, dtype=np.uint8)
        image[1, 0] = BLUE
        image[0, 2] = RED
        labels = label_clusters(image, subject_mask_from_array(image))
        assert labels[0, 2] == 1
        assert labels[1, 0] == 2

    def test_mask_shape_mismatch(self):
        with pytest.raises(SegmentationError):
            label_clusters(np.zeros((2, 2, 3), dtype=np.uint8), np.zeros((3, 3), dtype=np.uint8))


class TestSegmentArray:
    """Row and column runs."""

    @pytest.mark.parametrize("horizontal", [True, False])
    def test_every_subject_pixel_once(self, horizontal):
        image = _sample_image()
        mask = subject_mask_from_array(image)
        clusters = segment_array(image, mask, horizontal)

        seen = [p.pos for cluster in clusters for segment in cluster for p in segment]
        assert len(seen) == len(set(seen))
        ys, xs = np.nonzero(mask)
        assert set(seen) == {(int(x), int(y)) for x, y in zip(xs, ys)}

    @pytest.mark.parametrize("horizontal", [True, False])
    def test_segments_are_contiguous_runs(self, horizontal):
        image = _sample_image()
        clusters = segment_array(image, subject_mask_from_array(image), horizontal)
        for ci, cluster in enumerate(clusters):
            color = cluster[0].color
            for si, segment in enumerate(cluster):
                assert segment.horizontal is horizontal
                assert (segment.cluster_index, segment.index) == (ci, si)
                assert all(p.color == color for p in segment)
                scan = [p.x if horizontal else p.y for p in segment]
                fixed = {p.y if horizontal else p.x for p in segment}
                assert len(fixed) == 1
                assert scan == list(range(scan[0], scan[0] + len(scan)))

    def test_isolated_pixel(self):
        image = np.full((3, 3, 3), 255, dtype=np.uint8)
        image[1, 1] = GREEN
        clusters = segment_array(image, subject_mask_from_array(image))
        assert len(clusters) == 1
        assert len(clusters[0]) == 1
        assert clusters[0][0].positions == [(1, 1)]

    def test_l_shape_orientations(self):
        image = np.full((4, 4, 3), 255, dtype=np.uint8)
        image[0, 0:3] = RED
        image[1:4, 0] = RED
        mask = subject_mask_from_array(image)

        horizontal = segment_array(image, mask, True)
        assert len(horizontal) == 1
        assert [len(s) for s in horizontal[0]] == [3, 1, 1, 1]

        vertical = segment_array(image, mask, False)
        assert [len(s) for s in vertical[0]] == [4, 1, 1]

    def test_background_only(self):
        image = np.full((2, 2, 3), 255, dtype=np.uint8)
        assert segment_array(image, subject_mask_from_array(image)) == []


class TestSegmentLookup:
    def test_find_segment_at_and_by_key(self, banded_canvas):
        clusters = banded_canvas.segment_clusters(True)
        segment = find_segment_at(clusters, (1, 5))
        assert segment.color == RED
        assert find_segment_at(clusters, (7, 0)) is None

        copy = make_segment(list(reversed(segment.pixels)), horizontal=True)
        assert find_segment_by_key(clusters, copy) is segment

    def test_position_index(self, banded_canvas):
        clusters = banded_canvas.segment_clusters(True)
        index = build_position_index(clusters)
        assert len(index) == 8
        ci, si = index[(2, 6)]
        assert clusters[ci][si].color == BLUE

    def test_bounding_box_orientation(self):
        assert is_segment_horizontal([Pixel(RED, (0, 0)), Pixel(RED, (2, 0))])
        assert not is_segment_horizontal([Pixel(RED, (0, 0)), Pixel(RED, (0, 2))])
        assert make_segment([Pixel(RED, (0, 1)), Pixel(RED, (0, 0))]).horizontal is False
