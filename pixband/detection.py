"""Banding detection: adjacent segments of different clusters sharing both endpoints."""
import logging
from typing import List, Optional, Tuple

from pixband.algorithm import Algorithm
from pixband.segmentation import build_position_index
from pixband.subject import DEFAULT_THRESHOLD
from pixband.types import (
    BandingConfig,
    BandingPair,
    Cluster,
    CorrectionResult,
    DetectionResult,
    Pos,
    RED,
    Segment,
)

logger = logging.getLogger(__name__)

NEIGHBORS_4 = ((1, 0), (-1, 0), (0, 1), (0, -1))


def get_segment_endpoints(segment: Segment, horizontal: bool) -> Tuple[Pos, Pos]:
    """First and last pixel positions along the scan axis."""
    if horizontal:
        ordered = sorted(segment.positions, key=lambda p: (p[0], p[1]))
    else:
        ordered = sorted(segment.positions, key=lambda p: (p[1], p[0]))
    return ordered[0], ordered[-1]


def check_endpoint_alignment(
    seg_start: Pos,
    seg_end: Pos,
    neighbor_start: Pos,
    neighbor_end: Pos,
    horizontal: bool
) -> Optional[str]:
    """
    Alignment of two segment projections.

    The segments must lie on neighboring rows (horizontal) or columns
    (vertical), and both their starts and their ends must coincide on the
    scan axis. Returns "both" on a match and None otherwise; a single
    matching endpoint is not banding.
    """
    if horizontal:
        if abs(seg_start[1] - neighbor_start[1]) != 1:
            return None
        if seg_start[0] == neighbor_start[0] and seg_end[0] == neighbor_end[0]:
            return "both"
    else:
        if abs(seg_start[0] - neighbor_start[0]) != 1:
            return None
        if seg_start[1] == neighbor_start[1] and seg_end[1] == neighbor_end[1]:
            return "both"
    return None


def find_banding_pairs(clusters: List[Cluster], horizontal: bool) -> List[BandingPair]:
    """
    Every banding pair among ``clusters`` for one scan orientation.

    Each unordered pair is reported once. Single-pixel segments are never
    examined as the first member since they have no extent to align.
    """
    index = build_position_index(clusters)
    counted = set()
    pairs: List[BandingPair] = []

    for ci, cluster in enumerate(clusters):
        for si, segment_a in enumerate(cluster):
            if len(segment_a) <= 1:
                continue

            candidates = set()
            for pixel in segment_a.pixels:
                x, y = pixel.pos
                for dx, dy in NEIGHBORS_4:
                    hit = index.get((x + dx, y + dy))
                    if hit is not None and hit[0] != ci:
                        candidates.add(hit)
            if not candidates:
                continue

            start_a, end_a = get_segment_endpoints(segment_a, horizontal)
            for cj, sj in sorted(candidates):
                pair_key = tuple(sorted(((ci, si), (cj, sj))))
                if pair_key in counted:
                    continue

                segment_b = clusters[cj][sj]
                start_b, end_b = get_segment_endpoints(segment_b, horizontal)
                if check_endpoint_alignment(start_a, end_a, start_b, end_b, horizontal):
                    counted.add(pair_key)
                    pairs.append((segment_a, segment_b))

    return pairs


def unique_segments(pairs: List[BandingPair]) -> List[Segment]:
    """Flatten pairs into segments, dropping repeats by pixel positions."""
    seen = set()
    flattened = []
    for pair in pairs:
        for segment in pair:
            key = (segment.horizontal, segment.key)
            if key not in seen:
                seen.add(key)
                flattened.append(segment)
    return flattened


def detect(canvas, horizontal: Optional[bool] = None, threshold: int = DEFAULT_THRESHOLD) -> DetectionResult:
    """
    Run banding detection on ``canvas``.

    Args:
        canvas: PixelCanvas to analyse
        horizontal: True or False for a single orientation, None for both
        threshold: near-white subject threshold

    Returns:
        DetectionResult with horizontal pairs listed before vertical ones
    """
    horizontal_pairs: List[BandingPair] = []
    vertical_pairs: List[BandingPair] = []

    if horizontal is None or horizontal:
        horizontal_pairs = find_banding_pairs(canvas.segment_clusters(True, threshold), True)
    if horizontal is None or not horizontal:
        vertical_pairs = find_banding_pairs(canvas.segment_clusters(False, threshold), False)

    pairs = horizontal_pairs + vertical_pairs
    return DetectionResult(
        error=len(pairs),
        affected_segments=unique_segments(pairs),
        affected_pairs=pairs,
        horizontal_pairs=horizontal_pairs,
        vertical_pairs=vertical_pairs,
    )


def count_banding_error(canvas, threshold: int = DEFAULT_THRESHOLD) -> int:
    """Number of banding pairs over both orientations."""
    return detect(canvas, threshold=threshold).error


def _consecutive(a: Segment, b: Segment, horizontal: bool) -> bool:
    a_start, a_end = get_segment_endpoints(a, horizontal)
    b_start, b_end = get_segment_endpoints(b, horizontal)
    if horizontal:
        return (abs(a_start[1] - b_start[1]) == 1 and abs(a_end[1] - b_end[1]) == 1
                and a_start[0] == b_start[0] and a_end[0] == b_end[0])
    return (abs(a_start[0] - b_start[0]) == 1 and abs(a_end[0] - b_end[0]) == 1
            and a_start[1] == b_start[1] and a_end[1] == b_end[1])


def group_consecutive_pairs(pairs: List[BandingPair], horizontal: bool) -> List[List[Segment]]:
    """
    Group the segments of ``pairs`` into stacks of aligned neighbors.

    Segments with identical endpoints on consecutive rows (or columns)
    end up in the same group, so a band spanning several rows is reported
    as one block.
    """
    segments = unique_segments(pairs)
    visited = [False] * len(segments)
    groups = []

    for i, segment in enumerate(segments):
        if visited[i]:
            continue
        visited[i] = True
        group = [segment]

        added = True
        while added:
            added = False
            for j, candidate in enumerate(segments):
                if visited[j]:
                    continue
                if any(_consecutive(member, candidate, horizontal) for member in group):
                    group.append(candidate)
                    visited[j] = True
                    added = True

        groups.append(group)

    return groups


class BandingDetection(Algorithm):
    """Detects banding in both orientations and outlines it with debug lines."""

    name = "Banding Detection"

    def banding_detection(self, canvas, config: Optional[BandingConfig] = None) -> DetectionResult:
        config = self._config(config)
        canvas.clear_debug_lines()

        result = detect(canvas, threshold=config.subject_threshold)

        for horizontal, pairs in ((True, result.horizontal_pairs), (False, result.vertical_pairs)):
            for group in group_consecutive_pairs(pairs, horizontal):
                canvas.draw_rectangle([p for segment in group for p in segment.pixels], RED)

        canvas.set_error(result.error)
        canvas.set_affected_segments(result.affected_segments)

        logger.info(
            f"Banding pairs: {result.error} "
            f"({len(result.horizontal_pairs)} horizontal, {len(result.vertical_pairs)} vertical), "
            f"{len(result.affected_segments)} affected segments"
        )
        return result

    def run(self, canvas, config: Optional[BandingConfig] = None) -> CorrectionResult:
        result = self.banding_detection(canvas, config)
        return CorrectionResult(
            algorithm=self.name,
            initial_error=result.error,
            final_error=result.error,
            converged=result.error == 0,
        )

    def reset(self, canvas) -> None:
        super().reset(canvas)
        canvas.clear_debug_lines()
        canvas.clear_highlighted_pixels()
        canvas.set_error(0)
