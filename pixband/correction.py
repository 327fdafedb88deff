"""Segment-level banding correction: shrink, recolor, expand or remove."""
import logging
from collections import Counter
from typing import Dict, List, Optional, Tuple

import numpy as np

from pixband.algorithm import Algorithm
from pixband.detection import (
    check_endpoint_alignment,
    count_banding_error,
    detect,
    get_segment_endpoints,
)
from pixband.segmentation import find_segment_by_key, make_segment
from pixband.subject import extract_subject_mask
from pixband.types import (
    BandingConfig,
    BandingPair,
    Cluster,
    Color,
    ColorMode,
    CorrectionResult,
    EdgeDirection,
    OperationMode,
    Pixel,
    Pos,
    Segment,
    WHITE,
)

logger = logging.getLogger(__name__)

# up, left, right, down; majority ties resolve in this order
NEIGHBOR_ORDER = ((0, -1), (-1, 0), (1, 0), (0, 1))

Undo = Dict[Pos, Color]


def extract_neighboring_segments(segment: Segment, clusters: List[Cluster]) -> List[Segment]:
    """
    Segments of other clusters touching ``segment`` across its scan axis.

    Horizontal segments only consider the rows above and below, vertical
    segments only the columns to the left and right; banding can only
    occur against those.
    """
    positions = set(segment.positions)
    if segment.horizontal:
        offsets = ((0, -1), (0, 1))
    else:
        offsets = ((-1, 0), (1, 0))

    neighbors = []
    for ci, cluster in enumerate(clusters):
        if ci == segment.cluster_index:
            continue
        for candidate in cluster:
            if candidate.key == segment.key:
                continue
            touching = any(
                (x + dx, y + dy) in positions
                for x, y in candidate.positions
                for dx, dy in offsets
            )
            if touching:
                neighbors.append(candidate)
    return neighbors


def detect_local_banding(segment: Segment, neighbors: List[Segment]) -> bool:
    """True when ``segment`` forms a banding pair with any of ``neighbors``."""
    if len(segment) <= 1:
        return False

    start, end = get_segment_endpoints(segment, segment.horizontal)
    for neighbor in neighbors:
        if len(neighbor) <= 1 or neighbor.color == segment.color:
            continue
        nb_start, nb_end = get_segment_endpoints(neighbor, segment.horizontal)
        if check_endpoint_alignment(start, end, nb_start, nb_end, segment.horizontal):
            return True
    return False


def _inside(mask: np.ndarray, pos: Pos) -> bool:
    x, y = pos
    return 0 <= y < mask.shape[0] and 0 <= x < mask.shape[1] and mask[y, x] != 0


def determine_replacement_color(
    canvas,
    pos: Pos,
    removed_color: Color,
    edge: EdgeDirection,
    config: BandingConfig,
    mask: np.ndarray,
) -> Color:
    """
    Color to paint over a pixel removed from a segment.

    Candidates are the 4-neighbors inside the subject whose color differs
    from the removed one. Without candidates the pixel becomes white
    background.

    Args:
        canvas: PixelCanvas being corrected
        pos: position of the removed pixel
        removed_color: its current color
        edge: end of the segment being altered, NONE for interior pixels
        config: supplies color_mode and operation_mode
        mask: subject mask of the canvas

    Returns:
        Replacement RGB color
    """
    x, y = pos
    candidates = []
    for dx, dy in NEIGHBOR_ORDER:
        neighbor = (x + dx, y + dy)
        if not _inside(mask, neighbor):
            continue
        color = canvas.get_color(neighbor)
        if color != removed_color:
            candidates.append(color)

    if not candidates:
        return WHITE

    chosen = Counter(candidates).most_common(1)[0][0]

    if config.color_mode == ColorMode.ENDPOINT_CONTINUATION and edge != EdgeDirection.NONE:
        dx, dy = edge.value
        ahead = (x + dx, y + dy)
        if _inside(mask, ahead):
            color = canvas.get_color(ahead)
            if color != removed_color:
                chosen = color

    if config.operation_mode == OperationMode.RECOLOR_AVERAGE:
        chosen = tuple((a + b) // 2 for a, b in zip(removed_color, chosen))

    return chosen


def _paint(canvas, pos: Pos, color: Color, undo: Undo) -> None:
    if pos not in undo:
        undo[pos] = canvas.get_color(pos)
    canvas.set_pixel(pos, color)


def _edges(segment: Segment, config: BandingConfig) -> List[Tuple[bool, EdgeDirection]]:
    """Enabled segment ends as (is_front, direction)."""
    if segment.horizontal:
        ends = [
            (config.alter_left_edge, True, EdgeDirection.LEFT),
            (config.alter_right_edge, False, EdgeDirection.RIGHT),
        ]
    else:
        ends = [
            (config.alter_top_edge, True, EdgeDirection.TOP),
            (config.alter_bottom_edge, False, EdgeDirection.BOTTOM),
        ]
    return [(front, direction) for enabled, front, direction in ends if enabled]


class BandingCorrection(Algorithm):
    """
    Corrects banding by altering individual segments.

    With a selected segment on the canvas only that segment is corrected
    (manual mode). Otherwise every banding pair found by detection is
    worked through until none remain or the iteration cap is reached.
    """

    name = "Banding Correction"

    def __init__(self, config: Optional[BandingConfig] = None):
        super().__init__(config)
        self._operations = {
            OperationMode.SHRINK: self._shrink,
            OperationMode.RECOLOR_AVERAGE: self._shrink,
            OperationMode.EXPAND: self._expand,
            OperationMode.REMOVE: self._remove,
        }

    def run(self, canvas, config: Optional[BandingConfig] = None) -> CorrectionResult:
        config = self._config(config)

        canvas.clear_debug_pixels()
        canvas.clear_debug_lines()
        if canvas.has_processed_pixels():
            canvas.commit_processed()

        original = canvas.base_array()
        initial_error = count_banding_error(canvas, config.subject_threshold)

        if canvas.selected_segment is not None and len(canvas.selected_segment) > 0:
            iterations = self._run_manual(canvas, canvas.selected_segment, config)
        else:
            iterations = self._run_automatic(canvas, config)

        result = detect(canvas, threshold=config.subject_threshold)
        canvas.set_error(result.error)
        canvas.set_affected_segments(result.affected_segments)
        canvas.clear_selected_segment()
        canvas.clear_highlighted_pixels()

        changed = int(np.any(canvas.base_array() != original, axis=-1).sum())
        logger.info(
            f"{self.name} ({config.operation_mode.name}): error {initial_error} -> {result.error}, "
            f"{changed} pixels changed in {iterations} iterations"
        )
        return CorrectionResult(
            algorithm=self.name,
            initial_error=initial_error,
            final_error=result.error,
            iterations=iterations,
            converged=result.error == 0,
            changed_pixels=changed,
        )

    def _run_manual(self, canvas, segment: Segment, config: BandingConfig) -> int:
        clusters = canvas.segment_clusters(segment.horizontal, config.subject_threshold)
        current = self._locate(clusters, segment)
        neighbors = extract_neighboring_segments(current, clusters)

        if not detect_local_banding(current, neighbors):
            logger.info("Selected segment shows no banding, nothing to correct")
            return 0

        self.correct_segment(canvas, current, config)
        return 1

    def _run_automatic(self, canvas, config: BandingConfig) -> int:
        """
        Correct banding pairs until none are left.

        Every correction is guarded against increasing the error, so the
        state at exit is the lowest-error state reached.
        """
        result = detect(canvas, threshold=config.subject_threshold)
        attempted = set()
        iterations = 0

        while result.affected_pairs and iterations < config.max_correction_iterations:
            pair = next((p for p in result.affected_pairs if self._pair_key(p) not in attempted), None)
            if pair is None:
                logger.info(f"{len(result.affected_pairs)} banding pairs left that cannot be corrected")
                break

            attempted.add(self._pair_key(pair))
            iterations += 1

            target = self._pick_target(pair)
            changed = self.correct_segment(canvas, target, config)
            if changed:
                result = detect(canvas, threshold=config.subject_threshold)
            logger.debug(f"Iteration {iterations}: {changed} pixels changed, error {result.error}")

        if result.affected_pairs and iterations >= config.max_correction_iterations:
            logger.warning(
                f"Stopped after {iterations} iterations with {result.error} banding pairs remaining"
            )
        return iterations

    @staticmethod
    def _pair_key(pair: BandingPair) -> Tuple:
        return (pair[0].horizontal,) + tuple(sorted(segment.key for segment in pair))

    @staticmethod
    def _pick_target(pair: BandingPair) -> Segment:
        """The member of ``pair`` lying further toward the bottom-right."""
        def position(segment):
            x, y = segment.start
            return (y, x) if segment.horizontal else (x, y)
        return max(pair, key=position)

    @staticmethod
    def _locate(clusters: List[Cluster], segment: Segment) -> Segment:
        current = find_segment_by_key(clusters, segment)
        if current is not None:
            return current
        return make_segment(segment.pixels, segment.horizontal)

    def correct_segment(self, canvas, segment: Segment, config: Optional[BandingConfig] = None) -> int:
        """
        Apply the configured operation to one segment.

        The change is reverted when it raises the banding error of the
        canvas.

        Returns:
            Number of pixels changed
        """
        config = self._config(config)
        clusters = canvas.segment_clusters(segment.horizontal, config.subject_threshold)
        current = self._locate(clusters, segment)
        neighbors = extract_neighboring_segments(current, clusters)
        mask = extract_subject_mask(canvas, config.subject_threshold)

        before = count_banding_error(canvas, config.subject_threshold)
        undo: Undo = {}
        self._operations[config.operation_mode](canvas, current, neighbors, config, mask, undo)

        changed = [pos for pos, color in undo.items() if canvas.get_color(pos) != color]
        if not changed:
            return 0

        after = count_banding_error(canvas, config.subject_threshold)
        if after > before:
            canvas.set_pixels(Pixel(color, pos) for pos, color in undo.items())
            logger.debug(f"Reverted correction of segment at {current.start}: error {before} -> {after}")
            return 0

        return len(changed)

    def _shrink(self, canvas, segment, neighbors, config, mask, undo) -> None:
        remaining = segment.sorted_pixels()
        edges = _edges(segment, config)
        step = 1 + int(len(remaining) * config.shrink_ratio)

        def shrink_once():
            for front, direction in edges:
                for _ in range(step):
                    if not remaining:
                        return
                    pixel = remaining.pop(0) if front else remaining.pop()
                    color = determine_replacement_color(
                        canvas, pixel.pos, pixel.color, direction, config, mask
                    )
                    _paint(canvas, pixel.pos, color, undo)

        shrink_once()
        if remaining and detect_local_banding(make_segment(remaining, segment.horizontal), neighbors):
            shrink_once()

    def _expand(self, canvas, segment, neighbors, config, mask, undo) -> None:
        color = segment.color
        grown = segment.sorted_pixels()
        edges = _edges(segment, config)

        def expand_once():
            for front, direction in edges:
                x, y = (grown[0] if front else grown[-1]).pos
                dx, dy = direction.value
                candidate = (x + dx, y + dy)
                if not canvas.in_bounds(candidate):
                    continue
                pixel = Pixel(color, candidate)
                if front:
                    grown.insert(0, pixel)
                else:
                    grown.append(pixel)
                _paint(canvas, candidate, color, undo)

        expand_once()
        if detect_local_banding(make_segment(grown, segment.horizontal), neighbors):
            expand_once()

    def _remove(self, canvas, segment, neighbors, config, mask, undo) -> None:
        majority = BandingConfig(color_mode=ColorMode.MAJORITY_NEIGHBOR, operation_mode=OperationMode.REMOVE)
        replacements = [
            (pixel.pos, determine_replacement_color(
                canvas, pixel.pos, pixel.color, EdgeDirection.NONE, majority, mask
            ))
            for pixel in segment.pixels
        ]
        for pos, color in replacements:
            _paint(canvas, pos, color, undo)

    def reset(self, canvas) -> None:
        super().reset(canvas)
        canvas.clear_debug_lines()
