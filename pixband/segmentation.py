"""Same-color cluster labelling and row/column segment extraction."""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from scipy import ndimage

from pixband.subject import DEFAULT_THRESHOLD, subject_mask_from_array
from pixband.types import Cluster, Pixel, Pos, Segment, SegmentationError

logger = logging.getLogger(__name__)

# 4-connectivity
_CROSS = ndimage.generate_binary_structure(2, 1)


def _color_keys(image: np.ndarray) -> np.ndarray:
    rgb = image[..., :3].astype(np.int32)
    return (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]


def label_clusters(image: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """
    Label maximal 4-connected same-color regions inside ``mask``.

    Labels start at 1 and are numbered in raster order of each region's
    first pixel; 0 marks pixels outside the mask.
    """
    if image.shape[:2] != mask.shape:
        raise SegmentationError(
            f"Mask shape {mask.shape} does not match image shape {image.shape[:2]}"
        )

    mask = mask.astype(bool)
    keys = _color_keys(image)
    labels = np.zeros(mask.shape, dtype=np.int32)

    next_label = 0
    for key in np.unique(keys[mask]):
        components, count = ndimage.label(mask & (keys == key), structure=_CROSS)
        inside = components > 0
        labels[inside] = components[inside] + next_label
        next_label += count

    if next_label == 0:
        return labels

    flat = labels.ravel()
    present, first_index = np.unique(flat[flat > 0], return_index=True)
    # first_index is relative to the filtered array; map back to raster order
    raster_index = np.flatnonzero(flat > 0)[first_index]
    remap = np.zeros(next_label + 1, dtype=np.int32)
    remap[present[np.argsort(raster_index)]] = np.arange(1, len(present) + 1, dtype=np.int32)
    return remap[labels]


def segment_array(image: np.ndarray, mask: np.ndarray, horizontal: bool = True) -> List[Cluster]:
    """
    Split every same-color cluster into maximal runs along one axis.

    Args:
        image: (H, W, 3) uint8 array
        mask: (H, W) subject mask, nonzero for subject pixels
        horizontal: group by row and run along x when True, otherwise
            group by column and run along y

    Returns:
        Clusters in raster order of their first pixel. Segments inside a
        cluster are ordered by row (or column), then by position.
    """
    labels = label_clusters(image, mask)
    ys, xs = np.nonzero(labels)
    if len(ys) == 0:
        return []

    cluster_ids = labels[ys, xs]
    group = ys if horizontal else xs
    scan = xs if horizontal else ys
    order = np.lexsort((scan, group, cluster_ids))

    clusters: List[Cluster] = []
    previous = None
    for i in order:
        cluster_id, g, s = int(cluster_ids[i]), int(group[i]), int(scan[i])
        x, y = int(xs[i]), int(ys[i])
        r, gr, b = image[y, x, :3]
        pixel = Pixel((int(r), int(gr), int(b)), (x, y))

        if previous is None or cluster_id != previous[0]:
            clusters.append([])
        if previous is None or cluster_id != previous[0] or g != previous[1] or s != previous[2] + 1:
            cluster = clusters[-1]
            cluster.append(Segment(
                pixels=[],
                horizontal=horizontal,
                cluster_index=len(clusters) - 1,
                index=len(cluster),
            ))
        clusters[-1][-1].pixels.append(pixel)
        previous = (cluster_id, g, s)

    return clusters


def segment_clusters(canvas, horizontal: bool = True, threshold: int = DEFAULT_THRESHOLD) -> List[Cluster]:
    """
    Segment the subject of ``canvas`` into clusters of runs.

    Reads processed-over-base pixels; the debug overlay never takes part.
    """
    image = canvas.to_array(include_debug=False)
    mask = subject_mask_from_array(image, threshold)
    clusters = segment_array(image, mask, horizontal)
    logger.debug(
        f"Segmented {len(clusters)} clusters into "
        f"{sum(len(c) for c in clusters)} {'horizontal' if horizontal else 'vertical'} segments"
    )
    return clusters


def build_position_index(clusters: List[Cluster]) -> Dict[Pos, Tuple[int, int]]:
    """Map every pixel position to (cluster index, segment index)."""
    index = {}
    for ci, cluster in enumerate(clusters):
        for si, segment in enumerate(cluster):
            for pixel in segment.pixels:
                index[pixel.pos] = (ci, si)
    return index


def find_segment_at(clusters: List[Cluster], pos: Pos) -> Optional[Segment]:
    """Segment containing ``pos``, or None."""
    for cluster in clusters:
        for segment in cluster:
            for pixel in segment.pixels:
                if pixel.pos == pos:
                    return segment
    return None


def find_segment_by_key(clusters: List[Cluster], segment: Segment) -> Optional[Segment]:
    """Segment of ``clusters`` with the same pixels and colors as ``segment``."""
    key = segment.key
    color = segment.color
    for cluster in clusters:
        for candidate in cluster:
            if len(candidate) == len(segment) and candidate.color == color and candidate.key == key:
                return candidate
    return None


def is_segment_horizontal(pixels: Iterable[Pixel]) -> bool:
    """Bounding-box orientation: wider than (or as wide as) tall."""
    pixels = list(pixels)
    if not pixels:
        return True
    xs = [p.pos[0] for p in pixels]
    ys = [p.pos[1] for p in pixels]
    return (max(xs) - min(xs)) >= (max(ys) - min(ys))


def make_segment(pixels: Iterable[Pixel], horizontal: Optional[bool] = None) -> Segment:
    """Build a free-standing segment, inferring orientation when not given."""
    pixels = list(pixels)
    if horizontal is None:
        horizontal = is_segment_horizontal(pixels)
    segment = Segment(pixels=pixels, horizontal=horizontal)
    segment.pixels = segment.sorted_pixels()
    return segment
