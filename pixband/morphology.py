"""Binary mask morphology used by procedural reconstruction."""
import logging
from typing import Optional, Set, Tuple

import cv2
import numpy as np
from scipy import ndimage

logger = logging.getLogger(__name__)

KERNEL = np.ones((3, 3), dtype=np.uint8)

# 8-neighborhood, center excluded
_NEIGHBOR_KERNEL = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]], dtype=np.int32)


def erode(mask: np.ndarray, iterations: int = 1) -> np.ndarray:
    """Erode with a 3x3 square; zero iterations returns a copy."""
    mask = np.asarray(mask, dtype=np.uint8)
    if iterations <= 0:
        return mask.copy()
    return cv2.erode(mask, KERNEL, iterations=iterations)


def dilate(mask: np.ndarray, iterations: int = 1) -> np.ndarray:
    """Dilate with a 3x3 square; zero iterations returns a copy."""
    mask = np.asarray(mask, dtype=np.uint8)
    if iterations <= 0:
        return mask.copy()
    return cv2.dilate(mask, KERNEL, iterations=iterations)


def fill_external_contours(mask: np.ndarray) -> np.ndarray:
    """Fill every external contour of ``mask``, closing interior holes."""
    binary = (np.asarray(mask) > 0).astype(np.uint8) * 255
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    filled = np.zeros_like(binary)
    if contours:
        cv2.drawContours(filled, contours, -1, 255, cv2.FILLED)
    return filled


def mask_center(mask: np.ndarray) -> Optional[Tuple[int, int]]:
    """Integer center of the bounding box of ``mask``, None when empty."""
    ys, xs = np.nonzero(mask)
    if len(xs) == 0:
        return None
    return (int(xs.min()) + int(xs.max())) // 2, (int(ys.min()) + int(ys.max())) // 2


def translate_mask(mask: np.ndarray, dx: float, dy: float) -> np.ndarray:
    """
    Shift every foreground pixel by (dx, dy).

    Fractional targets are truncated toward zero and pixels leaving the
    image are dropped.
    """
    out = np.zeros(mask.shape, dtype=np.uint8)
    ys, xs = np.nonzero(mask)
    new_x = np.trunc(xs + dx).astype(np.int64)
    new_y = np.trunc(ys + dy).astype(np.int64)
    keep = (new_x >= 0) & (new_x < mask.shape[1]) & (new_y >= 0) & (new_y < mask.shape[0])
    out[new_y[keep], new_x[keep]] = 255
    return out


def _neighbor_counts(shape: np.ndarray) -> np.ndarray:
    return ndimage.convolve(shape.astype(np.int32), _NEIGHBOR_KERNEL, mode='constant', cval=0)


def expand_shape(
    mask: np.ndarray,
    iterations: int = 1,
    probability: float = 0.3,
    rng: Optional[np.random.Generator] = None,
    bridge: bool = False,
    candidates_out: Optional[Set[Tuple[int, int]]] = None
) -> np.ndarray:
    """
    Grow a binary shape organically.

    Each iteration adds background pixels with exactly three foreground
    8-neighbors at random with ``probability``, then adds every pixel
    with four foreground neighbors. The returned mask is the final shape
    dilated once with a 3x3 square. Growth may leave the image; those
    pixels still count as neighbors but are cropped from the result.

    Args:
        mask: (H, W) binary mask, nonzero for foreground
        iterations: number of growth iterations, 0 returns the input
        probability: chance to add a 3-neighbor candidate
        rng: numpy Generator; a fresh unseeded one is used when None
        bridge: close 1-pixel gaps in the result with ``bridge_gaps``
        candidates_out: receives in-image candidate positions as (x, y)

    Returns:
        uint8 mask with 255 for foreground
    """
    mask = np.asarray(mask)
    if iterations <= 0:
        return (mask > 0).astype(np.uint8) * 255

    if rng is None:
        rng = np.random.default_rng()

    height, width = mask.shape
    pad = iterations + 1
    shape = np.pad(mask > 0, pad, mode='constant')

    def record(points: np.ndarray) -> None:
        if candidates_out is None:
            return
        for y, x in zip(*np.nonzero(points)):
            x, y = int(x) - pad, int(y) - pad
            if 0 <= x < width and 0 <= y < height:
                candidates_out.add((x, y))

    counts = _neighbor_counts(shape)
    record(~shape & (counts > 0))

    for _ in range(iterations):
        counts = _neighbor_counts(shape)
        ys, xs = np.nonzero(~shape & (counts == 3))
        chosen = rng.random(len(ys)) < probability
        shape[ys[chosen], xs[chosen]] = True

        counts = _neighbor_counts(shape)
        shape |= ~shape & (counts == 4)

    cropped = shape[pad:pad + height, pad:pad + width].astype(np.uint8) * 255
    result = dilate(cropped)

    record(np.pad((result > 0) & (cropped == 0), pad, mode='constant'))

    if bridge:
        result = bridge_gaps(result)
    return result


def _bridge_rows(fg: np.ndarray, out: np.ndarray, gap: int) -> None:
    span = gap + 1
    width = fg.shape[1]
    if width <= span:
        return
    hit = fg[:, :width - span] & fg[:, span:]
    for j in range(1, span):
        hit &= ~fg[:, j:width - span + j]
    for j in range(1, span):
        out[:, j:width - span + j] |= hit


def bridge_gaps(mask: np.ndarray, max_gap: int = 1) -> np.ndarray:
    """
    Close straight background gaps of up to ``max_gap`` pixels.

    A gap is filled only when the walk from a foreground pixel across
    background meets foreground again within ``max_gap`` steps along a
    row or a column. Walks that leave the image are discarded.
    """
    fg = np.asarray(mask) > 0
    out = fg.copy()
    for gap in range(1, max_gap + 1):
        _bridge_rows(fg, out, gap)
        _bridge_rows(fg.T, out.T, gap)
    bridged = int(out.sum() - fg.sum())
    if bridged:
        logger.debug(f"Bridged {bridged} gap pixels")
    return out.astype(np.uint8) * 255
