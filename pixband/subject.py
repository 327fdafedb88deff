"""Subject (foreground) extraction."""
import logging
from typing import List, Optional

import cv2
import numpy as np

from pixband.algorithm import Algorithm
from pixband.types import BandingConfig, CorrectionResult, Pixel, RED

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 250


def subject_mask_from_array(image: np.ndarray, threshold: int = DEFAULT_THRESHOLD) -> np.ndarray:
    """
    Binary subject mask of an RGB array.

    A pixel belongs to the subject when any channel is below
    ``threshold``; near-white pixels are background.

    Returns:
        uint8 mask (H, W) with 255 for subject and 0 for background
    """
    subject = np.any(image[..., :3] < threshold, axis=-1)
    return subject.astype(np.uint8) * 255


def extract_subject_mask(canvas, threshold: int = DEFAULT_THRESHOLD) -> np.ndarray:
    """Subject mask of a canvas, ignoring its debug overlay."""
    return subject_mask_from_array(canvas.to_array(include_debug=False), threshold)


def detect_subject_region(canvas, threshold: int = DEFAULT_THRESHOLD) -> List[Pixel]:
    """
    Pixels inside the largest non-white shape of the canvas.

    The canvas is reduced to luminance, inverse-thresholded, and the
    largest external contour is filled, so enclosed light areas count as
    subject too.
    """
    image = canvas.to_array(include_debug=False).astype(np.float32)
    luminance = (0.299 * image[..., 0] + 0.587 * image[..., 1] + 0.114 * image[..., 2]).astype(np.uint8)

    _, binary = cv2.threshold(luminance, threshold, 255, cv2.THRESH_BINARY_INV)
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    mask = np.zeros(luminance.shape, dtype=np.uint8)
    if contours:
        largest = max(contours, key=cv2.contourArea)
        cv2.drawContours(mask, [largest], -1, 255, cv2.FILLED)
    else:
        logger.warning("No subject found: canvas is entirely background")

    ys, xs = np.nonzero(mask)
    return [canvas.get_pixel((int(x), int(y))) for y, x in zip(ys, xs)]


class SubjectDetection(Algorithm):
    """Finds the subject and highlights it on the debug layer."""

    name = "Subject Detection"

    def __init__(self, config: Optional[BandingConfig] = None):
        super().__init__(config)
        self.selected_region: List[Pixel] = []

    def run(self, canvas, config: Optional[BandingConfig] = None) -> CorrectionResult:
        config = self._config(config)
        self.selected_region = detect_subject_region(canvas, config.subject_threshold)
        logger.info(f"Subject covers {len(self.selected_region)} pixels")
        return CorrectionResult(algorithm=self.name, converged=True)

    def highlight(self, canvas) -> None:
        for pixel in self.selected_region:
            canvas.set_debug_pixel(pixel.pos, RED)

    def reset(self, canvas) -> None:
        canvas.clear_debug_pixels()
        self.selected_region = []
