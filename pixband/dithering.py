"""Gradient reconstruction of color layers followed by error diffusion."""
import logging
from typing import List, Optional

import numpy as np

from pixband.algorithm import Algorithm
from pixband.canvas import PixelCanvas
from pixband.detection import count_banding_error
from pixband.pillow_shading import Layer, extract_layers
from pixband.types import BandingConfig, Color, CorrectionResult, WHITE

logger = logging.getLogger(__name__)

# Floyd-Steinberg weights as (dx, dy, weight)
DIFFUSION = (
    (1, 0, 7 / 16),
    (-1, 1, 3 / 16),
    (0, 1, 5 / 16),
    (1, 1, 1 / 16),
)


def remove_overlaps(layers: List[Layer]) -> List[Layer]:
    """Subtract every later layer from each layer, leaving disjoint rings."""
    result = []
    for i, (color, mask) in enumerate(layers):
        ring = mask > 0
        for _, later in layers[i + 1:]:
            ring &= ~(later > 0)
        result.append((color, ring.astype(np.uint8) * 255))
    return result


def _touching(mask: np.ndarray) -> np.ndarray:
    """Pixels with a 4-neighbor in ``mask``."""
    out = np.zeros_like(mask)
    out[1:, :] |= mask[:-1, :]
    out[:-1, :] |= mask[1:, :]
    out[:, 1:] |= mask[:, :-1]
    out[:, :-1] |= mask[:, 1:]
    return out


def extract_sublayers(mask: np.ndarray, previous: np.ndarray) -> List[np.ndarray]:
    """
    Peel ``mask`` into rings growing inward from ``previous``.

    The first ring holds the pixels 4-adjacent to ``previous``, the next
    the pixels adjacent to the first ring, and so on. Pixels never reached
    are left out.
    """
    current = mask > 0
    accumulated = previous > 0
    sublayers = []

    while current.any():
        ring = current & _touching(accumulated)
        if not ring.any():
            break
        sublayers.append(ring)
        accumulated |= ring
        current &= ~ring

    return sublayers


def _blend(a: Color, b: Color, alpha: float) -> Color:
    return tuple(int(ca * (1 - alpha) + cb * alpha) for ca, cb in zip(a, b))


def create_gradient_image(layers: List[Layer], width: int, height: int) -> np.ndarray:
    """
    Paint disjoint layers with colors interpolated across their rings.

    The outer half of a layer's rings blends from the enclosing layer's
    color to its own, the inner half from its own color toward the next
    layer's.
    """
    out = np.empty((height, width, 3), dtype=np.uint8)
    out[...] = WHITE
    if not layers:
        return out

    out[layers[0][1] > 0] = layers[0][0]
    previous = layers[0][1]

    for i in range(1, len(layers)):
        color, mask = layers[i]
        sublayers = extract_sublayers(mask, previous)
        n = len(sublayers)

        if n == 1:
            out[sublayers[0]] = color
        elif n > 1:
            previous_color = layers[i - 1][0]
            next_color = layers[i + 1][0] if i + 1 < len(layers) else color
            for j, ring in enumerate(sublayers):
                if j < n // 2:
                    out[ring] = _blend(previous_color, color, (2 * j + 1) / n)
                else:
                    out[ring] = _blend(color, next_color, (2 * j - n + 1) / n)

        previous = mask

    return out


def floyd_steinberg(image: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """
    Dither ``image`` onto ``palette`` with Floyd-Steinberg error diffusion.

    Args:
        image: (H, W, 3) uint8 source
        palette: (K, 3) palette colors; ties go to the earlier entry

    Returns:
        (H, W, 3) uint8 array using only palette colors
    """
    height, width = image.shape[:2]
    palette = np.asarray(palette, dtype=np.int64)
    work = image.astype(np.float32)
    out = np.empty((height, width, 3), dtype=np.uint8)

    for y in range(height):
        for x in range(width):
            old = np.clip(work[y, x], 0.0, 255.0)
            target = old.astype(np.uint8).astype(np.int64)
            new = palette[np.argmin(((palette - target) ** 2).sum(axis=1))]
            out[y, x] = new

            err = old - new
            for dx, dy, weight in DIFFUSION:
                nx, ny = x + dx, y + dy
                if 0 <= nx < width and 0 <= ny < height:
                    work[ny, nx] += err * weight

    return out


class Dithering(Algorithm):
    """Smooths layer transitions with a dithered gradient."""

    name = "Dithering"

    def __init__(self, config: Optional[BandingConfig] = None):
        super().__init__(config)
        self.gradient: Optional[PixelCanvas] = None

    def run(self, canvas, config: Optional[BandingConfig] = None) -> CorrectionResult:
        config = self._config(config)
        canvas.clear_processed_pixels()
        canvas.clear_debug_pixels()

        image = canvas.to_array(include_debug=False)
        initial_error = count_banding_error(canvas, config.subject_threshold)

        layers = extract_layers(image, config.subject_threshold, config.layer_order)
        if len(layers) < 2:
            logger.warning(f"Need at least 2 color layers for dithering, found {len(layers)}")
            return CorrectionResult(
                algorithm=self.name,
                initial_error=initial_error,
                final_error=initial_error,
                converged=initial_error == 0,
            )

        gradient = create_gradient_image(remove_overlaps(layers), canvas.width, canvas.height)
        self.gradient = PixelCanvas.from_array(gradient)

        palette = np.unique(image.reshape(-1, 3), axis=0)
        dithered = floyd_steinberg(gradient, palette)
        canvas.set_processed_pixels(PixelCanvas.from_array(dithered))

        final_error = count_banding_error(canvas, config.subject_threshold)
        canvas.set_error(final_error)
        changed = int(np.any(dithered != image, axis=-1).sum())
        logger.info(
            f"Dithered {len(layers)} layers onto {len(palette)} colors: "
            f"error {initial_error} -> {final_error}, {changed} pixels changed"
        )
        return CorrectionResult(
            algorithm=self.name,
            initial_error=initial_error,
            final_error=final_error,
            iterations=1,
            converged=final_error == 0,
            changed_pixels=changed,
        )

    def show_gradient(self, canvas) -> None:
        """Overlay the undithered gradient on the debug layer."""
        if self.gradient is not None:
            canvas.set_debug_pixels(self.gradient)

    def reset(self, canvas) -> None:
        super().reset(canvas)
        self.gradient = None
