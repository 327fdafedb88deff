"""Procedural pillow-shading reconstruction from nested color layers."""
import logging
from typing import List, Optional, Set, Tuple

import numpy as np
from skimage import color as skcolor

from pixband.algorithm import Algorithm
from pixband.canvas import PixelCanvas
from pixband.detection import BandingDetection, count_banding_error
from pixband.geometry import path_anchor
from pixband.morphology import (
    erode,
    expand_shape,
    fill_external_contours,
    mask_center,
    translate_mask,
)
from pixband.subject import DEFAULT_THRESHOLD, subject_mask_from_array
from pixband.types import (
    BandingConfig,
    Color,
    CorrectionResult,
    ErosionMode,
    LayerOrder,
    Pos,
    WHITE,
)

logger = logging.getLogger(__name__)

Layer = Tuple[Color, np.ndarray]

DEBUG_LAYER_COLOR: Color = (255, 0, 0)
DEBUG_CANDIDATE_COLOR: Color = (0, 0, 255)


def _lightness(color: Color) -> float:
    rgb = np.array([[color]], dtype=np.float64) / 255.0
    return float(skcolor.rgb2lab(rgb)[0, 0, 0])


def extract_layers(
    image: np.ndarray,
    threshold: int = DEFAULT_THRESHOLD,
    order: LayerOrder = LayerOrder.AREA
) -> List[Layer]:
    """
    One filled mask per subject color.

    Each mask is the union of the filled external contours of that
    color's pixels, so a layer covers everything it encloses.

    Args:
        image: (H, W, 3) uint8 array
        threshold: near-white subject threshold
        order: AREA sorts by filled area, largest first; BRIGHTNESS sorts
            by CIELAB lightness, darkest first

    Returns:
        List of (color, uint8 mask) pairs
    """
    subject = subject_mask_from_array(image, threshold) > 0
    if not subject.any():
        return []

    colors = np.unique(image[subject].reshape(-1, 3), axis=0)
    layers = []
    for rgb in colors:
        color = (int(rgb[0]), int(rgb[1]), int(rgb[2]))
        pixels = subject & np.all(image == rgb, axis=-1)
        layers.append((color, fill_external_contours(pixels)))

    if order == LayerOrder.BRIGHTNESS:
        layers.sort(key=lambda layer: _lightness(layer[0]))
    else:
        layers.sort(key=lambda layer: -int(np.count_nonzero(layer[1])))
    return layers


def resolve_anchor(canvas) -> Optional[Pos]:
    """Generator position, else the drawn-path centroid, else None."""
    if canvas.generator is not None:
        return canvas.generator.pos
    return path_anchor(canvas.drawn_path)


def construct_corrected_canvas(
    layers: List[Layer],
    width: int,
    height: int,
    config: BandingConfig,
    rng: np.random.Generator,
    anchor: Optional[Pos] = None
) -> Tuple[PixelCanvas, List[np.ndarray], List[Set[Tuple[int, int]]]]:
    """
    Rebuild an image from its layers.

    The two outermost layers are painted as they are. Every further layer
    is shifted toward ``anchor`` (inner layers shift more), eroded, grown
    back with ``expand_shape`` and painted inside its clipping layer.

    Returns:
        (reconstructed canvas, eroded layer masks, expansion candidates)
    """
    out = np.empty((height, width, 3), dtype=np.uint8)
    out[...] = WHITE
    for color, mask in layers[:2]:
        out[mask > 0] = color

    debug_layers = []
    debug_candidates = []
    count = len(layers)

    for i in range(2, count):
        color, mask = layers[i]

        translated = mask
        center = mask_center(mask) if anchor is not None else None
        if center is not None:
            attenuation = 1.0 / (count - i)
            dx = (anchor[0] - center[0]) * attenuation
            dy = (anchor[1] - center[1]) * attenuation
            translated = translate_mask(mask, dx, dy)

        if config.erosion_mode == ErosionMode.LINEAR_BY_LAYER:
            erosion = int(config.linear_erosion_factor * i)
        else:
            erosion = 1
        eroded = erode(translated, erosion)
        debug_layers.append(eroded)

        candidates: Set[Tuple[int, int]] = set()
        grown = expand_shape(
            eroded,
            iterations=config.expansion_iterations,
            probability=config.probability_to_add_pixel,
            rng=rng,
            bridge=config.bridge_gaps,
            candidates_out=candidates,
        )
        debug_candidates.append(candidates)

        clip = layers[i - 1][1] if config.preserve_outline else layers[0][1]
        out[(grown > 0) & (clip > 0)] = color

    return PixelCanvas.from_array(out), debug_layers, debug_candidates


class PillowShadingCorrection(Algorithm):
    """
    Replaces the shading of the subject with a procedural reconstruction.

    The reconstruction is attempted ``pipeline_iterations`` times with
    independent random streams and the attempt with the fewest banding
    pairs is written to the processed layer.
    """

    name = "Pillow-Shading Correction"

    def __init__(self, config: Optional[BandingConfig] = None):
        super().__init__(config)
        self.debug_layers: List[np.ndarray] = []
        self.debug_candidates: List[Set[Tuple[int, int]]] = []
        self.best_attempt: Optional[int] = None

    def run(self, canvas, config: Optional[BandingConfig] = None) -> CorrectionResult:
        config = self._config(config)
        canvas.clear_processed_pixels()
        canvas.clear_debug_pixels()
        canvas.clear_debug_lines()

        initial_error = count_banding_error(canvas, config.subject_threshold)
        layers = extract_layers(canvas.to_array(include_debug=False), config.subject_threshold, config.layer_order)
        if len(layers) < 2:
            logger.warning(f"Need at least 2 color layers for reconstruction, found {len(layers)}")
            return CorrectionResult(
                algorithm=self.name,
                initial_error=initial_error,
                final_error=initial_error,
                converged=initial_error == 0,
            )

        anchor = resolve_anchor(canvas)
        logger.info(f"Reconstructing {len(layers)} layers, anchor {anchor}")

        streams = np.random.SeedSequence(config.seed).spawn(config.pipeline_iterations)
        best = None
        for attempt, stream in enumerate(streams):
            corrected, debug_layers, debug_candidates = construct_corrected_canvas(
                layers, canvas.width, canvas.height, config, np.random.default_rng(stream), anchor
            )
            error = count_banding_error(corrected, config.subject_threshold)
            logger.debug(f"Attempt {attempt + 1}/{config.pipeline_iterations}: {error} banding pairs")
            if best is None or error < best[0]:
                best = (error, attempt, corrected, debug_layers, debug_candidates)

        best_error, self.best_attempt, corrected, self.debug_layers, self.debug_candidates = best
        canvas.set_processed_pixels(corrected)

        detection = BandingDetection(config).banding_detection(canvas, config)
        changed = int(np.any(canvas.to_array(include_debug=False) != canvas.base_array(), axis=-1).sum())
        logger.info(
            f"Best attempt {self.best_attempt + 1}/{config.pipeline_iterations}: "
            f"error {initial_error} -> {detection.error}"
        )
        return CorrectionResult(
            algorithm=self.name,
            initial_error=initial_error,
            final_error=detection.error,
            iterations=config.pipeline_iterations,
            converged=detection.error == 0,
            changed_pixels=changed,
        )

    def show_debug_layer(self, canvas, index: int, show_candidates: bool = False) -> None:
        """Paint one eroded layer (and its expansion candidates) on the debug layer."""
        canvas.clear_debug_pixels()
        if not 0 <= index < len(self.debug_layers):
            return
        ys, xs = np.nonzero(self.debug_layers[index])
        for x, y in zip(xs, ys):
            canvas.set_debug_pixel((int(x), int(y)), DEBUG_LAYER_COLOR)
        if show_candidates:
            for pos in self.debug_candidates[index]:
                canvas.set_debug_pixel(pos, DEBUG_CANDIDATE_COLOR)

    def reset(self, canvas) -> None:
        super().reset(canvas)
        canvas.clear_debug_lines()
        self.debug_layers = []
        self.debug_candidates = []
        self.best_attempt = None
