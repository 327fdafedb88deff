"""File-to-file banding correction pipeline with save stages."""
from pathlib import Path
from typing import Optional, Tuple, Union
import time
import logging

import numpy as np

from pixband.algorithm import ALGORITHMS, get_algorithm
from pixband.canvas import PixelCanvas
from pixband.detection import BandingDetection
from pixband.types import BandingConfig, Color, CorrectionResult, ImageSaveError, Pos
from pixband.viz_utils import create_comparison_figure, save_canvas_overlay, save_mask

logger = logging.getLogger(__name__)

CORRECTION_STRATEGIES = ("correction", "pillow", "dither")

SELECTION_COLOR: Color = (255, 255, 0)


class BandingPipeline:
    """Load, detect, correct and save a single pixel-art image."""

    def __init__(self, config: Optional[BandingConfig] = None):
        self.config = config or BandingConfig()

    def process(
        self,
        input_path: Union[str, Path],
        output_path: Optional[Union[str, Path]] = None,
        strategy: str = "correction",
        selection: Optional[Tuple[Pos, bool]] = None,
        generator: Optional[Pos] = None,
        stages_dir: Optional[Union[str, Path]] = None
    ) -> dict:
        """
        Process an image through detection and one correction strategy.

        Args:
            input_path: Path to input image
            output_path: Where to write the result; nothing is written when None
            strategy: "detect" or one of CORRECTION_STRATEGIES
            selection: ((x, y), horizontal) of a segment to correct alone
            generator: anchor point for pillow shading
            stages_dir: Directory for intermediate stage images

        Returns:
            Report dict with error counts and run statistics
        """
        if strategy != "detect" and strategy not in CORRECTION_STRATEGIES:
            raise ValueError(f"Unknown strategy {strategy!r}, expected one of {sorted(ALGORITHMS)}")

        start_time = time.time()
        input_path = Path(input_path)
        stages = Path(stages_dir) if stages_dir else None
        if stages:
            stages.mkdir(parents=True, exist_ok=True)

        # Step 1: Load
        print("Step 1/4: Loading image...")
        canvas = PixelCanvas.from_file(input_path)
        original = canvas.base_array()
        print(f"  Image: {canvas.width}x{canvas.height}")
        if stages:
            self._save_stage(lambda p: save_canvas_overlay(canvas, p), stages / "stage_01_original.png")

        if generator is not None:
            if canvas.in_bounds(generator):
                canvas.set_generator(canvas.get_pixel(generator))
            else:
                logger.warning(f"Generator {generator} is outside the image, ignoring it")

        # Step 2: Detect
        print("Step 2/4: Detecting banding...")
        detection = BandingDetection(self.config).banding_detection(canvas)
        print(f"  Found {detection.error} banding pairs "
              f"({len(detection.horizontal_pairs)} horizontal, {len(detection.vertical_pairs)} vertical)")
        if stages:
            self._save_stage(lambda p: save_canvas_overlay(canvas, p), stages / "stage_02_detection.png")

        # Step 3: Correct
        if strategy == "detect":
            print("Step 3/4: Skipping correction (detect only)")
            result = CorrectionResult(
                algorithm=BandingDetection.name,
                initial_error=detection.error,
                final_error=detection.error,
                converged=detection.error == 0,
            )
        else:
            print(f"Step 3/4: Correcting with '{strategy}'...")
            if selection is not None:
                pos, horizontal = selection
                segment = canvas.select_segment_at(pos, horizontal, self.config.subject_threshold)
                if segment is None:
                    logger.warning(f"No segment at {pos}, correcting the whole image")
                else:
                    print(f"  Selected {'horizontal' if horizontal else 'vertical'} segment "
                          f"of {len(segment)} pixels at {segment.start}")
                    canvas.set_highlighted_pixels(segment.positions, SELECTION_COLOR)
                    if stages:
                        self._save_stage(lambda p: save_canvas_overlay(canvas, p), stages / "stage_02_selection.png")
            canvas.clear_debug_lines()
            algorithm = get_algorithm(strategy, self.config)
            result = algorithm.run(canvas, self.config)
            canvas.clear_highlighted_pixels()
            print(f"  Banding pairs: {result.initial_error} -> {result.final_error}")
            print(f"  Changed pixels: {result.changed_pixels}")

            if stages:
                BandingDetection(self.config).banding_detection(canvas)
                self._save_stage(lambda p: save_canvas_overlay(canvas, p), stages / "stage_03_corrected.png")
                for i, layer in enumerate(getattr(algorithm, 'debug_layers', [])):
                    self._save_stage(lambda p: save_mask(layer, p), stages / f"stage_03_layer_{i + 2:02d}.png")

        # Step 4: Save
        print("Step 4/4: Saving result...")
        corrected = canvas.to_array(include_debug=False)
        if output_path is not None:
            output_path = Path(output_path)
            if strategy == "detect":
                save_canvas_overlay(canvas, output_path)
            elif not canvas.save_to_file(output_path, include_debug=False):
                raise ImageSaveError(f"Failed to save result to {output_path}")
            print(f"  Saved to: {output_path}")

        if stages:
            self._save_stage(
                lambda p: create_comparison_figure(original, corrected, p, result.initial_error, result.final_error),
                stages / "stage_04_comparison.png"
            )

        elapsed = time.time() - start_time
        print(f"\nCompleted in {elapsed:.2f}s")

        return {
            'initial_error': result.initial_error,
            'final_error': result.final_error,
            'iterations': result.iterations,
            'converged': result.converged,
            'changed_pixels': int(np.any(corrected != original, axis=-1).sum()),
            'width': canvas.width,
            'height': canvas.height,
            'strategy': strategy,
        }

    def _save_stage(self, writer, output_path: Path):
        """Write one stage image, logging instead of failing."""
        try:
            writer(output_path)
            print(f"  Saved stage: {output_path}")
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to save stage {output_path.name}: {e}")
