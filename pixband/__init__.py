"""Pixel-art banding detection and correction."""
from pixband.types import (
    Pixel,
    Segment,
    DetectionResult,
    CorrectionResult,
    BandingConfig,
    OperationMode,
    ColorMode,
    ErosionMode,
    LayerOrder,
    BandingError,
)
from pixband.canvas import PixelCanvas
from pixband.pipeline import BandingPipeline

__all__ = [
    "Pixel",
    "Segment",
    "DetectionResult",
    "CorrectionResult",
    "BandingConfig",
    "OperationMode",
    "ColorMode",
    "ErosionMode",
    "LayerOrder",
    "BandingError",
    "PixelCanvas",
    "BandingPipeline",
]
