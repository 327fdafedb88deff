"""Common lifecycle for canvas algorithms and name-based dispatch."""
from typing import Callable, Dict, Optional

from pixband.types import BandingConfig, CorrectionResult


class Algorithm:
    """
    Base class for detection and correction algorithms.

    The canvas is passed to every call instead of being bound at
    construction, so one instance can serve several canvases.
    """

    name = "Algorithm"

    def __init__(self, config: Optional[BandingConfig] = None):
        self.config = config or BandingConfig()

    def run(self, canvas, config: Optional[BandingConfig] = None) -> CorrectionResult:
        raise NotImplementedError

    def reset(self, canvas) -> None:
        """Drop every overlay this algorithm may have produced."""
        canvas.clear_processed_pixels()
        canvas.clear_debug_pixels()

    def _config(self, config: Optional[BandingConfig]) -> BandingConfig:
        return config or self.config

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def _subject_detection(config):
    from pixband.subject import SubjectDetection
    return SubjectDetection(config)


def _banding_detection(config):
    from pixband.detection import BandingDetection
    return BandingDetection(config)


def _banding_correction(config):
    from pixband.correction import BandingCorrection
    return BandingCorrection(config)


def _pillow_shading(config):
    from pixband.pillow_shading import PillowShadingCorrection
    return PillowShadingCorrection(config)


def _dithering(config):
    from pixband.dithering import Dithering
    return Dithering(config)


ALGORITHMS: Dict[str, Callable[[Optional[BandingConfig]], Algorithm]] = {
    "subject": _subject_detection,
    "detect": _banding_detection,
    "correction": _banding_correction,
    "pillow": _pillow_shading,
    "dither": _dithering,
}


def get_algorithm(name: str, config: Optional[BandingConfig] = None) -> Algorithm:
    """Instantiate the algorithm registered under ``name``."""
    try:
        factory = ALGORITHMS[name]
    except KeyError:
        raise ValueError(
            f"Unknown algorithm {name!r}, expected one of {sorted(ALGORITHMS)}"
        ) from None
    return factory(config)
