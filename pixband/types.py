"""Core types for the banding detection and correction pipeline."""
from dataclasses import dataclass, field
from typing import Optional, List, Tuple
from enum import Enum, auto


Color = Tuple[int, int, int]
Pos = Tuple[int, int]

WHITE: Color = (255, 255, 255)
RED: Color = (255, 0, 0)


class OperationMode(Enum):
    """Segment-level correction strategy."""
    SHRINK = auto()
    RECOLOR_AVERAGE = auto()
    EXPAND = auto()
    REMOVE = auto()


class ColorMode(Enum):
    """Policy for choosing the color of a removed pixel."""
    MAJORITY_NEIGHBOR = auto()
    ENDPOINT_CONTINUATION = auto()


class ErosionMode(Enum):
    """Erosion applied to each pillow-shading layer before regrowth."""
    CONSTANT = auto()
    LINEAR_BY_LAYER = auto()


class LayerOrder(Enum):
    """Ordering of color layers for procedural reconstruction."""
    AREA = auto()
    BRIGHTNESS = auto()


class EdgeDirection(Enum):
    """Segment end being altered."""
    NONE = (0, 0)
    LEFT = (-1, 0)
    RIGHT = (1, 0)
    TOP = (0, -1)
    BOTTOM = (0, 1)


@dataclass(frozen=True)
class Pixel:
    """A colored pixel at an integer (x, y) position."""
    color: Color = (0, 0, 0)
    pos: Pos = (0, 0)

    @property
    def x(self) -> int:
        return self.pos[0]

    @property
    def y(self) -> int:
        return self.pos[1]


@dataclass
class Segment:
    """
    Maximal same-color run of pixels along one scan axis.

    ``horizontal`` records the scan orientation the segment was produced
    under; every consumer uses it instead of re-deriving the orientation
    from the bounding box. ``cluster_index`` and ``index`` locate the
    segment inside the segmentation that produced it.
    """
    pixels: List[Pixel]
    horizontal: bool = True
    cluster_index: int = -1
    index: int = -1

    def __len__(self) -> int:
        return len(self.pixels)

    def __iter__(self):
        return iter(self.pixels)

    def __getitem__(self, item):
        return self.pixels[item]

    @property
    def color(self) -> Optional[Color]:
        return self.pixels[0].color if self.pixels else None

    @property
    def positions(self) -> List[Pos]:
        return [p.pos for p in self.pixels]

    @property
    def key(self) -> Tuple[Pos, ...]:
        """Content identity: sorted pixel positions."""
        return tuple(sorted(self.positions))

    def sorted_pixels(self) -> List[Pixel]:
        """Pixels ordered along the scan axis."""
        if self.horizontal:
            return sorted(self.pixels, key=lambda p: (p.pos[0], p.pos[1]))
        return sorted(self.pixels, key=lambda p: (p.pos[1], p.pos[0]))

    @property
    def start(self) -> Pos:
        return self.sorted_pixels()[0].pos

    @property
    def end(self) -> Pos:
        return self.sorted_pixels()[-1].pos

    @property
    def bbox(self) -> Tuple[int, int, int, int]:
        """Inclusive bounding box as (min_x, min_y, max_x, max_y)."""
        xs = [p.pos[0] for p in self.pixels]
        ys = [p.pos[1] for p in self.pixels]
        return min(xs), min(ys), max(xs), max(ys)


Cluster = List[Segment]
BandingPair = Tuple[Segment, Segment]


@dataclass
class DetectionResult:
    """Result of one banding detection pass."""
    error: int = 0
    affected_segments: List[Segment] = field(default_factory=list)
    affected_pairs: List[BandingPair] = field(default_factory=list)
    horizontal_pairs: List[BandingPair] = field(default_factory=list)
    vertical_pairs: List[BandingPair] = field(default_factory=list)


@dataclass
class CorrectionResult:
    """Outcome of running a correction algorithm on a canvas."""
    algorithm: str
    initial_error: int = 0
    final_error: int = 0
    iterations: int = 0
    converged: bool = False
    changed_pixels: int = 0

    @property
    def improved(self) -> bool:
        return self.final_error < self.initial_error


@dataclass
class BandingConfig:
    """Configuration for banding detection and correction."""
    # Segment ends eligible for modification
    alter_left_edge: bool = True
    alter_right_edge: bool = True
    alter_top_edge: bool = True
    alter_bottom_edge: bool = True

    # Segment-level correction
    operation_mode: OperationMode = OperationMode.SHRINK
    color_mode: ColorMode = ColorMode.ENDPOINT_CONTINUATION
    shrink_ratio: float = 0.0  # extra pixels removed per end, as a fraction of length
    max_correction_iterations: int = 500

    # Procedural reconstruction
    pipeline_iterations: int = 10
    erosion_mode: ErosionMode = ErosionMode.CONSTANT
    linear_erosion_factor: float = 1.0
    expansion_iterations: int = 1
    probability_to_add_pixel: float = 0.3
    bridge_gaps: bool = True
    preserve_outline: bool = True
    layer_order: LayerOrder = LayerOrder.AREA

    # Subject extraction
    subject_threshold: int = 250

    # None means a fresh, nondeterministic seed on every run
    seed: Optional[int] = 42

    def __post_init__(self):
        if not 0.0 <= self.probability_to_add_pixel <= 1.0:
            raise ValueError(
                f"probability_to_add_pixel must be in [0, 1], got {self.probability_to_add_pixel}"
            )
        if not 0.0 <= self.shrink_ratio < 1.0:
            raise ValueError(f"shrink_ratio must be in [0, 1), got {self.shrink_ratio}")
        if self.pipeline_iterations < 1:
            raise ValueError(f"pipeline_iterations must be >= 1, got {self.pipeline_iterations}")
        if self.expansion_iterations < 0:
            raise ValueError(f"expansion_iterations must be >= 0, got {self.expansion_iterations}")
        if self.max_correction_iterations < 1:
            raise ValueError(
                f"max_correction_iterations must be >= 1, got {self.max_correction_iterations}"
            )
        if not 0 < self.subject_threshold <= 256:
            raise ValueError(f"subject_threshold must be in (0, 256], got {self.subject_threshold}")


class BandingError(Exception):
    """Base exception for banding pipeline errors."""
    pass


class ImageLoadError(BandingError):
    """Raised when an image file cannot be decoded."""
    pass


class ImageSaveError(BandingError):
    """Raised when an image file cannot be written."""
    pass


class SegmentationError(BandingError):
    """Raised when pixel data cannot be segmented."""
    pass
