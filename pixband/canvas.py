"""Layered pixel canvas shared by every detection and correction algorithm."""
import copy
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

import numpy as np

from pixband.types import (
    Cluster,
    Color,
    ImageLoadError,
    ImageSaveError,
    Pixel,
    Pos,
    Segment,
)
from pixband.raster_io import image_from_array, load_image, save_image

logger = logging.getLogger(__name__)

DebugLine = Tuple[Tuple[float, float], Tuple[float, float], Color]


class PixelCanvas:
    """
    Width x height pixel grid with overlay layers.

    Reads go through ``get_pixel`` which applies the precedence
    debug > processed > base. The highlighted layer is read separately.
    Out-of-range reads return an empty pixel and out-of-range writes are
    ignored.
    """

    def __init__(self, width: int, height: int):
        if width < 0 or height < 0:
            raise ValueError(f"Canvas dimensions must be non-negative, got {width}x{height}")
        self._allocate(width, height)
        self._reset_state()

    def _allocate(self, width: int, height: int) -> None:
        self._width = width
        self._height = height
        self._base = np.zeros((height, width, 3), dtype=np.uint8)
        self._processed = np.zeros((height, width, 3), dtype=np.uint8)
        self._processed_set = np.zeros((height, width), dtype=bool)
        self._debug = np.zeros((height, width, 3), dtype=np.uint8)
        self._debug_set = np.zeros((height, width), dtype=bool)
        self._highlighted = np.zeros((height, width, 3), dtype=np.uint8)
        self._highlighted_set = np.zeros((height, width), dtype=bool)

    def _reset_state(self) -> None:
        self.debug_lines: List[DebugLine] = []
        self._clusters: List[Cluster] = []
        self._clusters_horizontal: Optional[bool] = None
        self.selected_segment: Optional[Segment] = None
        self.affected_segments: List[Segment] = []
        self.error = 0
        self.generator: Optional[Pixel] = None
        self.drawn_path: List[Pixel] = []

    @classmethod
    def from_array(cls, image: np.ndarray) -> "PixelCanvas":
        """Create a canvas whose base layer is the given RGB(A) array."""
        rgb = image_from_array(image)
        canvas = cls(rgb.shape[1], rgb.shape[0])
        canvas._base[...] = rgb
        return canvas

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PixelCanvas":
        """Load an image file into a new canvas. Raises on failure."""
        return cls.from_array(load_image(path))

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def shape(self) -> Tuple[int, int]:
        return self._height, self._width

    def in_bounds(self, pos: Pos) -> bool:
        x, y = pos
        return 0 <= x < self._width and 0 <= y < self._height

    def copy(self) -> "PixelCanvas":
        """Deep copy of pixels, overlays and cached state."""
        return copy.deepcopy(self)

    # Base layer

    def fill(self, color: Color) -> None:
        self._base[...] = color
        self._invalidate()

    def set_pixel(self, pos: Pos, color: Color) -> None:
        if not self.in_bounds(pos):
            return
        x, y = pos
        self._base[y, x] = color
        self._invalidate()

    def set_pixels(self, pixels: Iterable[Pixel]) -> None:
        for pixel in pixels:
            self.set_pixel(pixel.pos, pixel.color)

    def get_pixel(self, pos: Pos) -> Pixel:
        """Effective pixel at ``pos`` (debug > processed > base)."""
        if not self.in_bounds(pos):
            return Pixel()
        x, y = pos
        if self._debug_set[y, x]:
            layer = self._debug
        elif self._processed_set[y, x]:
            layer = self._processed
        else:
            layer = self._base
        r, g, b = layer[y, x]
        return Pixel((int(r), int(g), int(b)), (x, y))

    def get_color(self, pos: Pos) -> Color:
        return self.get_pixel(pos).color

    def base_array(self) -> np.ndarray:
        return self._base.copy()

    def to_array(self, include_debug: bool = True) -> np.ndarray:
        """Composite the layers into an (H, W, 3) uint8 array."""
        out = self._base.copy()
        out[self._processed_set] = self._processed[self._processed_set]
        if include_debug:
            out[self._debug_set] = self._debug[self._debug_set]
        return out

    def rgba_data(self) -> bytes:
        """Composited pixels as packed RGBA bytes, row-major."""
        rgb = self.to_array()
        alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
        return np.concatenate([rgb, alpha], axis=-1).tobytes()

    # Processed layer

    def set_processed_pixel(self, pos: Pos, color: Color) -> None:
        if not self.in_bounds(pos):
            return
        x, y = pos
        self._processed[y, x] = color
        self._processed_set[y, x] = True
        self._invalidate()

    def set_processed_pixels(self, other: "PixelCanvas") -> None:
        """Overlay another canvas's composited pixels as processed pixels."""
        h = min(self._height, other.height)
        w = min(self._width, other.width)
        self._processed[:h, :w] = other.to_array()[:h, :w]
        self._processed_set[:h, :w] = True
        self._invalidate()

    def clear_processed_pixels(self) -> None:
        self._processed_set[...] = False
        self._invalidate()

    def has_processed_pixels(self) -> bool:
        return bool(self._processed_set.any())

    def commit_processed(self) -> None:
        """Bake the processed overlay into the base layer."""
        self._base[self._processed_set] = self._processed[self._processed_set]
        self.clear_processed_pixels()

    # Debug layer

    def set_debug_pixel(self, pos: Pos, color: Color) -> None:
        if not self.in_bounds(pos):
            return
        x, y = pos
        self._debug[y, x] = color
        self._debug_set[y, x] = True

    def set_debug_pixels(self, other: "PixelCanvas") -> None:
        h = min(self._height, other.height)
        w = min(self._width, other.width)
        self._debug[:h, :w] = other.to_array()[:h, :w]
        self._debug_set[:h, :w] = True

    def clear_debug_pixels(self) -> None:
        self._debug_set[...] = False

    def add_debug_line(self, start: Tuple[float, float], end: Tuple[float, float], color: Color) -> None:
        self.debug_lines.append((start, end, color))

    def clear_debug_lines(self) -> None:
        self.debug_lines.clear()

    def draw_rectangle(self, pixels: Iterable[Pixel], color: Color) -> None:
        """Outline the bounding box of ``pixels`` along pixel edges."""
        pixels = list(pixels)
        if not pixels:
            return
        xs = [p.pos[0] for p in pixels]
        ys = [p.pos[1] for p in pixels]
        x0, x1 = float(min(xs)), float(max(xs) + 1)
        y0, y1 = float(min(ys)), float(max(ys) + 1)
        self.add_debug_line((x0, y0), (x1, y0), color)
        self.add_debug_line((x1, y0), (x1, y1), color)
        self.add_debug_line((x1, y1), (x0, y1), color)
        self.add_debug_line((x0, y1), (x0, y0), color)

    # Highlighted layer

    def set_highlighted_pixel(self, pos: Pos, color: Color) -> None:
        if not self.in_bounds(pos):
            return
        x, y = pos
        self._highlighted[y, x] = color
        self._highlighted_set[y, x] = True

    def set_highlighted_pixels(self, positions: Iterable[Pos], color: Color) -> None:
        for pos in positions:
            self.set_highlighted_pixel(pos, color)

    def get_highlighted_pixel(self, pos: Pos) -> Optional[Pixel]:
        if not self.in_bounds(pos):
            return None
        x, y = pos
        if not self._highlighted_set[y, x]:
            return None
        r, g, b = self._highlighted[y, x]
        return Pixel((int(r), int(g), int(b)), (x, y))

    def highlighted_pixels(self) -> List[Pixel]:
        ys, xs = np.nonzero(self._highlighted_set)
        return [self.get_highlighted_pixel((int(x), int(y))) for y, x in zip(ys, xs)]

    def clear_highlighted_pixels(self) -> None:
        self._highlighted_set[...] = False

    # Segmentation cache

    def segment_clusters(self, horizontal: bool = True, threshold: int = 250) -> List[Cluster]:
        """Recompute clusters for ``horizontal`` and cache them."""
        from pixband.segmentation import segment_clusters

        self._clusters = segment_clusters(self, horizontal, threshold)
        self._clusters_horizontal = horizontal
        return self._clusters

    @property
    def clusters(self) -> List[Cluster]:
        return self._clusters

    @property
    def clusters_horizontal(self) -> Optional[bool]:
        """Orientation of the cached clusters, None when stale."""
        return self._clusters_horizontal

    def clear_clusters(self) -> None:
        self._clusters = []
        self._clusters_horizontal = None

    def _invalidate(self) -> None:
        self.clear_clusters()

    # Selection, detection cache, anchors

    def set_selected_segment(self, segment: Segment) -> None:
        self.selected_segment = segment

    def clear_selected_segment(self) -> None:
        self.selected_segment = None

    def select_segment_at(self, pos: Pos, horizontal: bool = True, threshold: int = 250) -> Optional[Segment]:
        """Select the segment containing ``pos`` under the given orientation."""
        from pixband.segmentation import find_segment_at

        segment = find_segment_at(self.segment_clusters(horizontal, threshold), pos)
        self.selected_segment = segment
        return segment

    def set_affected_segments(self, segments: List[Segment]) -> None:
        self.affected_segments = list(segments)

    def set_error(self, error: int) -> None:
        self.error = error

    def set_generator(self, generator: Pixel) -> None:
        self.generator = generator

    def clear_generator(self) -> None:
        self.generator = None

    def add_drawn_path(self, pixel: Pixel) -> None:
        self.drawn_path.append(pixel)

    def clear_drawn_path(self) -> None:
        self.drawn_path.clear()

    # File I/O

    def load_from_file(self, path: Union[str, Path]) -> bool:
        """
        Replace the canvas contents with an image file.

        All overlays and cached state are reset. Returns False, leaving the
        canvas untouched, when the file cannot be read.
        """
        try:
            image = load_image(path)
        except (FileNotFoundError, ImageLoadError) as e:
            logger.error(f"Failed to load image: {e}")
            return False

        self._allocate(image.shape[1], image.shape[0])
        self._reset_state()
        self._base[...] = image
        self.segment_clusters()
        logger.info(f"Loaded {path} ({self._width}x{self._height})")
        return True

    def save_to_file(self, path: Union[str, Path], include_debug: bool = True) -> bool:
        """Write the composited pixels to ``path``. Returns False on failure."""
        try:
            save_image(self.to_array(include_debug=include_debug), path)
        except ImageSaveError as e:
            logger.error(str(e))
            return False
        return True
