"""Shared fixtures: small synthetic pixel-art canvases."""
import numpy as np
import pytest

from pixband.canvas import PixelCanvas

RED = (255, 0, 0)
BLUE = (0, 0, 255)
GREEN = (0, 160, 0)
BLACK = (0, 0, 0)
WHITE = (255, 255, 255)


def build_canvas(width, height, pixels=None):
    """White canvas with the given {(x, y): color} pixels set."""
    canvas = PixelCanvas(width, height)
    canvas.fill(WHITE)
    for pos, color in (pixels or {}).items():
        canvas.set_pixel(pos, color)
    return canvas


def row(color, y, x0, x1):
    """Pixels of one horizontal run, x0..x1 inclusive."""
    return {(x, y): color for x in range(x0, x1 + 1)}


def nested_squares(size=20, colors=((20, 20, 20), (200, 60, 60), (230, 140, 90), (250, 210, 150))):
    """Concentric filled squares, outermost first, on white."""
    image = np.full((size, size, 3), 255, dtype=np.uint8)
    for i, color in enumerate(colors):
        lo = 2 + 2 * i - (1 if i else 0)
        hi = size - lo
        image[lo:hi, lo:hi] = color
    return image


@pytest.fixture
def make_canvas():
    return build_canvas


@pytest.fixture
def banded_canvas():
    """Red run over a blue run with identical endpoints: one banding pair."""
    pixels = {}
    pixels.update(row(RED, 5, 0, 3))
    pixels.update(row(BLUE, 6, 0, 3))
    return build_canvas(8, 10, pixels)


@pytest.fixture
def shifted_canvas():
    """Red run over a blue run shifted right by one: no banding."""
    pixels = {}
    pixels.update(row(RED, 5, 0, 3))
    pixels.update(row(BLUE, 6, 1, 4))
    return build_canvas(8, 10, pixels)


@pytest.fixture
def squares_canvas():
    return PixelCanvas.from_array(nested_squares())
