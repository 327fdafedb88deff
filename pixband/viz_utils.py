"""Visualization utilities for pipeline stage debugging."""
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image, ImageDraw
import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
from matplotlib import pyplot as plt

from pixband.types import Color

HIGHLIGHT_ALPHA = 0.5


def render_canvas(canvas, scale: int = 8, show_lines: bool = True, show_highlight: bool = True) -> Image.Image:
    """
    Render a canvas with its overlays, upscaled with nearest neighbor.

    Highlighted pixels are blended over the composite and debug lines,
    which live on pixel edges, are drawn at the scaled coordinates.
    """
    image = canvas.to_array().astype(np.float32)

    if show_highlight:
        for pixel in canvas.highlighted_pixels():
            x, y = pixel.pos
            image[y, x] = (1 - HIGHLIGHT_ALPHA) * image[y, x] + HIGHLIGHT_ALPHA * np.array(pixel.color)

    pil_img = Image.fromarray(image.astype(np.uint8))
    if scale != 1:
        pil_img = pil_img.resize((canvas.width * scale, canvas.height * scale), Image.NEAREST)

    if show_lines and canvas.debug_lines:
        draw = ImageDraw.Draw(pil_img)
        width = max(1, scale // 4)
        for start, end, color in canvas.debug_lines:
            draw.line(
                [(start[0] * scale, start[1] * scale), (end[0] * scale, end[1] * scale)],
                fill=tuple(color),
                width=width
            )

    return pil_img


def save_canvas_overlay(canvas, output_path: Path, scale: int = 8):
    """Save the canvas with debug lines and highlights."""
    render_canvas(canvas, scale=scale).save(output_path)


def save_mask(mask: np.ndarray, output_path: Path, color: Color = (255, 0, 0), scale: int = 8):
    """Save a binary mask as colored pixels on white."""
    out = np.full(mask.shape + (3,), 255, dtype=np.uint8)
    out[mask > 0] = color
    pil_img = Image.fromarray(out)
    if scale != 1:
        pil_img = pil_img.resize((mask.shape[1] * scale, mask.shape[0] * scale), Image.NEAREST)
    pil_img.save(output_path)


def create_comparison_figure(
    original: np.ndarray,
    corrected: np.ndarray,
    output_path: Path,
    initial_error: Optional[int] = None,
    final_error: Optional[int] = None
):
    """
    Side-by-side original and corrected images with changed pixels.
    """
    changed = np.any(original != corrected, axis=-1)

    fig, axes = plt.subplots(1, 3, figsize=(15, 5))

    axes[0].imshow(original, interpolation='nearest')
    title = 'Original'
    if initial_error is not None:
        title += f' ({initial_error} banding pairs)'
    axes[0].set_title(title)
    axes[0].axis('off')

    axes[1].imshow(corrected, interpolation='nearest')
    title = 'Corrected'
    if final_error is not None:
        title += f' ({final_error} banding pairs)'
    axes[1].set_title(title)
    axes[1].axis('off')

    axes[2].imshow(changed, cmap='gray_r', interpolation='nearest')
    axes[2].set_title(f'Changed pixels ({int(changed.sum())})')
    axes[2].axis('off')

    plt.tight_layout()
    plt.savefig(output_path, dpi=100, bbox_inches='tight')
    plt.close()
