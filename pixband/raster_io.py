"""Raster image loading and saving."""
from pathlib import Path
from typing import Union
import numpy as np
from PIL import Image
from PIL import ImageOps

from pixband.types import ImageLoadError, ImageSaveError


def load_image(path: Union[str, Path]) -> np.ndarray:
    """
    Load an image file as an 8-bit RGB array.

    Transparent pixels are composited onto white so they read as
    background.

    Args:
        path: Path to image file

    Returns:
        uint8 array of shape (H, W, 3)

    Raises:
        FileNotFoundError: If file doesn't exist
        ImageLoadError: If file cannot be decoded
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    if not path.is_file():
        raise ImageLoadError(f"Path is not a file: {path}")

    try:
        with Image.open(path) as img:
            img = ImageOps.exif_transpose(img)

            if img.mode in ('RGBA', 'LA') or (img.mode == 'P' and 'transparency' in img.info):
                img = img.convert('RGBA')
                background = Image.new('RGB', img.size, (255, 255, 255))
                background.paste(img, mask=img.split()[3])
                img = background
            elif img.mode != 'RGB':
                img = img.convert('RGB')

            return np.array(img, dtype=np.uint8)

    except (IOError, OSError) as e:
        raise ImageLoadError(f"Failed to load image {path}: {e}") from e


def image_from_array(image: np.ndarray) -> np.ndarray:
    """
    Normalize an array to uint8 RGB.

    Args:
        image: (H, W), (H, W, 3) or (H, W, 4) array, either float in [0, 1]
            or integer in [0, 255]

    Returns:
        uint8 array of shape (H, W, 3)
    """
    if image.ndim == 2:
        image = np.stack([image] * 3, axis=-1)

    if image.ndim != 3:
        raise ImageLoadError(f"Expected 2D or 3D array, got {image.ndim}D")

    if image.dtype == np.uint8 and image.shape[2] == 3:
        return image.copy()

    if np.issubdtype(image.dtype, np.floating) and image.max(initial=0.0) <= 1.0:
        image = image * 255.0

    if image.shape[2] == 4:
        alpha = image[..., 3:4].astype(np.float32) / 255.0
        rgb = image[..., :3].astype(np.float32)
        image = rgb * alpha + 255.0 * (1 - alpha)
    elif image.shape[2] != 3:
        raise ImageLoadError(f"Expected 3 or 4 channels, got {image.shape[2]}")

    return np.clip(np.rint(image), 0, 255).astype(np.uint8)


def save_image(image: np.ndarray, path: Union[str, Path]) -> None:
    """
    Save an RGB array to disk. The format follows the file extension.

    Raises:
        ImageSaveError: If the file cannot be written
    """
    path = Path(path)
    try:
        Image.fromarray(image_from_array(image)).save(path)
    except (IOError, OSError, ValueError, KeyError) as e:
        raise ImageSaveError(f"Failed to save image {path}: {e}") from e
