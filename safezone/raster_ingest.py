"""Raster image ingestion into RGBA pixel buffers."""
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image
from PIL import ImageOps

from safezone.types import InputError, PixelBuffer


def as_pixel_buffer(image: np.ndarray) -> PixelBuffer:
    """
    Normalize an in-memory image to an RGBA uint8 buffer.

    Args:
        image: Array (H, W, 3) or (H, W, 4); uint8 values 0-255, or
               floats in [0, 1]

    Returns:
        Array (H, W, 4) uint8. RGB input gets a fully opaque alpha channel.

    Raises:
        InputError: If the array is not a non-empty RGB/RGBA image
    """
    image = np.asarray(image)
    if image.ndim != 3:
        raise InputError(f"Expected 3D array (H, W, C), got {image.ndim}D")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise InputError("Pixel buffer is empty")
    if image.shape[2] not in (3, 4):
        raise InputError(f"Expected 3 or 4 channels, got {image.shape[2]}")

    if image.dtype != np.uint8:
        if np.issubdtype(image.dtype, np.floating) and image.max() <= 1.0:
            image = np.round(image * 255.0)
        image = np.clip(image, 0, 255).astype(np.uint8)

    if image.shape[2] == 3:
        alpha = np.full(image.shape[:2] + (1,), 255, dtype=np.uint8)
        image = np.concatenate([image, alpha], axis=2)

    return np.ascontiguousarray(image)


def ingest(path: Union[str, Path]) -> PixelBuffer:
    """
    Decode an image file into an RGBA pixel buffer.

    Args:
        path: Path to image file

    Returns:
        Array (H, W, 4) uint8

    Raises:
        FileNotFoundError: If file doesn't exist
        InputError: If file cannot be decoded
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    if not path.is_file():
        raise InputError(f"Path is not a file: {path}")

    try:
        with Image.open(path) as img:
            # Apply EXIF orientation transformation to handle rotation
            img = ImageOps.exif_transpose(img)
            if img.mode != 'RGBA':
                img = img.convert('RGBA')
            return as_pixel_buffer(np.array(img))
    except (IOError, OSError) as e:
        raise InputError(f"Failed to load image {path}: {e}") from e
