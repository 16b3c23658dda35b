"""
Preprocessing module for the image finder.
Handles raster loading, format validation and resampling to pyramid levels.
"""

import numpy as np
import cv2
from pathlib import Path
from typing import Tuple, Union
import logging

from errors import RasterFormatError

INTERPOLATIONS = {
    'bicubic': cv2.INTER_CUBIC,
    'bilinear': cv2.INTER_LINEAR,
    'area': cv2.INTER_AREA,
    'nearest': cv2.INTER_NEAREST,
    'lanczos': cv2.INTER_LANCZOS4
}


def as_pixel_buffer(image: np.ndarray, name: str = 'raster') -> np.ndarray:
    """
    Validate a raster and return it as a C-contiguous (height, width, 3) uint8 array.

    Args:
        image: RGB pixel array
        name: Label used in error messages

    Raises:
        RasterFormatError: If the array is not 3-channel uint8
    """
    if not isinstance(image, np.ndarray):
        raise RasterFormatError(f"{name} must be a numpy array, got {type(image).__name__}")
    if image.ndim != 3 or image.shape[2] != 3:
        raise RasterFormatError(f"{name} must have shape (height, width, 3), got {image.shape}")
    if image.dtype != np.uint8:
        raise RasterFormatError(f"{name} must be uint8, got {image.dtype}")
    return np.ascontiguousarray(image)


def raster_size(image: np.ndarray) -> Tuple[int, int]:
    """(width, height) of a raster."""
    return image.shape[1], image.shape[0]


def load_raster(path: Union[str, Path]) -> np.ndarray:
    """
    Load an image file as an RGB uint8 raster.

    Grayscale images are expanded to three channels and alpha is dropped.
    """
    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ValueError(f"Could not load image: {path}")

    if image.dtype != np.uint8:
        image = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)

    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
    elif image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
    else:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

    logging.debug(f"Loaded {Path(path).name}: {image.shape[1]}x{image.shape[0]}")
    return np.ascontiguousarray(image)


def resize_raster(image: np.ndarray, size: Tuple[int, int], interpolation: str = 'bicubic') -> np.ndarray:
    """
    Resize a raster to (width, height).

    Args:
        image: (height, width, 3) uint8 raster
        size: Output (width, height)
        interpolation: One of INTERPOLATIONS

    Returns:
        New contiguous raster of the requested size
    """
    if interpolation not in INTERPOLATIONS:
        raise ValueError(f"Unknown interpolation '{interpolation}', expected one of {sorted(INTERPOLATIONS)}")
    width, height = size
    if width <= 0 or height <= 0:
        raise ValueError(f"Resize target must be positive, got {width}x{height}")

    resized = cv2.resize(image, (width, height), interpolation=INTERPOLATIONS[interpolation])
    return np.ascontiguousarray(resized)


def resample_for_level(image: np.ndarray, scale_divider: int, interpolation: str = 'bicubic') -> np.ndarray:
    """
    Raster for a pyramid level: unscaled at divider 1, otherwise shrunk to
    (width // scale_divider, height // scale_divider).
    """
    if scale_divider == 1:
        return image
    width, height = raster_size(image)
    return resize_raster(image, (width // scale_divider, height // scale_divider), interpolation)
