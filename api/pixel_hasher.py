"""Perceptual hashing of decoded images.

Every image is resampled to a fixed luminance grid, then two 64-bit hashes are
read from a regular sub-grid of sample points:

- mean hash: bit is 1 when the sample is at or above the grid mean
- gradient hash: bit is 1 when the sample is darker than its right neighbour

Hashing is a pure function of the pixels. Decode failures produce no
fingerprint instead of raising, so one bad frame never stops a batch.
"""
import io
import logging
from typing import Optional, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from config import DEFAULT_HASHER_CONFIG, HasherConfig
from fingerprint import Fingerprint

logger = logging.getLogger(__name__)

# ITU-R BT.601 luma coefficients
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def _to_rgb_image(image: Union[Image.Image, np.ndarray]) -> Image.Image:
    if isinstance(image, np.ndarray):
        if image.ndim == 2:
            image = np.stack([image] * 3, axis=-1)
        if image.ndim != 3 or image.shape[2] not in (3, 4):
            raise ValueError(f"Expected an HxW, HxWx3 or HxWx4 array, got shape {image.shape}")
        image = Image.fromarray(np.ascontiguousarray(image[:, :, :3]).astype(np.uint8))
    if image.mode != "RGB":
        image = image.convert("RGB")
    return image


def luminance_grid(
    image: Union[Image.Image, np.ndarray],
    config: HasherConfig = DEFAULT_HASHER_CONFIG,
) -> np.ndarray:
    """Resample to grid_size x grid_size and return float64 luminance."""
    rgb = _to_rgb_image(image)
    resized = rgb.resize((config.grid_size, config.grid_size), Image.BILINEAR)
    pixels = np.asarray(resized, dtype=np.float64)
    return pixels @ LUMA_WEIGHTS


def _sample_points(config: HasherConfig) -> np.ndarray:
    return np.arange(config.hash_size) * config.sample_stride


def _pack_bits(bits: np.ndarray) -> int:
    value = 0
    for bit in bits.ravel():
        value = (value << 1) | int(bit)
    return value


def mean_hash(grid: np.ndarray, config: HasherConfig = DEFAULT_HASHER_CONFIG) -> int:
    points = _sample_points(config)
    samples = grid[np.ix_(points, points)]
    return _pack_bits(samples >= grid.mean())


def gradient_hash(grid: np.ndarray, config: HasherConfig = DEFAULT_HASHER_CONFIG) -> int:
    points = _sample_points(config)
    left = grid[np.ix_(points, points)]
    right = grid[np.ix_(points, points + 1)]
    return _pack_bits(left < right)


def fingerprint_image(
    image: Union[Image.Image, np.ndarray],
    config: HasherConfig = DEFAULT_HASHER_CONFIG,
) -> Fingerprint:
    """Compute the fingerprint of an already decoded image."""
    grid = luminance_grid(image, config)
    return Fingerprint(
        gradient_hash=gradient_hash(grid, config),
        mean_hash=mean_hash(grid, config),
    )


def fingerprint_bytes(
    data: bytes,
    config: HasherConfig = DEFAULT_HASHER_CONFIG,
) -> Optional[Fingerprint]:
    """Decode encoded image bytes and fingerprint them.

    Returns:
        Fingerprint, or None if the bytes are empty or cannot be decoded
    """
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            return fingerprint_image(image, config)
    # Pillow reports some corrupt streams as SyntaxError
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        logger.debug(f"Could not decode image ({len(data)} bytes): {e}")
        return None
