"""Tests for perceptual hashing of images."""

import io

import numpy as np
import pytest
from PIL import Image

from config import HasherConfig
from pixel_hasher import (
    fingerprint_bytes,
    fingerprint_image,
    gradient_hash,
    luminance_grid,
    mean_hash,
)

MASK = (1 << 64) - 1
# Row pattern 00001111 repeated over 8 rows
RIGHT_HALF_BRIGHT = 0x0F0F0F0F0F0F0F0F


def horizontal_ramp(step: int = 8, offset: int = 0) -> np.ndarray:
    """32x32 grayscale image whose brightness increases left to right."""
    row = np.arange(32) * step + offset
    return np.tile(row, (32, 1)).astype(np.uint8)


def encode_png(pixels: np.ndarray) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(pixels).save(buf, format="PNG")
    return buf.getvalue()


class TestLuminanceGrid:
    """Tests for luminance_grid."""

    def test_shape(self):
        image = Image.new("RGB", (100, 60), (10, 20, 30))
        grid = luminance_grid(image)
        assert grid.shape == (32, 32)

    def test_luma_weights(self):
        image = Image.new("RGB", (32, 32), (100, 0, 0))
        grid = luminance_grid(image)
        assert grid[0, 0] == pytest.approx(29.9)

    def test_accepts_rgba_array(self):
        pixels = np.zeros((32, 32, 4), dtype=np.uint8)
        pixels[:, :, 1] = 100
        grid = luminance_grid(pixels)
        assert grid[5, 5] == pytest.approx(58.7)

    def test_rejects_bad_array_shape(self):
        with pytest.raises(ValueError):
            luminance_grid(np.zeros((32, 32, 2), dtype=np.uint8))


class TestHashes:
    """Tests for mean_hash and gradient_hash."""

    def test_horizontal_ramp_gradient_all_ones(self):
        grid = luminance_grid(horizontal_ramp())
        assert gradient_hash(grid) == MASK

    def test_horizontal_ramp_mean_right_half(self):
        grid = luminance_grid(horizontal_ramp())
        assert mean_hash(grid) == RIGHT_HALF_BRIGHT

    def test_vertical_ramp(self):
        pixels = horizontal_ramp().T.copy()
        grid = luminance_grid(pixels)
        # No horizontal change, so no gradient bits
        assert gradient_hash(grid) == 0
        # Bottom four sample rows are above the mean
        assert mean_hash(grid) == 0x00000000FFFFFFFF

    def test_uniform_image_has_no_gradient(self):
        grid = luminance_grid(Image.new("RGB", (32, 32), (128, 128, 128)))
        assert gradient_hash(grid) == 0

    def test_gradient_reads_neighbour_on_full_grid(self):
        """Only the pixel right of each sample point matters, not the next sample."""
        pixels = np.zeros((32, 32), dtype=np.uint8)
        pixels[:, 1] = 200  # right neighbour of sample column 0
        grid = luminance_grid(pixels)
        # Column 0 of each row set -> bit 7 of every row byte
        assert gradient_hash(grid) == 0x8080808080808080

    def test_brightness_shift_keeps_fingerprint(self):
        base = fingerprint_image(horizontal_ramp(step=7))
        brighter = fingerprint_image(horizontal_ramp(step=7, offset=20))
        assert base == brighter

    def test_downscaled_image_keeps_mean_pattern(self):
        pixels = np.zeros((64, 64), dtype=np.uint8)
        pixels[:, 32:] = 255
        assert fingerprint_image(pixels).mean_hash == RIGHT_HALF_BRIGHT


class TestFingerprintBytes:
    """Tests for fingerprint_bytes."""

    def test_matches_decoded_image(self):
        pixels = horizontal_ramp()
        assert fingerprint_bytes(encode_png(pixels)) == fingerprint_image(pixels)

    def test_undecodable_returns_none(self):
        assert fingerprint_bytes(b"definitely not an image") is None

    def test_empty_returns_none(self):
        assert fingerprint_bytes(b"") is None

    def test_truncated_image_returns_none(self):
        data = encode_png(horizontal_ramp())
        assert fingerprint_bytes(data[:40]) is None


class TestHasherConfig:
    """Tests for HasherConfig validation."""

    def test_defaults(self):
        config = HasherConfig()
        assert (config.grid_size, config.hash_size, config.sample_stride) == (32, 8, 4)

    def test_rejects_non_64_bit_hash(self):
        with pytest.raises(ValueError):
            HasherConfig(hash_size=7)

    def test_rejects_grid_too_small(self):
        with pytest.raises(ValueError):
            HasherConfig(grid_size=16)
