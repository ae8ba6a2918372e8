"""
Unit tests for mask noise filtering.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from wallseg_stack.config import PipelineConfig
from wallseg_stack.core.types import Mask
from wallseg_stack.perception.noise_filter import clean_mask_from_config, denoise, fill_holes


def reference_majority(data: np.ndarray, r: int) -> np.ndarray:
    """Straightforward per-pixel majority vote over the original mask."""
    h, w = data.shape
    k = 2 * r + 1
    out = data.copy()
    for y in range(r, h - r):
        for x in range(r, w - r):
            votes = int(data[y - r:y + r + 1, x - r:x + r + 1].sum())
            out[y, x] = votes * 2 > k * k
    return out


class TestDenoise:
    """Tests for the majority-vote filter."""

    def test_removes_isolated_pixel(self):
        data = np.zeros((7, 7), dtype=bool)
        data[3, 3] = True

        result = denoise(Mask(data=data), kernel_radius=1)

        assert not result.data.any()

    def test_fills_isolated_hole(self):
        data = np.ones((7, 7), dtype=bool)
        data[3, 3] = False

        result = denoise(Mask(data=data), kernel_radius=1)

        assert result.data.all()

    def test_border_pixels_pass_through(self):
        data = np.zeros((6, 6), dtype=bool)
        data[0, 0] = True
        data[5, 2] = True

        result = denoise(Mask(data=data), kernel_radius=1)

        assert result.data[0, 0]
        assert result.data[5, 2]
        assert result.pixel_count == 2

    def test_input_not_modified(self):
        data = np.zeros((7, 7), dtype=bool)
        data[3, 3] = True
        mask = Mask(data=data, generation=4)

        result = denoise(mask, kernel_radius=1)

        assert data[3, 3]
        assert result is not mask
        assert result.generation == 4

    @pytest.mark.parametrize("radius", [1, 2, 3])
    def test_matches_reference_vote(self, radius):
        """Votes are read from the original mask, independent of order."""
        rng = np.random.default_rng(radius)
        data = rng.random((20, 24)) < 0.5

        result = denoise(Mask(data=data), kernel_radius=radius)

        assert np.array_equal(result.data, reference_majority(data, radius))

    @pytest.mark.parametrize("radius", [1, 2])
    def test_idempotent_on_regions_without_speckle(self, radius):
        half_plane = np.zeros((12, 12), dtype=bool)
        half_plane[:, :6] = True
        stripe = np.zeros((16, 10), dtype=bool)
        stripe[4:12, :] = True

        for data in (half_plane, stripe, np.ones((9, 9), dtype=bool)):
            once = denoise(Mask(data=data), radius)
            twice = denoise(once, radius)
            assert np.array_equal(once.data, twice.data)

    def test_zero_radius_is_copy(self):
        data = np.eye(5, dtype=bool)
        result = denoise(Mask(data=data), kernel_radius=0)
        assert np.array_equal(result.data, data)
        assert result.data is not data

    def test_mask_smaller_than_kernel_unchanged(self):
        data = np.array([[True, False], [False, False]])
        result = denoise(Mask(data=data), kernel_radius=2)
        assert np.array_equal(result.data, data)

    def test_soft_mask_keeps_dtype(self):
        data = np.zeros((5, 5), dtype=np.float32)
        data[2, 2] = 1.0

        result = denoise(Mask(data=data), kernel_radius=1)

        assert result.data.dtype == np.float32
        assert result.data[2, 2] == 0.0


class TestFillHoles:
    """Tests for morphological closing."""

    def test_fills_small_hole(self):
        data = np.ones((11, 11), dtype=bool)
        data[5, 5] = False

        result = fill_holes(Mask(data=data), kernel_size=3)

        assert result.data.all()
        assert result.data.dtype == bool


class TestCleanMaskFromConfig:
    """Tests for config-driven filtering."""

    def test_all_disabled_returns_copy(self):
        data = np.zeros((7, 7), dtype=bool)
        data[3, 3] = True
        config = PipelineConfig(enable_noise_reduction=False, enable_hole_filling=False)

        result = clean_mask_from_config(Mask(data=data), config)

        assert np.array_equal(result.data, data)
        assert result.data is not data

    def test_kernel_size_sets_radius(self):
        data = np.zeros((9, 9), dtype=bool)
        data[3:6, 3:6] = True  # 9 of 25 in a 5x5 window: not a majority
        config = PipelineConfig(kernel_size=5)

        result = clean_mask_from_config(Mask(data=data), config)

        assert config.kernel_radius == 2
        assert not result.data.any()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
