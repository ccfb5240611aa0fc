"""
Edge Refiner Tests
==================
"""

import numpy as np
import pytest

from backdrop_fx.models.mask import Mask
from backdrop_fx.pipeline.edge import EdgeRefiner, bilateral


def _vertical_step(width: int = 100, height: int = 60, column: int = 50) -> Mask:
    values = np.zeros((height, width), dtype=np.float32)
    values[:, column:] = 1.0
    return Mask(values)


class TestEdgeRefiner:
    """Bilateral refinement of mask edges."""

    def test_output_in_unit_range_and_same_size(self):
        rng = np.random.default_rng(3)
        mask = Mask(rng.random((48, 64), dtype=np.float32))
        out = EdgeRefiner().refine(mask)
        assert out.size == mask.size
        assert out.values.min() >= 0.0
        assert out.values.max() <= 1.0

    def test_flat_masks_stay_flat(self):
        refiner = EdgeRefiner()
        zeros = refiner.refine(Mask.full(40, 30, 0.0))
        ones = refiner.refine(Mask.full(40, 30, 1.0))
        np.testing.assert_allclose(zeros.values, 0.0, atol=1e-5)
        np.testing.assert_allclose(ones.values, 1.0, atol=1e-5)

    @pytest.mark.parametrize("scale", [1.0, 0.5])
    def test_boundary_stays_within_spatial_sigma(self, scale):
        refiner = EdgeRefiner(spatial_sigma=3.0, scale=scale)
        out = refiner.refine(_vertical_step(column=50))
        crossings = np.argmax(out.values >= 0.5, axis=1)
        assert np.all(np.abs(crossings - 50) <= 3)

    def test_far_from_edge_is_unchanged(self):
        out = EdgeRefiner().refine(_vertical_step(column=50))
        np.testing.assert_allclose(out.values[:, :40], 0.0, atol=1e-5)
        np.testing.assert_allclose(out.values[:, 60:], 1.0, atol=1e-5)

    def test_jagged_edge_is_smoothed(self):
        rng = np.random.default_rng(7)
        values = np.zeros((60, 100), dtype=np.float32)
        for row in range(60):
            values[row, 50 + rng.integers(-2, 3):] = 1.0
        # Soft noise near the boundary is what the intensity sigma smooths
        noisy = np.clip(values + rng.normal(0, 0.05, values.shape).astype(np.float32), 0, 1)
        out = EdgeRefiner(scale=1.0).refine(Mask(noisy))
        assert np.abs(np.diff(out.values, axis=0)).mean() < np.abs(np.diff(noisy, axis=0)).mean()

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            EdgeRefiner(spatial_sigma=0)
        with pytest.raises(ValueError):
            EdgeRefiner(scale=1.5)


class TestBilateral:
    """Raw bilateral filter helper."""

    def test_preserves_strong_edges(self):
        values = _vertical_step().values * 255.0
        out = bilateral(values, 3.0, 25.0)
        # A 255-unit jump is ~10 intensity sigmas: neighbours across it get ~0 weight
        assert out[:, 45].max() < 2.0
        assert out[:, 55].min() > 253.0
