"""
Temporal Stabilizer Tests
=========================
"""

import numpy as np
import pytest

from backdrop_fx.models.mask import Mask
from backdrop_fx.pipeline.temporal import TemporalStabilizer


def _constant(value: float, width: int = 16, height: int = 12) -> Mask:
    return Mask.full(width, height, value)


class TestFrameAlpha:
    """Frame-level blend weight."""

    def test_moderate_motion_uses_base_alpha(self):
        assert TemporalStabilizer(0.35).frame_alpha(10.0) == pytest.approx(0.35)

    def test_high_motion_halves_alpha(self):
        assert TemporalStabilizer(0.35).frame_alpha(25.0) == pytest.approx(0.175)

    def test_low_motion_raises_alpha_with_cap(self):
        assert TemporalStabilizer(0.35).frame_alpha(1.0) == pytest.approx(0.42)
        assert TemporalStabilizer(0.45).frame_alpha(1.0) == pytest.approx(0.5)

    def test_fixed_mode_ignores_motion(self):
        assert TemporalStabilizer(0.1, adaptive=False).frame_alpha(50.0) == pytest.approx(0.1)

    def test_invalid_alpha_rejected(self):
        with pytest.raises(ValueError):
            TemporalStabilizer(0.0)


class TestUpdate:
    """Blending against the previous output."""

    def test_first_frame_passes_through(self):
        stabilizer = TemporalStabilizer()
        mask = _constant(0.7)
        assert stabilizer.update(mask) is mask
        assert stabilizer.previous_mask is not None

    def test_step_uses_pixel_alpha_floor(self):
        stabilizer = TemporalStabilizer(0.35)
        stabilizer.update(_constant(0.0))
        out = stabilizer.update(_constant(1.0))
        # motion 255 → alpha 0.175; every pixel moved > 30 → max(0.105, 0.2)
        np.testing.assert_allclose(out.values, 0.2, atol=1e-6)
        assert stabilizer.last_motion == pytest.approx(255.0)

    def test_constant_input_is_exact(self):
        stabilizer = TemporalStabilizer()
        stabilizer.update(_constant(0.6))
        for _ in range(5):
            out = stabilizer.update(_constant(0.6))
        np.testing.assert_array_equal(out.values, np.float32(0.6))

    def test_converges_without_overshoot(self):
        stabilizer = TemporalStabilizer()
        stabilizer.update(_constant(0.0))
        previous = 0.0
        for _ in range(60):
            value = float(stabilizer.update(_constant(1.0)).values[0, 0])
            assert previous <= value <= 1.0
            previous = value
        assert previous == pytest.approx(1.0, abs=1e-3)

    def test_responds_faster_than_slow_fixed_ema(self):
        def after_step(stabilizer: TemporalStabilizer, frames: int) -> float:
            stabilizer.update(_constant(0.0))
            for _ in range(frames):
                out = stabilizer.update(_constant(1.0))
            return float(out.values[0, 0])

        adaptive = after_step(TemporalStabilizer(0.35), 5)
        fixed = after_step(TemporalStabilizer(0.1, adaptive=False), 5)
        assert adaptive > fixed

    def test_single_pixel_step_beats_slow_fixed_ema(self):
        def frames_to_converge(stabilizer: TemporalStabilizer) -> int:
            stabilizer.update(_constant(0.0))
            stepped = np.zeros((12, 16), dtype=np.float32)
            stepped[6, 8] = 1.0
            previous = 0.0
            for frame in range(1, 200):
                out = stabilizer.update(Mask(stepped))
                value = float(out.values[6, 8])
                assert previous <= value <= 1.0
                # The rest of the mask stays static
                assert float(out.values[0, 0]) == 0.0
                previous = value
                if value >= 0.95:
                    return frame
            return 200

        adaptive = frames_to_converge(TemporalStabilizer(0.35))
        fixed = frames_to_converge(TemporalStabilizer(0.1, adaptive=False))
        assert adaptive < fixed

    def test_dimension_change_resets(self):
        stabilizer = TemporalStabilizer()
        stabilizer.update(_constant(0.0, 16, 12))
        resized = _constant(1.0, 32, 24)
        out = stabilizer.update(resized)
        assert out is resized
        assert stabilizer.previous_mask.size == (32, 24)
        assert stabilizer.get_metrics()["resets"] == 1

    def test_reset_forgets_previous(self):
        stabilizer = TemporalStabilizer()
        stabilizer.update(_constant(0.0))
        stabilizer.reset()
        mask = _constant(1.0)
        assert stabilizer.update(mask) is mask
