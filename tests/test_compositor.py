"""
Compositor Tests
================
"""

import numpy as np
import pytest

from backdrop_fx.models.effect import EffectConfig
from backdrop_fx.models.mask import Mask
from backdrop_fx.pipeline.compositor import Compositor, gaussian_blur

from conftest import make_frame


class TestBlurCompositing:
    """Blur effect blending."""

    def test_full_mask_returns_original_pixels(self, frame):
        out = Compositor(EffectConfig.blur(15)).composite(frame, Mask.full(frame.width, frame.height, 1.0))
        np.testing.assert_array_equal(out.pixels, frame.pixels)

    def test_empty_mask_returns_blurred_background(self, frame):
        out = Compositor(EffectConfig.blur(15)).composite(frame, Mask.full(frame.width, frame.height, 0.0))
        np.testing.assert_array_equal(out.pixels[..., :3], gaussian_blur(frame.pixels, 15))

    def test_half_mask_blends(self, frame):
        out = Compositor(EffectConfig.blur(10)).composite(frame, Mask.full(frame.width, frame.height, 0.5))
        expected = 0.5 * gaussian_blur(frame.pixels, 10).astype(np.float32) + 0.5 * frame.pixels[..., :3]
        assert np.abs(out.pixels[..., :3].astype(np.float32) - expected).max() <= 0.5

    def test_alpha_and_timing_preserved(self):
        frame = make_frame(frame_id=9, timestamp=12.345, duration=0.04)
        frame.pixels[..., 3] = 128
        out = Compositor(EffectConfig.blur()).composite(frame, Mask.full(frame.width, frame.height, 0.3))
        assert out is not frame
        assert out.timestamp == 12.345
        assert out.duration == 0.04
        assert out.frame_id == 9
        np.testing.assert_array_equal(out.pixels[..., 3], 128)

    def test_mask_size_mismatch_rejected(self, frame):
        with pytest.raises(ValueError):
            Compositor(EffectConfig.blur()).composite(frame, Mask.full(10, 10))


class TestReplaceCompositing:
    """Replace effect blending."""

    def test_empty_mask_shows_background(self, frame):
        background = np.zeros((frame.height, frame.width, 3), dtype=np.uint8)
        background[..., 1] = 200
        config = EffectConfig.replace(background_asset=background)
        out = Compositor(config, background).composite(frame, Mask.full(frame.width, frame.height, 0.0))
        np.testing.assert_array_equal(out.pixels[..., :3], background)

    def test_background_scaled_once_per_size(self, frame):
        background = np.full((10, 20, 4), 90, dtype=np.uint8)
        config = EffectConfig.replace(background_asset=background)
        compositor = Compositor(config, background)
        first = compositor.background_for(frame)
        assert first.shape == (frame.height, frame.width, 3)
        assert compositor.background_for(frame) is first

    def test_replace_needs_background(self):
        config = EffectConfig.replace(background_gradient=("#000000", "#ffffff"))
        with pytest.raises(ValueError):
            Compositor(config, None)


class TestNoneCompositing:
    """The none effect never touches the frame."""

    def test_returns_input_frame(self, frame):
        out = Compositor(EffectConfig.none()).composite(frame, Mask.full(frame.width, frame.height, 0.0))
        assert out is frame
