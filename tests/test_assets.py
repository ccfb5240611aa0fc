"""
Background Asset Tests
======================
"""

import cv2
import numpy as np
import pytest

from backdrop_fx.errors import AssetLoadError
from backdrop_fx.lifecycle.assets import BackgroundAsset, hex_to_rgb, render_gradient
from backdrop_fx.models.effect import EffectConfig


class TestGradient:
    """Diagonal gradient rendering."""

    def test_corners(self):
        pixels = render_gradient("#000000", "#ffffff", width=64, height=36)

        assert pixels.shape == (36, 64, 3)
        assert pixels.dtype == np.uint8
        np.testing.assert_array_equal(pixels[0, 0], [0, 0, 0])
        assert pixels[35, 63].min() >= 250

    def test_monotonic_along_diagonal(self):
        pixels = render_gradient("#000000", "#ff0000", width=50, height=50)
        diagonal = pixels[np.arange(50), np.arange(50), 0].astype(int)
        assert np.all(np.diff(diagonal) >= 0)

    def test_hex_to_rgb(self):
        assert hex_to_rgb("#667eea") == (0x66, 0x7E, 0xEA)


class TestPrepare:
    """Asset preparation per config."""

    @pytest.mark.asyncio
    async def test_blur_needs_no_asset(self):
        assert await BackgroundAsset.prepare(EffectConfig.blur()) is None

    @pytest.mark.asyncio
    async def test_buffer_source(self):
        buffer = np.zeros((10, 20, 3), dtype=np.uint8)
        asset = await BackgroundAsset.prepare(EffectConfig.replace(background_asset=buffer))
        assert asset.pixels is buffer

    @pytest.mark.asyncio
    async def test_gradient_source(self, gradient_config):
        asset = await BackgroundAsset.prepare(gradient_config)
        assert asset.pixels.shape == (1080, 1920, 3)

    @pytest.mark.asyncio
    async def test_image_file(self, tmp_path):
        path = tmp_path / "office.png"
        bgr = np.zeros((12, 16, 3), dtype=np.uint8)
        bgr[..., 0] = 255
        cv2.imwrite(str(path), bgr)

        asset = await BackgroundAsset.prepare(EffectConfig.replace(background_path=str(path)))

        assert asset.pixels.shape == (12, 16, 3)
        # Decoded as RGB: blue lands in the last channel
        np.testing.assert_array_equal(asset.pixels[0, 0], [0, 0, 255])

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        config = EffectConfig.replace(background_path=str(tmp_path / "missing.jpg"))
        with pytest.raises(AssetLoadError):
            await BackgroundAsset.prepare(config)

    @pytest.mark.asyncio
    async def test_undecodable_file(self, tmp_path):
        path = tmp_path / "broken.jpg"
        path.write_bytes(b"not an image")
        with pytest.raises(AssetLoadError):
            await BackgroundAsset.prepare(EffectConfig.replace(background_path=str(path)))

    def test_released_asset(self):
        asset = BackgroundAsset(np.zeros((2, 2, 3), dtype=np.uint8), source="test")
        asset.release()
        assert asset.released
        with pytest.raises(AssetLoadError):
            asset.pixels
