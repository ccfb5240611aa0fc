"""
Background Assets
=================

Decoded background images for the replace effect.

Sources:
    - a caller-supplied pixel buffer (RGB or RGBA)
    - an image file, decoded with OpenCV off the event loop
    - a pair of hex colours rendered as a diagonal gradient
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

from backdrop_fx.errors import AssetLoadError
from backdrop_fx.models.effect import EffectConfig, EffectKind


logger = logging.getLogger(__name__)


GRADIENT_SIZE = (1920, 1080)


def hex_to_rgb(colour: str) -> Tuple[int, int, int]:
    value = colour.lstrip("#")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def render_gradient(
    start: str,
    end: str,
    width: int = GRADIENT_SIZE[0],
    height: int = GRADIENT_SIZE[1],
) -> np.ndarray:
    """
    Render a top-left → bottom-right linear gradient.

    Returns:
        RGB pixels, shape (height, width, 3), uint8
    """
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float32)
    # Projection onto the diagonal (width, height), normalized to [0, 1]
    t = (xs * width + ys * height) / float(width * width + height * height)
    t = np.clip(t, 0.0, 1.0)[..., None]

    a = np.array(hex_to_rgb(start), dtype=np.float32)
    b = np.array(hex_to_rgb(end), dtype=np.float32)
    pixels = a + (b - a) * t
    return np.clip(np.rint(pixels), 0, 255).astype(np.uint8)


def load_image(path: str) -> np.ndarray:
    """Decode an image file to RGB. Raises AssetLoadError."""
    if not Path(path).is_file():
        raise AssetLoadError(f"Background image not found: {path}")

    bgr = cv2.imread(path, cv2.IMREAD_COLOR)
    if bgr is None:
        raise AssetLoadError(f"Background image could not be decoded: {path}")
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)


class BackgroundAsset:
    """
    Decoded background owned by one attached pipeline.

    Attributes:
        source: Human-readable origin (for logs)
    """

    def __init__(self, pixels: np.ndarray, source: str) -> None:
        self._pixels: Optional[np.ndarray] = pixels
        self.source = source

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise AssetLoadError(f"Background asset {self.source} was released")
        return self._pixels

    @property
    def released(self) -> bool:
        return self._pixels is None

    def release(self) -> None:
        self._pixels = None

    @classmethod
    async def prepare(cls, config: EffectConfig) -> Optional["BackgroundAsset"]:
        """
        Prepare the background a config needs.

        Returns:
            The asset for a replace config, None for other kinds

        Raises:
            AssetLoadError: If the image cannot be loaded
        """
        if config.kind != EffectKind.REPLACE:
            return None

        if config.background_asset is not None:
            return cls(config.background_asset, source="buffer")

        if config.background_path is not None:
            pixels = await asyncio.to_thread(load_image, config.background_path)
            logger.info(
                f"Loaded background {config.background_path} "
                f"({pixels.shape[1]}x{pixels.shape[0]})"
            )
            return cls(pixels, source=config.background_path)

        start, end = config.background_gradient
        pixels = await asyncio.to_thread(render_gradient, start, end)
        return cls(pixels, source=f"gradient({start}, {end})")

    def __repr__(self) -> str:
        return f"BackgroundAsset(source={self.source!r}, released={self.released})"
