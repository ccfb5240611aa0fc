"""
Compositor
==========

Blends a background treatment with the original frame using the subject
mask.

    output = background * (1 - mask) + original * mask

Kinds:
    - blur: background is a Gaussian blur of the frame (sigma = blur_radius)
    - replace: background is the asset, scaled to the frame size
    - none: the original frame is returned untouched

Only RGB is blended; the alpha channel of the original frame is kept. The
output frame always carries the input frame's timestamp and duration.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from backdrop_fx.models.effect import EffectConfig, EffectKind
from backdrop_fx.models.mask import Mask
from backdrop_fx.stream.frame import Frame


logger = logging.getLogger(__name__)


def gaussian_blur(pixels: np.ndarray, radius: float) -> np.ndarray:
    """
    Blur the RGB channels of an RGBA frame.

    Args:
        pixels: (H, W, 4) uint8
        radius: Gaussian sigma in pixels

    Returns:
        (H, W, 3) uint8 blurred RGB
    """
    rgb = np.ascontiguousarray(pixels[..., :3])
    return cv2.GaussianBlur(rgb, (0, 0), sigmaX=radius, sigmaY=radius)


def scale_background(asset: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize a background asset to (height, width, 3) uint8 RGB."""
    rgb = asset[..., :3]
    if rgb.shape[:2] != (height, width):
        rgb = cv2.resize(rgb, (width, height), interpolation=cv2.INTER_LINEAR)
    return np.ascontiguousarray(rgb)


class Compositor:
    """
    Mask-driven background compositor.

    Holds a per-size cache of the scaled background asset so the asset is
    resized once per frame size, not once per frame.
    """

    def __init__(self, config: EffectConfig, background: Optional[np.ndarray] = None) -> None:
        """
        Args:
            config: Effect configuration (kind, blur_radius)
            background: Decoded background pixels, required for replace
        """
        if config.kind == EffectKind.REPLACE and background is None:
            raise ValueError("replace compositing needs a background buffer")

        self.config = config
        self._background = background
        self._scaled: Optional[np.ndarray] = None

    def background_for(self, frame: Frame) -> np.ndarray:
        """Background treatment for a frame, (H, W, 3) uint8."""
        if self.config.kind == EffectKind.BLUR:
            return gaussian_blur(frame.pixels, self.config.blur_radius)

        if self._scaled is None or self._scaled.shape[:2] != (frame.height, frame.width):
            self._scaled = scale_background(self._background, frame.width, frame.height)
        return self._scaled

    def composite(self, frame: Frame, mask: Optional[Mask]) -> Frame:
        """
        Blend the background treatment into a frame.

        Args:
            frame: Original frame
            mask: Refined subject mask, same size as the frame

        Returns:
            New frame with identical timing metadata

        Raises:
            ValueError: If the mask size doesn't match the frame
        """
        if self.config.kind == EffectKind.NONE or mask is None:
            return frame

        if mask.size != frame.size:
            raise ValueError(
                f"Mask size {mask.size} doesn't match frame size {frame.size}"
            )

        weight = mask.values[..., np.newaxis].astype(np.float32)
        original = frame.pixels[..., :3].astype(np.float32)
        background = self.background_for(frame).astype(np.float32)

        blended = background * (1.0 - weight) + original * weight

        output = np.empty_like(frame.pixels)
        output[..., :3] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
        output[..., 3] = frame.pixels[..., 3]
        return frame.with_pixels(output)

    def release(self) -> None:
        self._background = None
        self._scaled = None
