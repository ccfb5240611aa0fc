"""
Temporal Stabilizer
===================

Motion-adaptive smoothing of the subject mask across frames.

A plain exponential moving average either flickers (high alpha) or ghosts
behind a moving subject (low alpha). The stabilizer adapts the blend weight
to how much the mask moved since the previous frame:

    motion = mean(|current - previous|)            (0-255 units)

    alpha = base_alpha
    motion > 20  → alpha *= 0.5                    fast motion
    motion < 5   → alpha = min(alpha * 1.2, 0.5)   static scene

    Per pixel, where |current - previous| > 30:
        pixel_alpha = max(alpha * 0.6, 0.2)        localized motion

    output = previous + (current - previous) * pixel_alpha

The update is written as a step from previous toward current, so a constant
input converges monotonically and never overshoots.

Edge Cases:
    - First frame: passes through unchanged and seeds the state
    - Dimension change: state reset, passes through unchanged
"""

import logging
from typing import Optional

import numpy as np

from backdrop_fx.models.mask import Mask


logger = logging.getLogger(__name__)


HIGH_MOTION = 20.0
LOW_MOTION = 5.0
PIXEL_MOTION = 30.0
MAX_STATIC_ALPHA = 0.5
MIN_PIXEL_ALPHA = 0.2


class TemporalStabilizer:
    """
    Per-pipeline temporal mask stabilizer.

    Owns the previous mask exclusively; one instance per Frame Pipeline.

    Attributes:
        base_alpha: Default blend weight of the current mask (0, 1]
        adaptive: If False, base_alpha is used everywhere (fixed EMA)

    Example:
        stabilizer = TemporalStabilizer(base_alpha=0.35)

        for mask in masks:
            smoothed = stabilizer.update(mask)
    """

    def __init__(
        self,
        base_alpha: float = 0.35,
        adaptive: bool = True,
    ) -> None:
        if not 0 < base_alpha <= 1:
            raise ValueError("base_alpha must be in (0, 1]")

        self.base_alpha = base_alpha
        self.adaptive = adaptive

        self._previous: Optional[np.ndarray] = None
        self._last_motion: float = 0.0
        self._last_alpha: float = base_alpha
        self._resets: int = 0

    @property
    def previous_mask(self) -> Optional[Mask]:
        if self._previous is None:
            return None
        return Mask(self._previous.copy())

    @property
    def last_motion(self) -> float:
        """Frame-level motion estimate of the last update (0-255 units)."""
        return self._last_motion

    @property
    def last_alpha(self) -> float:
        """Frame-level alpha chosen on the last update."""
        return self._last_alpha

    def frame_alpha(self, motion: float) -> float:
        """Frame-level blend weight for a given motion estimate."""
        alpha = self.base_alpha
        if not self.adaptive:
            return alpha
        if motion > HIGH_MOTION:
            alpha *= 0.5
        elif motion < LOW_MOTION:
            alpha = min(alpha * 1.2, MAX_STATIC_ALPHA)
        return alpha

    def update(self, mask: Mask) -> Mask:
        """
        Blend the current mask with the previous output.

        Args:
            mask: Current mask, [0, 1]

        Returns:
            Stabilized mask; also stored as the new previous mask
        """
        current = mask.values.astype(np.float32, copy=False)

        if self._previous is None or self._previous.shape != current.shape:
            if self._previous is not None:
                self._resets += 1
                logger.info(
                    f"Mask size changed {self._previous.shape} -> {current.shape}, "
                    f"resetting temporal state"
                )
            self._previous = current.copy()
            self._last_motion = 0.0
            self._last_alpha = self.base_alpha
            return mask

        delta = current - self._previous
        abs_delta = np.abs(delta) * 255.0
        motion = float(abs_delta.mean()) if abs_delta.size else 0.0
        alpha = self.frame_alpha(motion)

        if self.adaptive:
            pixel_alpha = np.where(
                abs_delta > PIXEL_MOTION,
                np.float32(max(alpha * 0.6, MIN_PIXEL_ALPHA)),
                np.float32(alpha),
            )
        else:
            pixel_alpha = np.float32(alpha)

        output = self._previous + delta * pixel_alpha

        self._previous = output
        self._last_motion = motion
        self._last_alpha = alpha
        return Mask(output.copy())

    def reset(self) -> None:
        """Drop the previous mask."""
        self._previous = None
        self._last_motion = 0.0
        self._last_alpha = self.base_alpha

    def get_metrics(self) -> dict:
        return {
            "last_motion": round(self._last_motion, 3),
            "last_alpha": round(self._last_alpha, 3),
            "resets": self._resets,
        }
