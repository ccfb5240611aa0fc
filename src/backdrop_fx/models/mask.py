"""
Mask and Segmentation Models
============================

Typed containers passed between the segmentation engine and the per-frame
pipeline stages.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


@dataclass(frozen=True, slots=True, eq=False)
class Mask:
    """
    Single-channel subject confidence mask.

    Attributes:
        values: (H, W) float32 array in [0, 1]; 1 = subject, 0 = background
    """

    values: np.ndarray

    def __post_init__(self) -> None:
        if self.values.ndim != 2:
            raise ValueError(f"Mask must be 2D, got shape {self.values.shape}")

    @property
    def width(self) -> int:
        return self.values.shape[1]

    @property
    def height(self) -> int:
        return self.values.shape[0]

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def coverage(self) -> float:
        """Fraction of pixels that are mostly subject."""
        if self.values.size == 0:
            return 0.0
        return float(np.count_nonzero(self.values >= 0.5)) / self.values.size

    @classmethod
    def full(cls, width: int, height: int, value: float = 1.0) -> "Mask":
        return cls(np.full((height, width), value, dtype=np.float32))


@dataclass(frozen=True, slots=True, eq=False)
class SegmentationResult:
    """
    Raw output of a segmentation engine for one frame.

    Exactly one of the two forms is populated:
        category_mask: (h, w) uint8, 0 = background, >0 = a foreground class
        confidence_masks: one (h, w) float array in [0, 1] per foreground class

    The buffers may be at model resolution; the mask builder rescales them to
    the frame.
    """

    category_mask: Optional[np.ndarray] = None
    confidence_masks: Tuple[np.ndarray, ...] = ()

    def __post_init__(self) -> None:
        if self.category_mask is None and not self.confidence_masks:
            raise ValueError("SegmentationResult needs a category or confidence mask")
        shapes = {m.shape for m in self.confidence_masks}
        if len(shapes) > 1:
            raise ValueError(f"Confidence masks differ in shape: {sorted(shapes)}")

    @property
    def has_confidence(self) -> bool:
        return bool(self.confidence_masks)

    @property
    def shape(self) -> tuple[int, int]:
        """(h, w) of the raw buffers."""
        if self.confidence_masks:
            return self.confidence_masks[0].shape[:2]
        return self.category_mask.shape[:2]
