"""
Frame Data Model
=================

Internal frame representation shared by ingestion, the effect pipeline and
the output sink.

Design Rules:
    - Pixels are RGBA, shape (H, W, 4), dtype uint8
    - A processed frame carries exactly the timestamp and duration of the
      frame it was produced from (audio/video sync depends on it)
    - Frames are never mutated; stages produce new frames
"""

from dataclasses import dataclass, replace
from typing import Optional

import numpy as np


@dataclass(frozen=True, slots=True, eq=False)
class Frame:
    """
    One captured video image.

    Attributes:
        frame_id: Monotonically increasing frame counter from the source
        timestamp: Capture timestamp in seconds
        duration: Frame duration in seconds (None if the source doesn't say)
        pixels: RGBA pixel buffer, shape (H, W, 4), uint8
    """

    frame_id: int
    timestamp: float
    duration: Optional[float]
    pixels: np.ndarray

    def __post_init__(self) -> None:
        """Validate pixel layout."""
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError(
                f"Frame pixels must be (H, W, 4) RGBA, got {self.pixels.shape}"
            )
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Frame pixels must be uint8, got {self.pixels.dtype}")

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def size(self) -> tuple[int, int]:
        """(width, height) of the frame."""
        return self.width, self.height

    def with_pixels(self, pixels: np.ndarray) -> "Frame":
        """Return a new frame with the same id and timing but new pixels."""
        return replace(self, pixels=pixels)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixel buffer."""
        return (
            f"Frame(frame_id={self.frame_id}, "
            f"timestamp={self.timestamp:.3f}, "
            f"size={self.width}x{self.height})"
        )
