"""
Segmentation Engine
===================

Clean segmentation abstraction.

The person-segmentation model is an opaque external service. The pipeline
only relies on this contract:

    input:  one Frame + a monotonic timestamp (milliseconds)
    output: SegmentationResult with either a per-pixel category buffer or
            one-or-more per-pixel confidence buffers (one per foreground class)

`initialize()` is the one-time asynchronous warm-up (model download, weights,
GPU context). `segment()` is synchronous and may be slow; the pipeline runs it
off the orchestration loop with asyncio.to_thread.

Design Rules:
    - Engines raise SegmentationEngineError on load or inference failure
    - MockSegmentationEngine is deterministic for testing
"""

import asyncio
import logging
import math
from typing import Optional, Protocol

import numpy as np

from backdrop_fx.errors import SegmentationEngineError
from backdrop_fx.models.effect import Delegate
from backdrop_fx.models.mask import SegmentationResult
from backdrop_fx.stream.frame import Frame


logger = logging.getLogger(__name__)


class SegmentationEngine(Protocol):
    """
    Protocol for segmentation backends.

    Implemented by:
        - MockSegmentationEngine (testing, local runs)
        - TorchSegmentationEngine (torchvision DeepLabV3)
    """

    delegate: Delegate

    async def initialize(self) -> None:
        """Load the model. Called once before the first segment()."""
        ...

    def segment(self, frame: Frame, timestamp_ms: int) -> SegmentationResult:
        """Segment one frame."""
        ...

    def close(self) -> None:
        """Release model resources."""
        ...


class MockSegmentationEngine:
    """
    Deterministic mock segmentation engine.

    Produces an elliptical "subject" in the middle of the frame. The subject
    can sway horizontally with the frame_id, which gives the temporal
    stabilizer realistic motion to work with.

    Attributes:
        output: "confidence" (soft edges) or "category" (hard 0/1 classes)
        model_size: (width, height) the mock "model" runs at; None = frame size
        sway_amplitude: Horizontal sway as a fraction of the width
        sway_period: Frames per sway cycle
        warmup_seconds: Simulated initialize() latency
    """

    def __init__(
        self,
        output: str = "confidence",
        model_size: Optional[tuple[int, int]] = None,
        sway_amplitude: float = 0.0,
        sway_period: int = 120,
        warmup_seconds: float = 0.0,
        delegate: Delegate = Delegate.CPU,
    ) -> None:
        if output not in ("confidence", "category"):
            raise ValueError(f"Unknown mock output: {output}")

        self.output = output
        self.model_size = model_size
        self.sway_amplitude = sway_amplitude
        self.sway_period = max(1, sway_period)
        self.warmup_seconds = warmup_seconds
        self.delegate = delegate

        self._initialized = False
        self._calls = 0

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def calls(self) -> int:
        """Number of segment() calls served."""
        return self._calls

    async def initialize(self) -> None:
        if self._initialized:
            return
        if self.warmup_seconds > 0:
            await asyncio.sleep(self.warmup_seconds)
        self._initialized = True
        logger.info(
            f"MockSegmentationEngine initialized: output={self.output}, "
            f"delegate={self.delegate.value}"
        )

    def segment(self, frame: Frame, timestamp_ms: int) -> SegmentationResult:
        if not self._initialized:
            raise SegmentationEngineError("MockSegmentationEngine used before initialize()")

        self._calls += 1
        width, height = self.model_size or frame.size
        distance = self._ellipse_distance(frame.frame_id, width, height)

        if self.output == "category":
            categories = (distance <= 1.0).astype(np.uint8)
            return SegmentationResult(category_mask=categories)

        confidence = np.clip((1.15 - distance) / 0.3, 0.0, 1.0).astype(np.float32)
        return SegmentationResult(confidence_masks=(confidence,))

    def _ellipse_distance(self, frame_id: int, width: int, height: int) -> np.ndarray:
        phase = (2 * math.pi * frame_id) / self.sway_period
        cx = width * (0.5 + self.sway_amplitude * math.sin(phase))
        cy = height * 0.55
        yy, xx = np.mgrid[0:height, 0:width].astype(np.float32)
        return ((xx - cx) / (0.22 * width)) ** 2 + ((yy - cy) / (0.42 * height)) ** 2

    def close(self) -> None:
        self._initialized = False
