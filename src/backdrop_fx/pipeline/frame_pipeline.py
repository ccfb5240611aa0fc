"""
Frame Pipeline
==============

Per-frame orchestration of the effect:

    segmentation → Mask Builder → Temporal Stabilizer → Edge Refiner → Compositor

A FramePipeline is built for exactly one EffectConfig and owns all of its
state (previous mask, last segmentation result, frame counter). Changing the
effect means constructing a new pipeline; a pipeline is never reconfigured.

Frame-skip:
    Under load, the last segmentation result is reused instead of running
    inference again. Reuse only replaces the Mask Builder's input; every frame
    is still stabilized, refined and composited.
        - frame_skip_interval=N runs inference on every Nth frame
        - adaptive_frame_skip reuses on alternate frames while the last
          inference took longer than the frame's duration

Failure Policy:
    Any per-frame failure (inference, mask building, compositing) is logged
    and counted, and the original frame is passed through unmodified. The
    pipeline is not torn down for one bad frame.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np

from backdrop_fx.errors import SegmentationEngineError
from backdrop_fx.models.effect import EffectConfig, EffectKind
from backdrop_fx.models.mask import Mask, SegmentationResult
from backdrop_fx.observability.metrics import EffectObserver
from backdrop_fx.pipeline.compositor import Compositor
from backdrop_fx.pipeline.edge import EdgeRefiner
from backdrop_fx.pipeline.mask_builder import build_mask
from backdrop_fx.pipeline.temporal import TemporalStabilizer
from backdrop_fx.segmentation.engine import SegmentationEngine
from backdrop_fx.stream.frame import Frame


logger = logging.getLogger(__name__)


@dataclass
class PipelineState:
    """
    Mutable per-pipeline state.

    Attributes:
        frame_count: Frames seen since the last reset
        last_result: Segmentation result available for frame-skip reuse
        last_size: (width, height) of the last frame
        last_inference_ms: Latency of the most recent inference
        reused_last: Whether the previous frame reused a segmentation result
    """

    frame_count: int = 0
    last_result: Optional[SegmentationResult] = None
    last_size: Optional[tuple[int, int]] = None
    last_inference_ms: float = 0.0
    reused_last: bool = False

    def reset(self) -> None:
        self.frame_count = 0
        self.last_result = None
        self.last_size = None
        self.last_inference_ms = 0.0
        self.reused_last = False


class FramePipeline:
    """
    Effect pipeline for one EffectConfig.

    Example:
        pipeline = FramePipeline(config, engine=MockSegmentationEngine())
        await pipeline.initialize()

        output = await pipeline.process(frame)
        ...
        pipeline.close()
    """

    def __init__(
        self,
        config: EffectConfig,
        engine: Optional[SegmentationEngine] = None,
        background: Optional[np.ndarray] = None,
        observer: Optional[EffectObserver] = None,
        frame_skip_interval: int = 1,
        adaptive_frame_skip: bool = False,
    ) -> None:
        """
        Args:
            config: Effect to apply
            engine: Segmentation engine (required unless config.kind is none);
                the pipeline owns it and closes it on close()
            background: Decoded background pixels (replace only)
            observer: Shared observability hook
            frame_skip_interval: Run inference every N frames (1 = every frame)
            adaptive_frame_skip: Reuse results while inference exceeds the
                frame budget
        """
        if config.kind != EffectKind.NONE and engine is None:
            raise ValueError(f"{config.kind.value} pipeline needs a segmentation engine")
        if frame_skip_interval < 1:
            raise ValueError("frame_skip_interval must be >= 1")

        self.config = config
        self.frame_skip_interval = frame_skip_interval
        self.adaptive_frame_skip = adaptive_frame_skip
        self.observer = observer or EffectObserver()

        tuning = config.tuning
        self._engine = engine
        self._stabilizer = (
            TemporalStabilizer(base_alpha=tuning.temporal_smoothing_alpha)
            if tuning.temporal_smoothing else None
        )
        self._refiner = (
            EdgeRefiner(
                spatial_sigma=tuning.spatial_sigma,
                intensity_sigma=tuning.intensity_sigma,
                scale=tuning.refine_scale,
            )
            if tuning.edge_refinement else None
        )
        self._compositor = Compositor(config, background)

        self._state = PipelineState()
        self._initialized = config.kind == EffectKind.NONE
        self._closed = False
        self._last_timestamp_ms = -1

    @property
    def kind(self) -> EffectKind:
        return self.config.kind

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def previous_mask(self) -> Optional[Mask]:
        return self._stabilizer.previous_mask if self._stabilizer else None

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def closed(self) -> bool:
        return self._closed

    async def initialize(self) -> None:
        """
        Warm up the segmentation engine.

        Raises:
            SegmentationEngineError: If the engine cannot be loaded
            RuntimeError: If the pipeline was already closed
        """
        if self._closed:
            raise RuntimeError("Cannot initialize a closed pipeline")
        if self._initialized:
            return

        try:
            await self._engine.initialize()
        except SegmentationEngineError:
            raise
        except Exception as e:
            raise SegmentationEngineError(f"Segmentation engine failed to start: {e}") from e

        self._initialized = True
        logger.info(f"FramePipeline ready: {self.config.describe()}")

    async def process(self, frame: Frame) -> Frame:
        """
        Apply the effect to one frame.

        Args:
            frame: Input frame

        Returns:
            Output frame with the same size, timestamp and duration; the input
            frame itself when the effect is none or the frame failed
        """
        if self.config.kind == EffectKind.NONE or self._closed or not self._initialized:
            self.observer.record_frame(processed=False)
            return frame

        if self._state.last_size != frame.size:
            self._reset_for_size(frame.size)
        self._state.frame_count += 1

        try:
            result = await self._segmentation_for(frame)
            if self._closed:
                # Closed while inference was in flight
                self.observer.record_frame(processed=False)
                return frame

            mask = build_mask(result, frame.width, frame.height, self.config.tuning)
            if self._stabilizer is not None:
                mask = self._stabilizer.update(mask)
            if self._refiner is not None:
                mask = self._refiner.refine(mask)
            output = self._compositor.composite(frame, mask)
        except Exception as e:
            self.observer.record_inference_failure()
            self.observer.record_frame(processed=False)
            logger.error(f"Effect failed (frame={frame.frame_id}), passing through: {e}")
            return frame

        self.observer.record_frame(processed=True)
        return output

    async def _segmentation_for(self, frame: Frame) -> SegmentationResult:
        if self._should_reuse(frame):
            self._state.reused_last = True
            self.observer.record_reuse()
            return self._state.last_result

        timestamp_ms = self._next_timestamp_ms(frame)
        started = time.perf_counter()
        result = await asyncio.to_thread(self._engine.segment, frame, timestamp_ms)
        latency_ms = (time.perf_counter() - started) * 1000.0

        self.observer.record_inference(latency_ms)
        self._state.last_inference_ms = latency_ms
        self._state.last_result = result
        self._state.reused_last = False
        return result

    def _should_reuse(self, frame: Frame) -> bool:
        state = self._state
        if state.last_result is None:
            return False
        if self.frame_skip_interval > 1 and (state.frame_count - 1) % self.frame_skip_interval != 0:
            return True
        if self.adaptive_frame_skip and frame.duration and not state.reused_last:
            return state.last_inference_ms > frame.duration * 1000.0
        return False

    def _next_timestamp_ms(self, frame: Frame) -> int:
        # Engines running in video mode require strictly increasing timestamps
        timestamp_ms = int(frame.timestamp * 1000)
        if timestamp_ms <= self._last_timestamp_ms:
            timestamp_ms = self._last_timestamp_ms + 1
        self._last_timestamp_ms = timestamp_ms
        return timestamp_ms

    def _reset_for_size(self, size: tuple[int, int]) -> None:
        if self._state.last_size is not None:
            logger.info(f"Frame size changed {self._state.last_size} -> {size}, resetting pipeline state")
        self._state.reset()
        self._state.last_size = size
        if self._stabilizer is not None:
            self._stabilizer.reset()

    def close(self) -> None:
        """Release the engine and all mask state. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._engine is not None:
            self._engine.close()
        self._compositor.release()
        if self._stabilizer is not None:
            self._stabilizer.reset()
        self._state.reset()
        logger.info(f"FramePipeline closed: {self.config.kind.value}")
