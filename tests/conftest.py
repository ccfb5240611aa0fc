"""
Test Configuration
==================

Pytest fixtures and test doubles for BackdropFX.
"""

import asyncio
import time
from typing import List, Optional

import numpy as np
import pytest

from backdrop_fx.errors import SegmentationEngineError
from backdrop_fx.lifecycle.track import ProcessedVideoTrack
from backdrop_fx.models.effect import EffectConfig
from backdrop_fx.segmentation.engine import MockSegmentationEngine
from backdrop_fx.stream.frame import Frame


def make_frame(
    width: int = 64,
    height: int = 48,
    frame_id: int = 0,
    timestamp: Optional[float] = None,
    duration: Optional[float] = 1 / 30,
    seed: int = 0,
) -> Frame:
    """Random-texture RGBA frame with an opaque alpha channel."""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    if timestamp is None:
        timestamp = frame_id / 30.0
    return Frame(frame_id=frame_id, timestamp=timestamp, duration=duration, pixels=pixels)


class RecordingTrack(ProcessedVideoTrack):
    """
    ProcessedVideoTrack that records processor calls and can inject faults.

    Attributes:
        set_calls: Configs of every pipeline successfully attached
        stop_calls: Number of successful stop_processor calls
        set_delay: Seconds set_processor suspends before switching
        end_during_set: End the track inside set_processor (device race)
        fail_set_with: Exception raised by set_processor
    """

    def __init__(self, track_id: str = "test-track") -> None:
        super().__init__(track_id)
        self.set_calls: List[EffectConfig] = []
        self.stop_calls = 0
        self.set_delay = 0.0
        self.end_during_set = False
        self.fail_set_with: Optional[Exception] = None

    async def set_processor(self, pipeline) -> None:
        if self.set_delay:
            await asyncio.sleep(self.set_delay)
        if self.end_during_set:
            self.end()
        if self.fail_set_with is not None:
            raise self.fail_set_with
        await super().set_processor(pipeline)
        self.set_calls.append(pipeline.config)

    async def stop_processor(self) -> None:
        await super().stop_processor()
        self.stop_calls += 1


class MockEngineFactory:
    """Engine factory that keeps every engine it builds."""

    def __init__(self, warmup_seconds: float = 0.0, fail: bool = False) -> None:
        self.warmup_seconds = warmup_seconds
        self.fail = fail
        self.engines: List[MockSegmentationEngine] = []

    def __call__(self, config: EffectConfig) -> MockSegmentationEngine:
        if self.fail:
            raise SegmentationEngineError("model unavailable")
        engine = MockSegmentationEngine(
            warmup_seconds=self.warmup_seconds,
            delegate=config.tuning.delegate,
        )
        self.engines.append(engine)
        return engine

    @property
    def live_engines(self) -> int:
        return sum(engine.initialized for engine in self.engines)


class FlakyEngine(MockSegmentationEngine):
    """Mock engine whose segment() raises for the listed call numbers."""

    def __init__(self, fail_calls=(1,), **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_calls = set(fail_calls)
        self.attempts = 0

    def segment(self, frame, timestamp_ms):
        self.attempts += 1
        if self.attempts in self.fail_calls:
            raise RuntimeError("inference crashed")
        return super().segment(frame, timestamp_ms)


class SlowEngine(MockSegmentationEngine):
    """Mock engine that records timestamps and takes `latency` per call."""

    def __init__(self, latency: float = 0.0, **kwargs) -> None:
        super().__init__(**kwargs)
        self.latency = latency
        self.timestamps: List[int] = []

    def segment(self, frame, timestamp_ms):
        self.timestamps.append(timestamp_ms)
        if self.latency:
            time.sleep(self.latency)
        return super().segment(frame, timestamp_ms)


@pytest.fixture
def frame():
    """A small random frame."""
    return make_frame()


@pytest.fixture
def track():
    """A live recording track."""
    return RecordingTrack()


@pytest.fixture
def engine_factory():
    """Instant-warmup engine factory."""
    return MockEngineFactory()


@pytest.fixture
def gradient_config():
    """Replace effect with a generated gradient background."""
    return EffectConfig.replace(background_gradient=("#667eea", "#764ba2"))
