"""
Video Tracks
============

The seam between the effect lifecycle and the capture device.

A track's device can end (unplugged, permission revoked, stream closed) at
any moment, including in the middle of an effect switch. Once ended, every
processor call raises TrackEndedError.

Components:
    - VideoTrack: Protocol the lifecycle manager depends on
    - ProcessedVideoTrack: In-process track that runs the attached pipeline
      on each frame and passes frames through otherwise
    - TrackHandle: Manager-side bookkeeping (generation, attached pipeline)
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, runtime_checkable

from backdrop_fx.errors import TrackEndedError
from backdrop_fx.lifecycle.assets import BackgroundAsset
from backdrop_fx.models.lifecycle import TrackReadyState
from backdrop_fx.pipeline.frame_pipeline import FramePipeline
from backdrop_fx.stream.frame import Frame


logger = logging.getLogger(__name__)


@runtime_checkable
class VideoTrack(Protocol):
    """
    Capture track that can host one frame processor.

    set_processor and stop_processor raise TrackEndedError when the
    underlying source has already ended.
    """

    @property
    def ready_state(self) -> TrackReadyState:
        ...

    async def set_processor(self, pipeline: FramePipeline) -> None:
        ...

    async def stop_processor(self) -> None:
        ...


class ProcessedVideoTrack:
    """
    Live track fed by the stream consumer.

    The track does not own its processor: the lifecycle manager builds,
    attaches and closes pipelines. Ending the track drops the reference.

    Example:
        track = ProcessedVideoTrack("camera-1")
        await track.set_processor(pipeline)
        output = await track.process(frame)
        track.end()
    """

    def __init__(self, track_id: str = "camera") -> None:
        self.track_id = track_id
        self._ready_state = TrackReadyState.LIVE
        self._processor: Optional[FramePipeline] = None
        self._ended_callbacks: List[Callable[["ProcessedVideoTrack"], None]] = []

    @property
    def ready_state(self) -> TrackReadyState:
        return self._ready_state

    @property
    def is_live(self) -> bool:
        return self._ready_state == TrackReadyState.LIVE

    @property
    def processor(self) -> Optional[FramePipeline]:
        return self._processor

    async def set_processor(self, pipeline: FramePipeline) -> None:
        if not self.is_live:
            raise TrackEndedError(f"Track {self.track_id} has ended")
        self._processor = pipeline
        logger.debug(f"Track {self.track_id}: processor set ({pipeline.kind.value})")

    async def stop_processor(self) -> None:
        if not self.is_live:
            raise TrackEndedError(f"Track {self.track_id} has ended")
        self._processor = None
        logger.debug(f"Track {self.track_id}: processor stopped")

    async def process(self, frame: Frame) -> Frame:
        """Run the attached processor on a frame, or pass it through."""
        processor = self._processor
        if processor is None or not self.is_live:
            return frame
        return await processor.process(frame)

    def on_ended(self, callback: Callable[["ProcessedVideoTrack"], None]) -> None:
        """Register a callback invoked once when the track ends."""
        self._ended_callbacks.append(callback)

    def end(self) -> None:
        """Mark the source as ended. Idempotent."""
        if not self.is_live:
            return
        self._ready_state = TrackReadyState.ENDED
        self._processor = None
        logger.info(f"Track {self.track_id} ended")
        for callback in self._ended_callbacks:
            callback(self)

    def __repr__(self) -> str:
        return f"ProcessedVideoTrack(id={self.track_id!r}, state={self._ready_state.value})"


@dataclass
class TrackHandle:
    """
    Lifecycle manager's view of one track.

    Attributes:
        track: The bound capture track
        generation: Incremented by every request that supersedes earlier ones
        pipeline: Pipeline currently attached to the track (at most one)
        asset: Background asset backing the attached pipeline
    """

    track: VideoTrack
    generation: int = 0
    pipeline: Optional[FramePipeline] = None
    asset: Optional[BackgroundAsset] = None

    @property
    def is_live(self) -> bool:
        return self.track.ready_state == TrackReadyState.LIVE

    def bump(self) -> int:
        self.generation += 1
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def release(self) -> None:
        """Close the attached pipeline and asset, if any."""
        if self.pipeline is not None:
            self.pipeline.close()
            self.pipeline = None
        if self.asset is not None:
            self.asset.release()
            self.asset = None
