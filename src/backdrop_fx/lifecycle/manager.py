"""
Effect Lifecycle Manager
========================

Owns the effect pipeline's lifetime on a live capture track: attach, swap,
detach, teardown.

LangGraph is used for CONTROL FLOW only. One request walks the graph:

    START → check_entry ─┬─→ prepare_asset → build_pipeline → switch → END
                         └─→ detach → END

Every node routes straight to END once it records an outcome.

Protocol:
    - Generation guard: each request bumps the track's generation and
      carries its own copy. Every node re-checks it before its irreversible
      action; a stale request releases what it allocated and never touches
      track or manager state. Latest request wins.
    - Liveness: checked at entry, after each suspension point and
      immediately before the switch call.
    - The switch runs under a lock with a generation re-check after
      acquisition, so overlapping switches cannot complete out of order.
    - TrackEndedError from the switch itself is an expected race: logged at
      warning level, resources released, state IDLE, never raised.
    - EffectResourceError (engine, asset): the track falls back to
      pass-through (respecting liveness), then the error is raised.
    - Any other failure propagates with state IDLE and the track unmodified.

Example:
    manager = EffectLifecycleManager(track, engine_factory=create_engine)

    await manager.apply_effect(EffectConfig.blur(radius=15))
    await manager.apply_effect(EffectConfig.none())
    await manager.teardown()
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, TypedDict

from langgraph.graph import END, StateGraph

from backdrop_fx.errors import EffectResourceError, TrackEndedError
from backdrop_fx.lifecycle.assets import BackgroundAsset
from backdrop_fx.lifecycle.track import TrackHandle, VideoTrack
from backdrop_fx.models.effect import EffectConfig
from backdrop_fx.models.lifecycle import AttachOutcome, EffectState
from backdrop_fx.observability.metrics import EffectObserver
from backdrop_fx.pipeline.frame_pipeline import FramePipeline
from backdrop_fx.segmentation.engine import SegmentationEngine


logger = logging.getLogger(__name__)


EngineFactory = Callable[[EffectConfig], SegmentationEngine]


class LifecycleGraphState(TypedDict):
    """
    State carried by one attach/detach request.

    Attributes:
        config: Requested effect
        generation: Generation captured when the request started
        asset: Background prepared for this request (replace only)
        pipeline: Pipeline built for this request
        outcome: Set by the node that finishes the request
    """
    config: EffectConfig
    generation: int
    asset: Optional[BackgroundAsset]
    pipeline: Optional[FramePipeline]
    outcome: Optional[AttachOutcome]


class EffectLifecycleManager:
    """
    Attach/swap/detach coordinator for one track.

    Attributes:
        observer: Shared observability hook (also handed to every pipeline)
        frame_skip_interval: Passed to every pipeline built
        adaptive_frame_skip: Passed to every pipeline built
    """

    def __init__(
        self,
        track: VideoTrack,
        engine_factory: EngineFactory,
        observer: Optional[EffectObserver] = None,
        frame_skip_interval: int = 1,
        adaptive_frame_skip: bool = False,
    ) -> None:
        """
        Args:
            track: Capture track to manage
            engine_factory: Builds a fresh segmentation engine for a config
            observer: Observability hook (a private one if None)
            frame_skip_interval: Run inference every N frames
            adaptive_frame_skip: Reuse segmentation while inference is slow
        """
        self._handle = TrackHandle(track=track)
        self._engine_factory = engine_factory
        self.observer = observer or EffectObserver()
        self.frame_skip_interval = frame_skip_interval
        self.adaptive_frame_skip = adaptive_frame_skip

        self._state = EffectState.IDLE
        self._config: Optional[EffectConfig] = None
        self._requested: EffectConfig = EffectConfig.none()
        self._switch_lock = asyncio.Lock()
        self._closed = False

        self._graph = self._build_graph()
        logger.info("EffectLifecycleManager initialized")

    # Properties -----------------------------------------------------------------

    @property
    def state(self) -> EffectState:
        return self._state

    @property
    def config(self) -> Optional[EffectConfig]:
        """Config of the attached pipeline (None while pass-through)."""
        return self._config

    @property
    def requested_config(self) -> EffectConfig:
        """Most recently requested config, attached or not."""
        return self._requested

    @property
    def generation(self) -> int:
        return self._handle.generation

    @property
    def track(self) -> VideoTrack:
        return self._handle.track

    @property
    def pipeline(self) -> Optional[FramePipeline]:
        return self._handle.pipeline

    @property
    def closed(self) -> bool:
        return self._closed

    # Graph ----------------------------------------------------------------------

    def _build_graph(self):
        workflow = StateGraph(LifecycleGraphState)

        workflow.add_node("check_entry", self._check_entry_node)
        workflow.add_node("prepare_asset", self._prepare_asset_node)
        workflow.add_node("build_pipeline", self._build_pipeline_node)
        workflow.add_node("switch", self._switch_node)
        workflow.add_node("detach", self._detach_node)

        workflow.set_entry_point("check_entry")
        workflow.add_conditional_edges(
            "check_entry",
            self._route_entry,
            {"prepare_asset": "prepare_asset", "detach": "detach", END: END},
        )
        workflow.add_conditional_edges(
            "prepare_asset",
            self._route_to("build_pipeline"),
            {"build_pipeline": "build_pipeline", END: END},
        )
        workflow.add_conditional_edges(
            "build_pipeline",
            self._route_to("switch"),
            {"switch": "switch", END: END},
        )
        workflow.add_edge("switch", END)
        workflow.add_edge("detach", END)

        return workflow.compile()

    @staticmethod
    def _route_entry(state: LifecycleGraphState) -> str:
        if state.get("outcome") is not None:
            return END
        if state["config"].is_passthrough:
            return "detach"
        return "prepare_asset"

    @staticmethod
    def _route_to(next_node: str) -> Callable[[LifecycleGraphState], str]:
        def route(state: LifecycleGraphState) -> str:
            return END if state.get("outcome") is not None else next_node
        return route

    async def _check_entry_node(self, state: LifecycleGraphState) -> Dict[str, Any]:
        generation = state["generation"]
        if not self._handle.is_current(generation):
            return self._superseded(generation, "check_entry")
        if not self._handle.is_live:
            logger.info("Track not live at request entry, nothing to attach")
            return self._track_ended(generation)

        if not state["config"].is_passthrough:
            self._state = EffectState.ATTACHING
        return {"outcome": None}

    async def _prepare_asset_node(self, state: LifecycleGraphState) -> Dict[str, Any]:
        generation = state["generation"]
        asset = await BackgroundAsset.prepare(state["config"])

        if not self._handle.is_current(generation):
            self._release(asset=asset)
            return self._superseded(generation, "prepare_asset")
        if not self._handle.is_live:
            self._release(asset=asset)
            return self._track_ended(generation)
        return {"asset": asset}

    async def _build_pipeline_node(self, state: LifecycleGraphState) -> Dict[str, Any]:
        generation = state["generation"]
        config = state["config"]
        asset = state.get("asset")

        try:
            engine = self._engine_factory(config)
            pipeline = FramePipeline(
                config,
                engine=engine,
                background=asset.pixels if asset is not None else None,
                observer=self.observer,
                frame_skip_interval=self.frame_skip_interval,
                adaptive_frame_skip=self.adaptive_frame_skip,
            )
        except Exception:
            self._release(asset=asset)
            raise

        try:
            await pipeline.initialize()
        except Exception:
            self._release(pipeline, asset)
            raise

        if not self._handle.is_current(generation):
            self._release(pipeline, asset)
            return self._superseded(generation, "build_pipeline")
        if not self._handle.is_live:
            self._release(pipeline, asset)
            return self._track_ended(generation)
        return {"pipeline": pipeline}

    async def _switch_node(self, state: LifecycleGraphState) -> Dict[str, Any]:
        generation = state["generation"]
        config = state["config"]
        pipeline = state["pipeline"]
        asset = state.get("asset")

        async with self._switch_lock:
            handle = self._handle
            if not handle.is_current(generation):
                self._release(pipeline, asset)
                return self._superseded(generation, "switch")
            if not handle.is_live:
                self._release(pipeline, asset)
                return self._track_ended(generation)

            try:
                await handle.track.set_processor(pipeline)
            except TrackEndedError as e:
                logger.warning(f"Track ended during effect switch, staying pass-through: {e}")
                self.observer.record_race_swallowed()
                self._release(pipeline, asset)
                return self._track_ended(generation)
            except Exception:
                self._release(pipeline, asset)
                if handle.is_current(generation):
                    self._state = EffectState.IDLE
                raise

            # The track now runs the new pipeline; retire the previous one
            handle.release()
            handle.pipeline = pipeline
            handle.asset = asset

            if self._closed or not handle.is_live:
                # Torn down or ended while the switch call was suspended
                if handle.is_live:
                    try:
                        await handle.track.stop_processor()
                    except TrackEndedError as e:
                        logger.warning(f"Track ended while unwinding effect switch: {e}")
                        self.observer.record_race_swallowed()
                handle.release()
                if not handle.is_current(generation):
                    return self._superseded(generation, "switch")
                return self._track_ended(generation)

            self.observer.record_attach()
            if handle.is_current(generation):
                self._state = EffectState.ATTACHED
            self._config = config
            logger.info(f"Effect attached (generation={generation}): {config.describe()}")
            return {"outcome": AttachOutcome.ATTACHED}

    async def _detach_node(self, state: LifecycleGraphState) -> Dict[str, Any]:
        generation = state["generation"]

        async with self._switch_lock:
            handle = self._handle
            if not handle.is_current(generation):
                return self._superseded(generation, "detach")
            if handle.pipeline is None:
                self._state = EffectState.IDLE
                self._config = None
                return {"outcome": AttachOutcome.DETACHED}
            if not handle.is_live:
                return self._track_ended(generation)

            self._state = EffectState.DETACHING
            try:
                await handle.track.stop_processor()
            except TrackEndedError as e:
                logger.warning(f"Track ended during effect detach: {e}")
                self.observer.record_race_swallowed()
                return self._track_ended(generation)
            except Exception:
                if handle.is_current(generation):
                    self._state = EffectState.IDLE
                raise

            handle.release()
            self._config = None
            if handle.is_current(generation):
                self._state = EffectState.IDLE
            self.observer.record_detach()
            logger.info(f"Effect detached (generation={generation})")
            return {"outcome": AttachOutcome.DETACHED}

    # Node helpers ---------------------------------------------------------------

    def _superseded(self, generation: int, node: str) -> Dict[str, Any]:
        self.observer.record_generation_abort()
        logger.debug(
            f"Request generation {generation} superseded at {node} "
            f"(current={self._handle.generation})"
        )
        return {"outcome": AttachOutcome.SUPERSEDED}

    def _track_ended(self, generation: int) -> Dict[str, Any]:
        if self._handle.is_current(generation):
            self._handle.release()
            self._config = None
            self._state = EffectState.IDLE
        return {"outcome": AttachOutcome.TRACK_ENDED}

    @staticmethod
    def _release(
        pipeline: Optional[FramePipeline] = None,
        asset: Optional[BackgroundAsset] = None,
    ) -> None:
        if pipeline is not None:
            pipeline.close()
        if asset is not None:
            asset.release()

    # Public API -----------------------------------------------------------------

    async def apply_effect(self, config: EffectConfig) -> AttachOutcome:
        """
        Attach (or swap to) the pipeline for `config`; `none` detaches.

        Overlapping calls are allowed: only the most recent one takes effect,
        earlier ones resolve as SUPERSEDED.

        Returns:
            How the request finished

        Raises:
            EffectResourceError: Engine or asset unavailable (the track has
                been returned to pass-through)
        """
        if self._closed:
            logger.debug("apply_effect after teardown ignored")
            return AttachOutcome.SUPERSEDED

        self._requested = config
        generation = self._handle.bump()

        try:
            result = await self._graph.ainvoke({
                "config": config,
                "generation": generation,
                "asset": None,
                "pipeline": None,
                "outcome": None,
            })
        except EffectResourceError as e:
            self.observer.record_resource_error()
            logger.error(f"Effect resources unavailable, falling back to pass-through: {e}")
            await self._fallback_to_passthrough(generation)
            raise
        except Exception:
            if self._handle.is_current(generation):
                self._state = EffectState.IDLE
            raise

        return result["outcome"]

    async def detach(self) -> AttachOutcome:
        """Return the track to pass-through. Same discipline as attach."""
        return await self.apply_effect(EffectConfig.none())

    async def _fallback_to_passthrough(self, generation: int) -> None:
        async with self._switch_lock:
            handle = self._handle
            if not handle.is_current(generation):
                return
            if handle.pipeline is not None and handle.is_live:
                try:
                    await handle.track.stop_processor()
                except TrackEndedError as e:
                    logger.warning(f"Track ended during pass-through fallback: {e}")
                    self.observer.record_race_swallowed()
            handle.release()
            self._config = None
            self._state = EffectState.IDLE

    def on_track_ended(self, *_: Any) -> None:
        """
        The capture source ended: release the pipeline and go IDLE. Usable
        directly as a track on_ended callback.

        In-flight requests are not superseded; they see the ended track at
        their next liveness check and resolve as TRACK_ENDED.
        """
        self._handle.release()
        self._config = None
        self._state = EffectState.IDLE
        logger.info("Track ended, effect released")

    async def replace_track(self, track: VideoTrack) -> AttachOutcome:
        """
        Bind a new capture track (device switch) and re-apply the most
        recently requested effect to it.
        """
        if self._closed:
            return AttachOutcome.SUPERSEDED

        async with self._switch_lock:
            old = self._handle
            old.bump()
            if old.pipeline is not None and old.is_live:
                try:
                    await old.track.stop_processor()
                except TrackEndedError as e:
                    logger.warning(f"Previous track ended while being replaced: {e}")
                    self.observer.record_race_swallowed()
            old.release()
            self._handle = TrackHandle(track=track, generation=old.generation)
            self._config = None
            self._state = EffectState.IDLE

        logger.info("Capture track replaced")
        if self._requested.is_passthrough:
            return AttachOutcome.DETACHED
        return await self.apply_effect(self._requested)

    async def teardown(self) -> None:
        """
        Dispose: force IDLE, invalidate every outstanding request and
        release resources. Idempotent.
        """
        if self._closed:
            return
        self._closed = True
        handle = self._handle
        handle.bump()
        had_pipeline = handle.pipeline is not None
        handle.release()
        self._config = None
        self._state = EffectState.IDLE

        if had_pipeline and handle.is_live:
            try:
                await handle.track.stop_processor()
            except TrackEndedError as e:
                logger.warning(f"Track ended during teardown: {e}")
                self.observer.record_race_swallowed()
        logger.info("EffectLifecycleManager torn down")

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "generation": self._handle.generation,
            "track_live": self._handle.is_live,
            "effect": self._config.describe() if self._config is not None else None,
            "requested": self._requested.describe(),
        }
