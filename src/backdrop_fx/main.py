"""
BackdropFX Main Application
===========================

FastAPI entry point for the background effect service.

    capture WebSocket → FrameConsumer → FrameBuffer → ProcessedVideoTrack
        → (attached FramePipeline) → /ws/output

Every (re)connection of the capture source is a new capture track; the
lifecycle manager re-applies the requested effect to it. A disconnect ends
the current track.

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness probe
    GET  /ready     - Readiness probe (stream connected + processing)
    GET  /metrics   - Stream, effect and lifecycle counters
    GET  /effect    - Requested and attached effect
    PUT  /effect    - Request a new effect
    WS   /ws/output - Processed frames (base64 JPEG + timing metadata)
"""

import asyncio
import logging
import os
import signal
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Tuple

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backdrop_fx.config import settings
from backdrop_fx.errors import ConfigurationError, EffectResourceError, SegmentationEngineError
from backdrop_fx.lifecycle import EffectLifecycleManager, ProcessedVideoTrack
from backdrop_fx.models.effect import BlurQuality, EffectConfig, EffectKind
from backdrop_fx.observability import EffectObserver
from backdrop_fx.segmentation import (
    MockSegmentationEngine,
    SegmentationEngine,
    TorchSegmentationEngine,
    _TORCH_AVAILABLE,
)
from backdrop_fx.store import EffectSettingsStore
from backdrop_fx.stream import Frame, FrameBuffer, FrameConsumer, encode_jpeg_b64


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_shutdown_flag: bool = False

# Ingestion
_frame_buffer: Optional[FrameBuffer] = None
_frame_consumer: Optional[FrameConsumer] = None
_consumer_task: Optional[asyncio.Task] = None

# Effect
_observer: Optional[EffectObserver] = None
_store: Optional[EffectSettingsStore] = None
_manager: Optional[EffectLifecycleManager] = None
_track: Optional[ProcessedVideoTrack] = None
_track_count: int = 0

# Processing
_processing_task: Optional[asyncio.Task] = None
_startup_effect_task: Optional[asyncio.Task] = None
_latest_output: Optional[dict] = None
_startup_time: float = 0.0
_is_ready: bool = False
_frame_error_count: int = 0


# =============================================================================
# Getters
# =============================================================================

def get_frame_buffer() -> Optional[FrameBuffer]:
    return _frame_buffer

def get_frame_consumer() -> Optional[FrameConsumer]:
    return _frame_consumer

def get_manager() -> Optional[EffectLifecycleManager]:
    return _manager

def get_store() -> Optional[EffectSettingsStore]:
    return _store

def get_latest_output() -> Optional[dict]:
    return _latest_output

def is_ready() -> bool:
    return _is_ready


# =============================================================================
# Signal Handlers
# =============================================================================

def _handle_sigterm(signum, frame):
    """Handle SIGTERM for graceful shutdown."""
    global _shutdown_flag
    logger.info("Received SIGTERM, initiating graceful shutdown...")
    _shutdown_flag = True


# =============================================================================
# Segmentation Engine Factory
# =============================================================================

def create_segmentation_engine(config: EffectConfig) -> SegmentationEngine:
    """
    Create a fresh segmentation engine for one pipeline.

    Raises:
        SegmentationEngineError: If the deeplab backend is requested but
            torch/torchvision are not installed
        ConfigurationError: On an unknown backend name
    """
    backend = settings.segmentation.backend
    delegate = config.tuning.delegate

    if backend == "mock":
        return MockSegmentationEngine(
            output=settings.segmentation.mock_output,
            delegate=delegate,
        )

    elif backend == "deeplab":
        if not _TORCH_AVAILABLE:
            raise SegmentationEngineError(
                "DeepLab backend requested but torch/torchvision not installed. "
                "Install with: pip install 'backdrop-fx[deeplab]'"
            )
        return TorchSegmentationEngine(
            delegate=delegate,
            input_size=settings.segmentation.input_size,
        )

    else:
        raise ConfigurationError(f"Unknown segmentation backend: {backend}")


# =============================================================================
# Track Events
# =============================================================================

def _new_track() -> ProcessedVideoTrack:
    global _track_count
    _track_count += 1
    track = ProcessedVideoTrack(track_id=f"camera-{_track_count}")
    return track


async def _on_stream_connected() -> None:
    """A (re)connected capture source is a new track."""
    global _track
    if _track is not None and _track.is_live:
        return

    track = _new_track()
    _track = track
    if _manager is None:
        return

    track.on_ended(_manager.on_track_ended)
    try:
        outcome = await _manager.replace_track(track)
        logger.info(f"Bound {track.track_id}, effect outcome: {outcome.value}")
    except EffectResourceError as e:
        logger.error(f"Effect unavailable on {track.track_id}, passing through: {e}")


async def _on_stream_disconnected() -> None:
    if _track is not None:
        _track.end()


async def _apply_startup_effect(config: EffectConfig) -> None:
    try:
        outcome = await _manager.apply_effect(config)
        logger.info(f"Startup effect {config.kind.value}: {outcome.value}")
    except EffectResourceError as e:
        logger.error(f"Startup effect unavailable, passing through: {e}")


# =============================================================================
# Processing Pipeline
# =============================================================================

async def process_frames() -> None:
    """Pull frames, run them through the current track, publish the result."""
    global _latest_output, _is_ready, _frame_error_count

    if _frame_buffer is None or _manager is None:
        logger.error("Processing pipeline not initialized")
        return

    logger.info("Frame processing loop started")
    _is_ready = True

    while not _shutdown_flag:
        try:
            frame = await _frame_buffer.get(timeout=1.0)
            if frame is None:
                continue

            track = _track
            output = await track.process(frame) if track is not None else frame
            _latest_output = await asyncio.to_thread(_build_output, output)

        except asyncio.CancelledError:
            logger.info("Frame processing loop cancelled")
            break
        except Exception as e:
            _frame_error_count += 1
            logger.error(f"Processing error: {e}")
            await asyncio.sleep(0.1)

    _is_ready = False
    logger.info("Frame processing loop stopped")


def _build_output(frame: Frame) -> dict:
    return {
        "frame_id": frame.frame_id,
        "timestamp": frame.timestamp,
        "duration": frame.duration,
        "width": frame.width,
        "height": frame.height,
        "effect": _manager.state.value if _manager else None,
        "image": encode_jpeg_b64(frame.pixels, quality=settings.stream.output_jpeg_quality),
    }


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _frame_buffer, _frame_consumer, _consumer_task
    global _observer, _store, _manager, _track
    global _processing_task, _startup_effect_task, _startup_time

    signal.signal(signal.SIGTERM, _handle_sigterm)

    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")
    logger.info(f"Segmentation backend: {settings.segmentation.backend}")

    # Effect lifecycle
    _observer = EffectObserver(
        log_every_n_frames=settings.observability.log_every_n_frames,
        latency_buckets_ms=settings.observability.latency_buckets_ms,
    )
    startup_config = settings.effect.to_effect_config()
    _store = EffectSettingsStore(initial=startup_config)
    _track = _new_track()
    _manager = EffectLifecycleManager(
        _track,
        engine_factory=create_segmentation_engine,
        observer=_observer,
        frame_skip_interval=settings.segmentation.frame_skip_interval,
        adaptive_frame_skip=settings.segmentation.adaptive_frame_skip,
    )
    _track.on_ended(_manager.on_track_ended)
    _startup_effect_task = asyncio.create_task(
        _apply_startup_effect(startup_config),
        name="startup_effect",
    )

    # Ingestion
    logger.info(f"Stream URL: {settings.stream.url}")
    _frame_buffer = FrameBuffer(maxsize=settings.stream.max_queue_size)
    _frame_consumer = FrameConsumer(
        url=settings.stream.url,
        buffer=_frame_buffer,
        reconnect_backoff_ms=settings.stream.reconnect_backoff_ms,
        max_reconnect_attempts=settings.stream.max_reconnect_attempts,
        on_connected=_on_stream_connected,
        on_disconnected=_on_stream_disconnected,
    )
    _consumer_task = asyncio.create_task(_frame_consumer.run(), name="frame_consumer")

    _processing_task = asyncio.create_task(process_frames(), name="frame_processing")
    logger.info("All components started")

    yield

    logger.info("Shutting down gracefully...")
    global _shutdown_flag
    _shutdown_flag = True

    for task in (_processing_task, _startup_effect_task):
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    if _frame_consumer:
        await _frame_consumer.stop()

    if _consumer_task:
        try:
            await asyncio.wait_for(_consumer_task, timeout=5.0)
        except asyncio.TimeoutError:
            _consumer_task.cancel()
            try:
                await _consumer_task
            except asyncio.CancelledError:
                pass

    if _manager:
        await _manager.teardown()

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="BackdropFX",
    description="Live background blur and replacement for video streams",
    version=settings.service.version,
    lifespan=lifespan,
)


class EffectRequest(BaseModel):
    """Body of PUT /effect."""

    kind: EffectKind = Field(default=EffectKind.NONE)
    blur_radius: Optional[float] = Field(default=None)
    quality: Optional[BlurQuality] = Field(default=None)
    background_path: Optional[str] = Field(default=None)
    background_gradient: Optional[Tuple[str, str]] = Field(default=None)
    tuning: Optional[dict] = Field(default=None)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "BackdropFX",
        "version": settings.service.version,
        "name": settings.service.name,
        "status": "running",
        "segmentation_backend": settings.segmentation.backend,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe. Always 200 while the process runs."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """Readiness probe: 200 once frames can flow, 503 otherwise."""
    consumer = get_frame_consumer()
    stream_connected = consumer.connected if consumer else False
    processing = _is_ready and _manager is not None

    body = {
        "stream_connected": stream_connected,
        "processing": processing,
        "effect_state": _manager.state.value if _manager else None,
    }
    if stream_connected or processing:
        return JSONResponse({"status": "ready", **body})
    return JSONResponse({"status": "not_ready", **body}, status_code=503)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    consumer = get_frame_consumer()
    buffer = get_frame_buffer()

    stream_metrics = {}
    if consumer and buffer:
        stream_metrics = {
            "stream_connected": consumer.connected,
            **consumer.metrics.to_dict(),
            "buffer_size": buffer.size,
            "buffer_dropped": buffer.dropped_count,
        }

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "segmentation_backend": settings.segmentation.backend,
        "frame_errors": _frame_error_count,
        "tracks_seen": _track_count,
        "stream": stream_metrics,
        "effect": _observer.to_dict() if _observer else {},
        "lifecycle": _manager.get_metrics() if _manager else {},
    })


@app.get("/effect")
async def get_effect() -> JSONResponse:
    """Requested (store) and attached (manager) effect."""
    if _store is None or _manager is None:
        return JSONResponse({"error": "Service not started"}, status_code=503)

    attached = _manager.config
    return JSONResponse({
        "version": _store.version,
        "requested": _store.current.describe(),
        "state": _manager.state.value,
        "attached": attached.describe() if attached is not None else None,
    })


@app.put("/effect")
async def put_effect(request: EffectRequest) -> JSONResponse:
    """
    Request a new effect.

    422 when the settings are invalid (previous effect kept), 503 when the
    effect's resources are unavailable (track falls back to pass-through).
    """
    if _store is None or _manager is None:
        return JSONResponse({"error": "Service not started"}, status_code=503)

    try:
        config = _store.request(
            kind=request.kind.value,
            blur_radius=request.blur_radius,
            quality=request.quality.value if request.quality else None,
            tuning=request.tuning,
            **request.model_dump(
                include={"background_path", "background_gradient"},
                exclude_none=True,
            ),
        )
    except ConfigurationError as e:
        return JSONResponse({"error": str(e)}, status_code=422)

    try:
        outcome = await _manager.apply_effect(config)
    except EffectResourceError as e:
        return JSONResponse(
            {"error": str(e), "state": _manager.state.value, "fallback": "passthrough"},
            status_code=503,
        )

    return JSONResponse({
        "outcome": outcome.value,
        "version": _store.version,
        "state": _manager.state.value,
        "effect": config.describe(),
    })


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/output")
async def output_stream(websocket: WebSocket) -> None:
    """Push each new processed frame to the client."""
    await websocket.accept()
    logger.info("Client connected to /ws/output")

    last_sent = -1
    try:
        while not _shutdown_flag:
            current = get_latest_output()
            if current is not None and current["frame_id"] != last_sent:
                await websocket.send_json(current)
                last_sent = current["frame_id"]
            await asyncio.sleep(1 / 60)
    except WebSocketDisconnect:
        pass
    finally:
        logger.info("Client disconnected from /ws/output")


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "backdrop_fx.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
