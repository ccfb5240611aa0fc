"""
BackdropFX
==========

Live, privacy-preserving background effects for an outgoing video track.

This package blurs or replaces everything except the detected subject while
a stream is being transmitted, and manages the effect pipeline's lifetime on a
live capture track whose device can end at any moment.

Components:
    - segmentation: Person segmentation engines (mock, torchvision DeepLab)
    - pipeline: Per-frame mask building, temporal stabilization, edge
      refinement and compositing
    - lifecycle: Track handle and the effect lifecycle manager
    - stream: WebSocket frame ingestion and buffering
    - observability: Frame/latency/abort counters

Example:
    from backdrop_fx.models import EffectConfig
    from backdrop_fx.lifecycle import EffectLifecycleManager, ProcessedVideoTrack

    track = ProcessedVideoTrack()
    manager = EffectLifecycleManager(track, engine_factory=...)
    await manager.apply_effect(EffectConfig.blur(radius=15))
"""

__version__ = "0.1.0"
__author__ = "BackdropFX Project"

__all__ = [
    "__version__",
]
