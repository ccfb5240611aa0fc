"""
Lifecycle Module
================

Attaching, swapping and detaching the effect pipeline on a live track.

Components:
    - VideoTrack / ProcessedVideoTrack: capture track seam
    - TrackHandle: generation counter and attached pipeline
    - BackgroundAsset: decoded replace-effect background
    - EffectLifecycleManager: LangGraph-driven attach/detach protocol
"""

from backdrop_fx.lifecycle.assets import BackgroundAsset, render_gradient
from backdrop_fx.lifecycle.track import ProcessedVideoTrack, TrackHandle, VideoTrack
from backdrop_fx.lifecycle.manager import EffectLifecycleManager, EngineFactory


__all__ = [
    "BackgroundAsset",
    "render_gradient",
    "ProcessedVideoTrack",
    "TrackHandle",
    "VideoTrack",
    "EffectLifecycleManager",
    "EngineFactory",
]
