"""
Data Models
===========

Typed models for BackdropFX.

Models:
    Effect:
        - EffectKind, BlurQuality, Delegate
        - EffectConfig: Immutable, versioned effect configuration
        - SegmentationTuning, EnhancedDetection

    Masks:
        - Mask: Single-channel subject confidence
        - SegmentationResult: Raw engine output

    Lifecycle:
        - EffectState, TrackReadyState, AttachOutcome
"""

from backdrop_fx.models.effect import (
    BLUR_RADIUS_PRESETS,
    BlurQuality,
    Delegate,
    EffectConfig,
    EffectKind,
    EnhancedDetection,
    SegmentationTuning,
)
from backdrop_fx.models.mask import Mask, SegmentationResult
from backdrop_fx.models.lifecycle import AttachOutcome, EffectState, TrackReadyState

__all__ = [
    # Effect
    "BLUR_RADIUS_PRESETS",
    "BlurQuality",
    "Delegate",
    "EffectConfig",
    "EffectKind",
    "EnhancedDetection",
    "SegmentationTuning",
    # Masks
    "Mask",
    "SegmentationResult",
    # Lifecycle
    "AttachOutcome",
    "EffectState",
    "TrackReadyState",
]
