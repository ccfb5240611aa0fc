"""
Pipeline Module
===============

Per-frame image pipeline.

Components:
    - build_mask: Segmentation result → [0, 1] subject mask
    - TemporalStabilizer: Motion-adaptive smoothing across frames
    - EdgeRefiner: Bilateral edge refinement
    - Compositor: Background blur / replacement blending
    - FramePipeline: Orchestrates the stages for one effect config
"""

from backdrop_fx.pipeline.mask_builder import build_mask, apply_enhanced_detection
from backdrop_fx.pipeline.temporal import TemporalStabilizer
from backdrop_fx.pipeline.edge import EdgeRefiner
from backdrop_fx.pipeline.compositor import Compositor, gaussian_blur
from backdrop_fx.pipeline.frame_pipeline import FramePipeline, PipelineState


__all__ = [
    "build_mask",
    "apply_enhanced_detection",
    "TemporalStabilizer",
    "EdgeRefiner",
    "Compositor",
    "gaussian_blur",
    "FramePipeline",
    "PipelineState",
]
