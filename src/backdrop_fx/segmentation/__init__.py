"""
Segmentation Module
===================

Person segmentation backends.

The pipeline consumes ONLY SegmentationResult values; model internals are a
black box.

Components:
    - SegmentationEngine: Protocol for segmentation backends
    - MockSegmentationEngine: Deterministic mock for testing
    - TorchSegmentationEngine: torchvision DeepLab v3 (optional dependency)
"""

from backdrop_fx.segmentation.engine import (
    SegmentationEngine,
    MockSegmentationEngine,
)

# Torch engine imported separately to avoid a mandatory dependency
try:
    from backdrop_fx.segmentation.torch_engine import TorchSegmentationEngine
    _TORCH_AVAILABLE = True
except ImportError:
    _TORCH_AVAILABLE = False
    TorchSegmentationEngine = None  # type: ignore

__all__ = [
    "SegmentationEngine",
    "MockSegmentationEngine",
    "TorchSegmentationEngine",
    "_TORCH_AVAILABLE",
]
