"""
Mask Builder
============

Normalizes a raw segmentation result into a single-channel [0, 1] subject
mask at frame resolution.

Two input forms:
    - Category mask: isForeground = category > 0, mapped to 0.0 / 1.0
    - Confidence masks (preferred, higher quality): the per-pixel maximum over
      all foreground classes, gamma corrected with value ** (1 / 1.2) to
      sharpen the confidence falloff near edges

Enhanced detection (optional) removes false detections of background
objects: binarise at the confidence threshold, morphological open, keep the
largest connected component, clear masks that cover too little of the frame.

All functions here are pure.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from backdrop_fx.models.effect import SegmentationTuning
from backdrop_fx.models.mask import Mask, SegmentationResult


logger = logging.getLogger(__name__)


CONFIDENCE_GAMMA = 1.2


def build_mask(
    result: SegmentationResult,
    width: int,
    height: int,
    tuning: Optional[SegmentationTuning] = None,
) -> Mask:
    """
    Build a frame-sized subject mask from a segmentation result.

    Args:
        result: Raw engine output (possibly at model resolution)
        width: Frame width
        height: Frame height
        tuning: Segmentation tuning; enhanced detection runs if enabled

    Returns:
        Mask of shape (height, width), float32 in [0, 1]
    """
    if result.has_confidence:
        values = _from_confidences(result, width, height)
    else:
        values = _from_categories(result, width, height)

    if tuning is not None and tuning.enhanced.enabled:
        values = apply_enhanced_detection(values, tuning)

    return Mask(values)


def _from_categories(result: SegmentationResult, width: int, height: int) -> np.ndarray:
    foreground = (result.category_mask > 0).astype(np.uint8)
    if foreground.shape != (height, width):
        foreground = cv2.resize(foreground, (width, height), interpolation=cv2.INTER_NEAREST)
    return foreground.astype(np.float32)


def _from_confidences(result: SegmentationResult, width: int, height: int) -> np.ndarray:
    stacked = np.stack(result.confidence_masks, axis=0).astype(np.float32, copy=False)
    values = np.clip(stacked.max(axis=0), 0.0, 1.0)
    values = np.power(values, 1.0 / CONFIDENCE_GAMMA, dtype=np.float32)
    if values.shape != (height, width):
        values = cv2.resize(values, (width, height), interpolation=cv2.INTER_LINEAR)
        values = np.clip(values, 0.0, 1.0)
    return values


def apply_enhanced_detection(values: np.ndarray, tuning: SegmentationTuning) -> np.ndarray:
    """
    Suppress false detections in a [0, 1] mask.

    Args:
        values: (H, W) float mask
        tuning: Provides confidence_threshold, min_mask_area_ratio and the
            enhanced detection flags

    Returns:
        Binary (H, W) float32 mask
    """
    enhanced = tuning.enhanced
    binary = (values >= tuning.confidence_threshold).astype(np.uint8)

    if enhanced.morphology_enabled and enhanced.morphology_kernel_size > 1:
        size = enhanced.morphology_kernel_size
        kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))
        binary = cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)

    if enhanced.keep_largest_component_only:
        binary = keep_largest_component(binary)

    area_ratio = np.count_nonzero(binary) / binary.size if binary.size else 0.0
    if area_ratio < tuning.min_mask_area_ratio:
        logger.debug(
            f"Mask too small ({area_ratio:.1%} < {tuning.min_mask_area_ratio:.1%}), clearing"
        )
        binary[:] = 0

    return binary.astype(np.float32)


def keep_largest_component(binary: np.ndarray) -> np.ndarray:
    """Keep only the largest 4-connected foreground region of a uint8 mask."""
    count, labels, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=4)
    if count <= 2:
        # Background plus at most one component
        return binary
    largest = 1 + int(np.argmax(stats[1:, cv2.CC_STAT_AREA]))
    return (labels == largest).astype(np.uint8)
