"""
Effect Configuration Models
===========================

Immutable, versioned configuration values for background effects.

Changing the effect always means building a new EffectConfig; configs are
frozen and are never mutated in place. Invalid values are rejected when the
config is constructed.

Presets:
    BlurQuality maps a quality level to a blur radius:
        low=10, medium=15, high=25, ultra=40

Example:
    from backdrop_fx.models.effect import EffectConfig, BlurQuality

    blur = EffectConfig.from_preset(BlurQuality.HIGH)
    office = EffectConfig.replace(background_path="./backgrounds/office.jpg")
    off = EffectConfig.none()
"""

import re
from enum import Enum
from typing import Optional, Tuple

import numpy as np
from pydantic import BaseModel, Field, field_validator, model_validator


EFFECT_SCHEMA_VERSION = 1

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


class EffectKind(str, Enum):
    """Kind of background treatment."""

    NONE = "none"
    BLUR = "blur"
    REPLACE = "replace"


class Delegate(str, Enum):
    """Execution hint passed to the segmentation engine."""

    GPU = "GPU"
    CPU = "CPU"


class BlurQuality(str, Enum):
    """Blur quality presets."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    ULTRA = "ultra"


BLUR_RADIUS_PRESETS = {
    BlurQuality.LOW: 10.0,
    BlurQuality.MEDIUM: 15.0,
    BlurQuality.HIGH: 25.0,
    BlurQuality.ULTRA: 40.0,
}


class EnhancedDetection(BaseModel):
    """
    Post-processing that suppresses false detections of background objects.

    When enabled, the mask is binarised at the tuning's confidence threshold,
    cleaned with a morphological open, reduced to its largest connected
    component and cleared entirely if it covers too little of the frame.
    """

    enabled: bool = Field(default=False, description="Enable enhanced detection")
    morphology_enabled: bool = Field(default=True, description="Morphological open")
    morphology_kernel_size: int = Field(
        default=5,
        ge=1,
        le=31,
        description="Kernel size in pixels for the morphological open",
    )
    keep_largest_component_only: bool = Field(
        default=True,
        description="Keep only the largest connected foreground region",
    )

    class Config:
        frozen = True


class SegmentationTuning(BaseModel):
    """Segmentation and mask post-processing parameters."""

    confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Binarisation threshold used by enhanced detection",
    )
    spatial_sigma: float = Field(
        default=3.0,
        gt=0,
        le=15.0,
        description="Edge refiner neighbourhood radius / spatial sigma (pixels)",
    )
    intensity_sigma: float = Field(
        default=25.0,
        gt=0,
        description="Edge refiner intensity sigma (0-255 units)",
    )
    refine_scale: float = Field(
        default=0.5,
        gt=0,
        le=1.0,
        description="Resolution factor at which the edge refiner runs",
    )
    min_mask_area_ratio: float = Field(
        default=0.01,
        ge=0.0,
        le=1.0,
        description="Masks covering less of the frame are cleared (enhanced only)",
    )
    temporal_smoothing_alpha: float = Field(
        default=0.35,
        gt=0,
        le=1.0,
        description="Base blend weight of the current mask",
    )
    temporal_smoothing: bool = Field(default=True, description="Enable stabilizer")
    edge_refinement: bool = Field(default=True, description="Enable edge refiner")
    delegate: Delegate = Field(default=Delegate.GPU, description="GPU/CPU hint")
    enhanced: EnhancedDetection = Field(default_factory=EnhancedDetection)

    class Config:
        frozen = True


class EffectConfig(BaseModel):
    """
    Immutable description of the effect to apply to a track.

    Attributes:
        schema_version: Version of this configuration layout
        kind: none, blur or replace
        blur_radius: Gaussian sigma for the blur effect (pixels, > 0)
        background_asset: Decoded RGB/RGBA pixel buffer (replace only)
        background_path: Image file to load (replace only)
        background_gradient: Two hex colours for a diagonal gradient (replace only)
        tuning: Segmentation tuning parameters
    """

    schema_version: int = Field(default=EFFECT_SCHEMA_VERSION, ge=1)
    kind: EffectKind = Field(default=EffectKind.NONE)
    blur_radius: float = Field(
        default=BLUR_RADIUS_PRESETS[BlurQuality.MEDIUM],
        gt=0,
        le=100.0,
        description="Blur radius in pixels",
    )
    background_asset: Optional[np.ndarray] = Field(default=None, repr=False)
    background_path: Optional[str] = Field(default=None)
    background_gradient: Optional[Tuple[str, str]] = Field(default=None)
    tuning: SegmentationTuning = Field(default_factory=SegmentationTuning)

    class Config:
        frozen = True
        arbitrary_types_allowed = True
        use_enum_values = False

    @field_validator("background_asset")
    @classmethod
    def _check_asset(cls, value: Optional[np.ndarray]) -> Optional[np.ndarray]:
        if value is None:
            return value
        if value.ndim != 3 or value.shape[2] not in (3, 4):
            raise ValueError(
                f"background_asset must be (H, W, 3|4), got {value.shape}"
            )
        if value.dtype != np.uint8:
            raise ValueError(f"background_asset must be uint8, got {value.dtype}")
        if value.shape[0] == 0 or value.shape[1] == 0:
            raise ValueError("background_asset must not be empty")
        return value

    @field_validator("background_gradient")
    @classmethod
    def _check_gradient(cls, value: Optional[Tuple[str, str]]) -> Optional[Tuple[str, str]]:
        if value is None:
            return value
        for color in value:
            if not _HEX_COLOR.match(color):
                raise ValueError(f"Gradient colour must be #RRGGBB, got {color!r}")
        return value

    @model_validator(mode="after")
    def _check_background_source(self) -> "EffectConfig":
        sources = [
            self.background_asset is not None,
            self.background_path is not None,
            self.background_gradient is not None,
        ]
        if self.kind == EffectKind.REPLACE and sum(sources) != 1:
            raise ValueError(
                "replace effect needs exactly one of background_asset, "
                "background_path or background_gradient"
            )
        if self.kind != EffectKind.REPLACE and any(sources):
            raise ValueError(f"{self.kind.value} effect takes no background source")
        return self

    @property
    def is_passthrough(self) -> bool:
        return self.kind == EffectKind.NONE

    def describe(self) -> dict:
        """Loggable summary (never includes pixel data)."""
        summary = {"kind": self.kind.value, "schema_version": self.schema_version}
        if self.kind == EffectKind.BLUR:
            summary["blur_radius"] = self.blur_radius
        elif self.kind == EffectKind.REPLACE:
            if self.background_path is not None:
                summary["background"] = self.background_path
            elif self.background_gradient is not None:
                summary["background"] = "gradient(%s, %s)" % self.background_gradient
            else:
                h, w = self.background_asset.shape[:2]
                summary["background"] = f"asset({w}x{h})"
        return summary

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def none(cls) -> "EffectConfig":
        return cls(kind=EffectKind.NONE)

    @classmethod
    def blur(
        cls,
        radius: float = BLUR_RADIUS_PRESETS[BlurQuality.MEDIUM],
        tuning: Optional[SegmentationTuning] = None,
    ) -> "EffectConfig":
        return cls(
            kind=EffectKind.BLUR,
            blur_radius=radius,
            tuning=tuning or SegmentationTuning(),
        )

    @classmethod
    def from_preset(
        cls,
        quality: BlurQuality,
        tuning: Optional[SegmentationTuning] = None,
    ) -> "EffectConfig":
        """Blur effect with the preset radius for the given quality."""
        return cls.blur(radius=BLUR_RADIUS_PRESETS[BlurQuality(quality)], tuning=tuning)

    @classmethod
    def replace(
        cls,
        background_asset: Optional[np.ndarray] = None,
        background_path: Optional[str] = None,
        background_gradient: Optional[Tuple[str, str]] = None,
        tuning: Optional[SegmentationTuning] = None,
    ) -> "EffectConfig":
        return cls(
            kind=EffectKind.REPLACE,
            background_asset=background_asset,
            background_path=background_path,
            background_gradient=background_gradient,
            tuning=tuning or SegmentationTuning(),
        )
