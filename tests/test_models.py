"""
Model and Settings Store Tests
==============================
"""

import numpy as np
import pytest
from pydantic import ValidationError

from backdrop_fx.errors import ConfigurationError
from backdrop_fx.models.effect import (
    BlurQuality,
    EffectConfig,
    EffectKind,
    SegmentationTuning,
)
from backdrop_fx.models.mask import Mask, SegmentationResult
from backdrop_fx.store import EffectSettingsStore


class TestEffectConfig:
    """Construction and validation of effect configs."""

    @pytest.mark.parametrize(
        "quality,radius",
        [
            (BlurQuality.LOW, 10.0),
            (BlurQuality.MEDIUM, 15.0),
            (BlurQuality.HIGH, 25.0),
            (BlurQuality.ULTRA, 40.0),
        ],
    )
    def test_blur_presets(self, quality, radius):
        config = EffectConfig.from_preset(quality)
        assert config.kind == EffectKind.BLUR
        assert config.blur_radius == radius

    def test_defaults(self):
        config = EffectConfig()
        assert config.kind == EffectKind.NONE
        assert config.is_passthrough
        assert config.schema_version == 1
        assert config.tuning.temporal_smoothing
        assert config.tuning.edge_refinement

    @pytest.mark.parametrize("radius", [0, -5, 150])
    def test_blur_radius_bounds(self, radius):
        with pytest.raises(ValidationError):
            EffectConfig.blur(radius)

    def test_configs_are_frozen(self):
        config = EffectConfig.blur(10)
        with pytest.raises(ValidationError):
            config.blur_radius = 20

    def test_replace_needs_exactly_one_source(self):
        with pytest.raises(ValidationError):
            EffectConfig.replace()
        with pytest.raises(ValidationError):
            EffectConfig.replace(
                background_path="office.jpg",
                background_gradient=("#000000", "#ffffff"),
            )

    def test_blur_rejects_background_source(self):
        with pytest.raises(ValidationError):
            EffectConfig(kind=EffectKind.BLUR, background_path="office.jpg")

    @pytest.mark.parametrize("colour", ["667eea", "#667ee", "#zzzzzz", "red"])
    def test_gradient_colour_format(self, colour):
        with pytest.raises(ValidationError):
            EffectConfig.replace(background_gradient=(colour, "#764ba2"))

    def test_asset_shape_validated(self):
        with pytest.raises(ValidationError):
            EffectConfig.replace(background_asset=np.zeros((10, 10), dtype=np.uint8))
        with pytest.raises(ValidationError):
            EffectConfig.replace(background_asset=np.zeros((10, 10, 3), dtype=np.float32))

    def test_describe_never_includes_pixels(self):
        asset = np.zeros((720, 1280, 3), dtype=np.uint8)
        summary = EffectConfig.replace(background_asset=asset).describe()
        assert summary == {"kind": "replace", "schema_version": 1, "background": "asset(1280x720)"}

    def test_describe_blur(self):
        assert EffectConfig.blur(25).describe()["blur_radius"] == 25

    def test_tuning_bounds(self):
        with pytest.raises(ValidationError):
            SegmentationTuning(confidence_threshold=1.5)
        with pytest.raises(ValidationError):
            SegmentationTuning(spatial_sigma=0)


class TestMaskModels:
    """Mask and segmentation result containers."""

    def test_mask_must_be_2d(self):
        with pytest.raises(ValueError):
            Mask(np.zeros((4, 4, 1), dtype=np.float32))

    def test_coverage(self):
        values = np.zeros((10, 10), dtype=np.float32)
        values[:5] = 0.9
        assert Mask(values).coverage() == 0.5

    def test_result_needs_a_buffer(self):
        with pytest.raises(ValueError):
            SegmentationResult()

    def test_confidence_shapes_must_match(self):
        with pytest.raises(ValueError):
            SegmentationResult(confidence_masks=(np.zeros((4, 4)), np.zeros((5, 5))))


class TestEffectSettingsStore:
    """Versioned settings holder."""

    def test_starts_passthrough(self):
        store = EffectSettingsStore()
        assert store.current.is_passthrough
        assert store.version == 0

    def test_request_blur(self):
        store = EffectSettingsStore()
        config = store.request(kind="blur", blur_radius=25)
        assert store.current is config
        assert config.blur_radius == 25
        assert store.version == 1

    def test_quality_preset(self):
        store = EffectSettingsStore()
        assert store.request(kind="blur", quality="ultra").blur_radius == 40.0

    def test_explicit_radius_wins_over_quality(self):
        store = EffectSettingsStore()
        assert store.request(kind="blur", blur_radius=12, quality="high").blur_radius == 12

    def test_rejected_request_keeps_previous(self):
        store = EffectSettingsStore()
        previous = store.request(kind="blur", blur_radius=20)

        with pytest.raises(ConfigurationError):
            store.request(kind="blur", blur_radius=-1)
        with pytest.raises(ConfigurationError):
            store.request(kind="replace")
        with pytest.raises(ConfigurationError):
            store.request(kind="blur", quality="cinematic")
        with pytest.raises(ConfigurationError):
            store.request(kind="blur", tuning={"confidence_threshold": 2})

        assert store.current is previous
        assert store.version == 1

    def test_tuning_passed_through(self):
        store = EffectSettingsStore()
        config = store.request(kind="blur", tuning={"edge_refinement": False, "delegate": "CPU"})
        assert not config.tuning.edge_refinement
        assert config.tuning.delegate.value == "CPU"

    def test_replace_with_gradient(self):
        store = EffectSettingsStore()
        config = store.request(kind="replace", background_gradient=("#667eea", "#764ba2"))
        assert config.kind == EffectKind.REPLACE

    def test_history_is_bounded(self):
        store = EffectSettingsStore(history_size=3)
        for radius in range(1, 7):
            store.request(kind="blur", blur_radius=radius)

        assert [c.blur_radius for c in store.history] == [3, 4, 5]

    def test_history_size_must_be_positive(self):
        with pytest.raises(ValueError):
            EffectSettingsStore(history_size=0)

    def test_set_rejects_non_config(self):
        with pytest.raises(ConfigurationError):
            EffectSettingsStore().set({"kind": "blur"})
