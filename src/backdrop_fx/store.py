"""
Effect Settings Store
=====================

Explicit, shared holder of the currently requested EffectConfig.

The store is passed by reference to whoever needs it (HTTP handlers, the
lifecycle wiring, the offline CLI). A rejected request raises
ConfigurationError and the previous valid config stays current.
"""

import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from backdrop_fx.errors import ConfigurationError
from backdrop_fx.models.effect import BlurQuality, EffectConfig, SegmentationTuning


logger = logging.getLogger(__name__)


class EffectSettingsStore:
    """
    Versioned effect configuration.

    Attributes:
        current: Last accepted config
        version: Incremented on every accepted change

    Example:
        store = EffectSettingsStore()
        config = store.request(kind="blur", blur_radius=25)
    """

    def __init__(self, initial: Optional[EffectConfig] = None, history_size: int = 10) -> None:
        if history_size < 1:
            raise ValueError("history_size must be >= 1")

        self._current = initial or EffectConfig.none()
        self._version = 0
        self._history: List[EffectConfig] = []
        self._history_size = history_size

    @property
    def current(self) -> EffectConfig:
        return self._current

    @property
    def version(self) -> int:
        return self._version

    @property
    def history(self) -> List[EffectConfig]:
        """Previously current configs, oldest first."""
        return list(self._history)

    def set(self, config: EffectConfig) -> EffectConfig:
        """Make an already validated config current."""
        if not isinstance(config, EffectConfig):
            raise ConfigurationError(f"Expected EffectConfig, got {type(config).__name__}")

        self._history.append(self._current)
        del self._history[:-self._history_size]
        self._current = config
        self._version += 1
        logger.info(f"Effect settings v{self._version}: {config.describe()}")
        return config

    def request(
        self,
        kind: str = "none",
        blur_radius: Optional[float] = None,
        quality: Optional[str] = None,
        tuning: Optional[dict] = None,
        **background: Any,
    ) -> EffectConfig:
        """
        Validate and store a new effect.

        Args:
            kind: none, blur or replace
            blur_radius: Explicit blur radius (wins over quality)
            quality: Blur preset name (low/medium/high/ultra)
            tuning: SegmentationTuning fields
            **background: background_asset, background_path or
                background_gradient for replace

        Raises:
            ConfigurationError: If the fields do not form a valid config
        """
        fields: dict = {"kind": kind, **background}
        try:
            if tuning is not None:
                fields["tuning"] = SegmentationTuning.model_validate(tuning)
            if blur_radius is not None:
                fields["blur_radius"] = blur_radius
            elif quality is not None:
                preset = EffectConfig.from_preset(BlurQuality(quality))
                fields["blur_radius"] = preset.blur_radius
            config = EffectConfig.model_validate(fields)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Rejected effect settings, keeping v{self._version}: {e}")
            raise ConfigurationError(f"Invalid effect settings: {e}") from e

        return self.set(config)
