"""
Error Taxonomy
==============

Exception types raised across BackdropFX.

    BackdropError
    ├── ConfigurationError       invalid effect settings (previous config kept)
    ├── EffectResourceError      engine/asset unavailable (falls back to pass-through)
    │   ├── SegmentationEngineError
    │   └── AssetLoadError
    └── TrackEndedError          input source ended (expected race, swallowed)
"""


class BackdropError(Exception):
    """Base class for all BackdropFX errors."""
    pass


class ConfigurationError(BackdropError):
    """Raised when an effect configuration is rejected."""
    pass


class EffectResourceError(BackdropError):
    """Raised when a resource needed by an effect cannot be prepared."""
    pass


class SegmentationEngineError(EffectResourceError):
    """Raised when the segmentation engine fails to load or run."""
    pass


class AssetLoadError(EffectResourceError):
    """Raised when a background asset cannot be decoded or generated."""
    pass


class TrackEndedError(BackdropError):
    """Raised by a track when its input source has already ended."""
    pass
