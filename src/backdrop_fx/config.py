"""
BackdropFX Configuration
========================

Configuration loading for the effect service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    BACKDROP_STREAM_URL           -> stream.url
    BACKDROP_RECONNECT_BACKOFF_MS -> stream.reconnect_backoff_ms
    BACKDROP_MAX_QUEUE_SIZE       -> stream.max_queue_size
    BACKDROP_SEGMENTATION_BACKEND -> segmentation.backend
    BACKDROP_DELEGATE             -> segmentation.delegate
    BACKDROP_FRAME_SKIP_INTERVAL  -> segmentation.frame_skip_interval
    BACKDROP_EFFECT_KIND          -> effect.kind
    BACKDROP_BLUR_RADIUS          -> effect.blur_radius
    BACKDROP_BACKGROUND_PATH      -> effect.background_path
    BACKDROP_PORT                 -> server.port
    BACKDROP_LOG_LEVEL            -> logging.level
    BACKDROP_LOG_FORMAT           -> logging.format
    PORT                          -> server.port (Cloud Run)

Example:
    from backdrop_fx.config import settings

    print(settings.stream.url)
    print(settings.effect.to_effect_config())
"""

import os
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError

from backdrop_fx.errors import ConfigurationError
from backdrop_fx.models.effect import (
    BLUR_RADIUS_PRESETS,
    BlurQuality,
    Delegate,
    EffectConfig,
    EffectKind,
    SegmentationTuning,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification."""

    name: str = Field(default="backdrop-fx", description="Service name")
    version: str = Field(default="v0.1.0", description="Protocol version")


class StreamConfig(BaseModel):
    """Capture stream connection configuration."""

    url: str = Field(
        default="ws://localhost:8000/ws/camera",
        description="WebSocket URL of the capture source",
    )
    reconnect_backoff_ms: int = Field(
        default=500,
        ge=100,
        description="Backoff in milliseconds between reconnect attempts",
    )
    max_reconnect_attempts: int = Field(
        default=0,
        ge=0,
        description="Maximum reconnection attempts (0 = unlimited)",
    )
    max_queue_size: int = Field(
        default=4,
        ge=1,
        description="Maximum frames buffered ahead of the effect loop",
    )
    output_jpeg_quality: int = Field(
        default=80,
        ge=10,
        le=100,
        description="JPEG quality of frames sent to output clients",
    )


class SegmentationConfig(BaseModel):
    """Segmentation backend and scheduling."""

    backend: str = Field(
        default="mock",
        description="Segmentation backend: 'mock' or 'deeplab'",
    )
    delegate: Delegate = Field(default=Delegate.GPU, description="GPU/CPU hint")
    input_size: int = Field(
        default=256,
        ge=64,
        le=1024,
        description="Model input size (shorter side, pixels)",
    )
    mock_output: str = Field(
        default="confidence",
        description="Mock engine output: 'confidence' or 'category'",
    )
    frame_skip_interval: int = Field(
        default=1,
        ge=1,
        description="Run inference every N frames",
    )
    adaptive_frame_skip: bool = Field(
        default=True,
        description="Reuse segmentation while inference exceeds the frame budget",
    )


class EffectDefaults(BaseModel):
    """Effect applied when the service starts."""

    kind: EffectKind = Field(default=EffectKind.BLUR, description="none, blur or replace")
    quality: BlurQuality = Field(default=BlurQuality.MEDIUM, description="Blur preset")
    blur_radius: Optional[float] = Field(
        default=None,
        gt=0,
        description="Explicit blur radius (overrides quality)",
    )
    background_path: Optional[str] = Field(default=None, description="Replace image")
    background_gradient: Optional[Tuple[str, str]] = Field(
        default=None,
        description="Replace gradient colours",
    )
    tuning: SegmentationTuning = Field(default_factory=SegmentationTuning)

    def to_effect_config(self) -> EffectConfig:
        """
        Build the startup EffectConfig.

        Raises:
            ConfigurationError: If the defaults do not form a valid effect
        """
        fields: dict = {"kind": self.kind, "tuning": self.tuning}
        if self.kind == EffectKind.BLUR:
            fields["blur_radius"] = self.blur_radius or BLUR_RADIUS_PRESETS[self.quality]
        elif self.kind == EffectKind.REPLACE:
            if self.background_path is not None:
                fields["background_path"] = self.background_path
            if self.background_gradient is not None:
                fields["background_gradient"] = self.background_gradient
        try:
            return EffectConfig.model_validate(fields)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid default effect: {e}") from e


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class ObservabilityConfig(BaseModel):
    """Observer configuration."""

    log_every_n_frames: int = Field(
        default=300,
        ge=1,
        description="Emit a frame summary log line every N frames",
    )
    latency_buckets_ms: List[float] = Field(
        default_factory=lambda: [5.0, 10.0, 20.0, 33.0, 50.0, 100.0, 200.0, 500.0],
        description="Inference latency histogram bounds (ms)",
    )


class Settings(BaseModel):
    """
    Main settings class for BackdropFX.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    segmentation: SegmentationConfig = Field(default_factory=SegmentationConfig)
    effect: EffectDefaults = Field(default_factory=EffectDefaults)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Stream
    if env_url := os.environ.get("BACKDROP_STREAM_URL"):
        config_data.setdefault("stream", {})["url"] = env_url
    if env_backoff := os.environ.get("BACKDROP_RECONNECT_BACKOFF_MS"):
        config_data.setdefault("stream", {})["reconnect_backoff_ms"] = int(env_backoff)
    if env_queue := os.environ.get("BACKDROP_MAX_QUEUE_SIZE"):
        config_data.setdefault("stream", {})["max_queue_size"] = int(env_queue)

    # Segmentation
    if env_backend := os.environ.get("BACKDROP_SEGMENTATION_BACKEND"):
        config_data.setdefault("segmentation", {})["backend"] = env_backend
    if env_delegate := os.environ.get("BACKDROP_DELEGATE"):
        config_data.setdefault("segmentation", {})["delegate"] = env_delegate.upper()
    if env_skip := os.environ.get("BACKDROP_FRAME_SKIP_INTERVAL"):
        config_data.setdefault("segmentation", {})["frame_skip_interval"] = int(env_skip)

    # Startup effect
    if env_kind := os.environ.get("BACKDROP_EFFECT_KIND"):
        config_data.setdefault("effect", {})["kind"] = env_kind
    if env_radius := os.environ.get("BACKDROP_BLUR_RADIUS"):
        config_data.setdefault("effect", {})["blur_radius"] = float(env_radius)
    if env_bg := os.environ.get("BACKDROP_BACKGROUND_PATH"):
        config_data.setdefault("effect", {})["background_path"] = env_bg

    # Server (Cloud Run uses PORT)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("BACKDROP_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging
    if env_log := os.environ.get("BACKDROP_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log
    if env_fmt := os.environ.get("BACKDROP_LOG_FORMAT"):
        config_data.setdefault("logging", {})["format"] = env_fmt


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
