"""
Configuration System
====================

Centralized, validated configuration management with typed dataclasses.
"""

import os
import re
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Dict, Any, Union
import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class CompositeConfig:
    """Composite loop limits."""

    max_iterations: int = 20
    max_step_retries: int = 5
    pass_threshold: float = 0.7
    max_references: int = 3

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.max_iterations < 1:
            raise ConfigurationError(
                f"max_iterations must be >= 1, got {self.max_iterations}",
                config_key="composite.max_iterations",
            )
        if self.max_step_retries < 1:
            raise ConfigurationError(
                f"max_step_retries must be >= 1, got {self.max_step_retries}",
                config_key="composite.max_step_retries",
            )
        if not 0.0 <= self.pass_threshold <= 1.0:
            raise ConfigurationError(
                f"pass_threshold must be 0.0-1.0, got {self.pass_threshold}",
                config_key="composite.pass_threshold",
            )
        if not 1 <= self.max_references <= 3:
            raise ConfigurationError(
                f"max_references must be 1-3, got {self.max_references}",
                config_key="composite.max_references",
            )


@dataclass
class VerificationConfig:
    """Dual verification scoring."""

    knowledge_pass_score: float = 0.7
    vision_pass_score: float = 0.9
    vision_fail_score: float = 0.3
    default_score: float = 0.5
    strict: bool = False

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate score values."""
        for name, value in [
            ("knowledge_pass_score", self.knowledge_pass_score),
            ("vision_pass_score", self.vision_pass_score),
            ("vision_fail_score", self.vision_fail_score),
            ("default_score", self.default_score),
        ]:
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(
                    f"{name} must be 0.0-1.0, got {value}",
                    config_key=f"verification.{name}",
                )


@dataclass
class VideoConfig:
    """Video output settings."""

    fps: int = 24
    width: int = 1024
    height: int = 576
    min_duration: int = 5
    max_duration: int = 7
    frame_offset: float = 0.1
    format: str = "mp4"

    VALID_FORMATS = {"mp4", "webm", "mov"}

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if not 1 <= self.min_duration <= self.max_duration <= 60:
            raise ConfigurationError(
                f"Invalid duration range {self.min_duration}-{self.max_duration}",
                config_key="video.max_duration",
            )
        if self.fps < 1:
            raise ConfigurationError(
                f"fps must be positive, got {self.fps}",
                config_key="video.fps",
            )
        if self.format not in self.VALID_FORMATS:
            raise ConfigurationError(
                f"Invalid format: {self.format}",
                config_key="video.format",
            )


@dataclass
class BatchConfig:
    """Batch generation settings."""

    max_concurrent: int = 3

    def __post_init__(self):
        if self.max_concurrent < 1:
            raise ConfigurationError(
                f"max_concurrent must be >= 1, got {self.max_concurrent}",
                config_key="batch.max_concurrent",
            )


@dataclass
class StoreConfig:
    """Scene store settings."""

    db_path: str = "./output/scenes.db"


@dataclass
class ServicesConfig:
    """Collaborator service settings."""

    fal_base_url: str = "https://fal.run"
    brain_base_url: str = "http://localhost:8001"
    frame_service_url: str = "https://last-frame.ft.tc/api/v1"
    timeout: int = 120
    max_retries: int = 3

    knowledge_source: str = "brain"
    knowledge_path: Optional[str] = None
    frame_extractor: str = "service"
    frames_path: str = "./output/frames"
    video_stitcher: str = "service"
    stitch_output_path: str = "./output/episodes"

    VALID_KNOWLEDGE_SOURCES = {"brain", "yaml"}
    VALID_FRAME_EXTRACTORS = {"service", "ffmpeg"}
    VALID_VIDEO_STITCHERS = {"service", "ffmpeg"}

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.knowledge_source not in self.VALID_KNOWLEDGE_SOURCES:
            raise ConfigurationError(
                f"Invalid knowledge source: {self.knowledge_source}",
                config_key="services.knowledge_source",
            )
        if self.knowledge_source == "yaml" and not self.knowledge_path:
            raise ConfigurationError(
                "knowledge_path is required when knowledge_source is 'yaml'",
                config_key="services.knowledge_path",
            )
        if self.frame_extractor not in self.VALID_FRAME_EXTRACTORS:
            raise ConfigurationError(
                f"Invalid frame extractor: {self.frame_extractor}",
                config_key="services.frame_extractor",
            )
        if self.video_stitcher not in self.VALID_VIDEO_STITCHERS:
            raise ConfigurationError(
                f"Invalid video stitcher: {self.video_stitcher}",
                config_key="services.video_stitcher",
            )
        if not 0 <= self.max_retries <= 10:
            raise ConfigurationError(
                f"max_retries must be 0-10, got {self.max_retries}",
                config_key="services.max_retries",
            )


# =============================================================================
# Main Configuration Class
# =============================================================================


@dataclass
class Config:
    """
    Main configuration container with validation and loading.

    Provides a unified interface to all configuration settings with:
    - Type-safe access to configuration values
    - Validation on load
    - Environment variable interpolation
    - Sensible defaults for all values
    """

    composite: CompositeConfig = field(default_factory=CompositeConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    services: ServicesConfig = field(default_factory=ServicesConfig)

    SECTIONS = ("composite", "verification", "video", "batch", "store", "services")

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "Config":
        """
        Load configuration from file with environment variable interpolation.

        Args:
            path: Path to a YAML config file (searched before the defaults)

        Returns:
            Validated Config instance
        """
        search_paths = [
            Path("./config/defaults.yaml"),
            Path("./defaults.yaml"),
            Path.home() / ".scene-pipeline" / "config.yaml",
        ]

        if path:
            search_paths.insert(0, Path(path))

        config_data = {}

        for search_path in search_paths:
            if search_path.exists():
                logger.info(f"Loading config from: {search_path}")
                try:
                    with open(search_path, "r") as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except yaml.YAMLError as e:
                    raise ConfigurationError(
                        f"Invalid YAML in config file: {e}",
                        config_key=str(search_path),
                    )
        else:
            logger.info("No config file found, using defaults")

        config_data = cls._interpolate_env_vars(config_data)

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary with validation."""
        try:
            return cls(
                composite=CompositeConfig(**data.get("composite", {})),
                verification=VerificationConfig(**data.get("verification", {})),
                video=VideoConfig(**data.get("video", {})),
                batch=BatchConfig(**data.get("batch", {})),
                store=StoreConfig(**data.get("store", {})),
                services=ServicesConfig(**data.get("services", {})),
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @staticmethod
    def _interpolate_env_vars(data: Any) -> Any:
        """Recursively interpolate ${VAR} patterns with environment variables."""
        if isinstance(data, str):
            # ${VAR} and ${VAR:-default}
            pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

            def replace(match):
                var_name = match.group(1)
                default = match.group(2) or ""
                return os.environ.get(var_name, default)

            return re.sub(pattern, replace, data)
        elif isinstance(data, dict):
            return {k: Config._interpolate_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [Config._interpolate_env_vars(item) for item in data]
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {section: asdict(getattr(self, section)) for section in self.SECTIONS}


# =============================================================================
# Convenience Functions
# =============================================================================


_global_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance (lazily loaded)."""
    global _global_config
    if _global_config is None:
        _global_config = Config.load()
    return _global_config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset global configuration to None (forces reload on next access)."""
    global _global_config
    _global_config = None
