"""
Core Module
===========

Core utilities, configuration, and exceptions for the scene pipeline.
"""

from .config import (
    Config,
    CompositeConfig,
    VerificationConfig,
    VideoConfig,
    BatchConfig,
    StoreConfig,
    ServicesConfig,
    get_config,
    set_config,
    reset_config,
)
from .exceptions import (
    PipelineError,
    ConfigurationError,
    ProviderError,
    RateLimitError,
    SceneNotFoundError,
    PlanningError,
    CompositeGenerationError,
    VerificationError,
    VideoGenerationError,
    FrameExtractionError,
    SceneGenerationError,
)
from .security import sanitize_prompt, redact_api_key

__all__ = [
    # Configuration
    "Config",
    "CompositeConfig",
    "VerificationConfig",
    "VideoConfig",
    "BatchConfig",
    "StoreConfig",
    "ServicesConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Exceptions
    "PipelineError",
    "ConfigurationError",
    "ProviderError",
    "RateLimitError",
    "SceneNotFoundError",
    "PlanningError",
    "CompositeGenerationError",
    "VerificationError",
    "VideoGenerationError",
    "FrameExtractionError",
    "SceneGenerationError",
    # Security
    "sanitize_prompt",
    "redact_api_key",
]
