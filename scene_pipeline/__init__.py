"""
Scene Generation Pipeline
=========================

Turns structured scene descriptions into short video clips:

- Shot planning from a knowledge graph (locations, characters, props)
- Step-by-step composite building with dual verification
- Image-to-video synthesis
- Continuity frames for chaining scenes
- Stitching an episode's clips into its final video

Quick Start:
    from scene_pipeline import Config, SceneGenerator, create_clients

    config = Config.load()
    clients = create_clients(config)
    generator = SceneGenerator.from_clients(clients, config)

    scene = await generator.generate_scene("scene-001")
    batch = await generator.generate_batch(["scene-002", "scene-003"], chain=True)

    await clients.aclose()
"""

__version__ = "0.1.0"

# Core Utilities
from .core.config import Config, get_config, set_config
from .core.exceptions import (
    PipelineError,
    ConfigurationError,
    ProviderError,
    PlanningError,
    CompositeGenerationError,
    VerificationError,
    VideoGenerationError,
    FrameExtractionError,
    SceneGenerationError,
    SceneNotFoundError,
    StitchingError,
)

# Models
from .scene.models import (
    Scene,
    SceneStatus,
    CameraAngle,
    StepType,
    ShotDecision,
    VerificationResult,
    CompositeResult,
    SceneProgress,
    BatchResult,
    StitchResult,
)

# Pipeline
from .workflow import (
    ShotPlanner,
    Verifier,
    CompositeEngine,
    VideoSynthesizer,
    SceneGenerator,
    EpisodeStitcher,
)

# Collaborators
from .api import ServiceClients, create_clients
from .context import SQLiteSceneStore, YamlKnowledgeGraph

__all__ = [
    # Version
    "__version__",

    # Core
    "Config",
    "get_config",
    "set_config",

    # Exceptions
    "PipelineError",
    "ConfigurationError",
    "ProviderError",
    "PlanningError",
    "CompositeGenerationError",
    "VerificationError",
    "VideoGenerationError",
    "FrameExtractionError",
    "SceneGenerationError",
    "SceneNotFoundError",
    "StitchingError",

    # Models
    "Scene",
    "SceneStatus",
    "CameraAngle",
    "StepType",
    "ShotDecision",
    "VerificationResult",
    "CompositeResult",
    "SceneProgress",
    "BatchResult",
    "StitchResult",

    # Pipeline
    "ShotPlanner",
    "Verifier",
    "CompositeEngine",
    "VideoSynthesizer",
    "SceneGenerator",
    "EpisodeStitcher",

    # Collaborators
    "ServiceClients",
    "create_clients",
    "SQLiteSceneStore",
    "YamlKnowledgeGraph",
]
