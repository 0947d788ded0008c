"""
Collaborator Clients
====================

Contracts for the external services the pipeline depends on, and the HTTP
and local adapters that implement them.
"""

from .base import (
    BaseServiceClient,
    SceneStore,
    KnowledgeGraph,
    Reasoner,
    ImageGenerator,
    VideoGenerator,
    VisionModel,
    FrameExtractor,
    VideoStitcher,
    EpisodeStore,
)
from .brain import BrainClient
from .fal import FalImageClient, FalVideoClient, FalVisionClient
from .frames import LastFrameServiceClient, FfmpegFrameExtractor, FfmpegVideoStitcher
from .factory import ServiceClients, create_clients

__all__ = [
    # Contracts
    "BaseServiceClient",
    "SceneStore",
    "KnowledgeGraph",
    "Reasoner",
    "ImageGenerator",
    "VideoGenerator",
    "VisionModel",
    "FrameExtractor",
    "VideoStitcher",
    "EpisodeStore",
    # Adapters
    "BrainClient",
    "FalImageClient",
    "FalVideoClient",
    "FalVisionClient",
    "LastFrameServiceClient",
    "FfmpegFrameExtractor",
    "FfmpegVideoStitcher",
    # Factory
    "ServiceClients",
    "create_clients",
]
