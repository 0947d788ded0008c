"""
Client Factory
==============

Builds the collaborator clients the pipeline needs from configuration.
Clients are constructed explicitly and injected; nothing is created at
import time.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Any

from .base import (
    SceneStore,
    KnowledgeGraph,
    Reasoner,
    ImageGenerator,
    VideoGenerator,
    VisionModel,
    FrameExtractor,
    VideoStitcher,
)
from .brain import BrainClient
from .fal import FalImageClient, FalVideoClient, FalVisionClient
from .frames import LastFrameServiceClient, FfmpegFrameExtractor, FfmpegVideoStitcher
from ..context.knowledge_base import YamlKnowledgeGraph
from ..context.scene_store import SQLiteSceneStore
from ..core.config import Config, get_config

logger = logging.getLogger(__name__)


@dataclass
class ServiceClients:
    """The full set of collaborators for one pipeline instance."""

    scene_store: SceneStore
    knowledge_graph: KnowledgeGraph
    reasoner: Reasoner
    image_generator: ImageGenerator
    video_generator: VideoGenerator
    vision: VisionModel
    frame_extractor: FrameExtractor
    video_stitcher: Optional[VideoStitcher] = None

    async def aclose(self) -> None:
        """Close every client that holds resources, each at most once."""
        seen = set()
        for client in (
            self.knowledge_graph,
            self.reasoner,
            self.image_generator,
            self.video_generator,
            self.vision,
            self.frame_extractor,
            self.video_stitcher,
        ):
            if client is None or id(client) in seen:
                continue
            seen.add(id(client))
            close = getattr(client, "close", None)
            if close is not None:
                await close()


def create_clients(
    config: Optional[Config] = None,
    scene_store: Optional[SceneStore] = None,
) -> ServiceClients:
    """
    Create collaborator clients from configuration.

    Args:
        config: Configuration (defaults to the global config)
        scene_store: Scene store override; defaults to SQLite at store.db_path

    Returns:
        ServiceClients ready to hand to SceneGenerator.from_clients()
    """
    config = config or get_config()
    services = config.services

    http_kwargs: dict = {
        "timeout": services.timeout,
        "max_retries": services.max_retries,
    }

    brain = BrainClient(base_url=services.brain_base_url, **http_kwargs)

    knowledge_graph: Any
    if services.knowledge_source == "yaml":
        knowledge_graph = YamlKnowledgeGraph(services.knowledge_path)
    else:
        knowledge_graph = brain

    frame_service: Optional[LastFrameServiceClient] = None
    if "service" in (services.frame_extractor, services.video_stitcher):
        frame_service = LastFrameServiceClient(
            base_url=services.frame_service_url,
            **http_kwargs,
        )

    frame_extractor: Any = frame_service
    if services.frame_extractor == "ffmpeg":
        frame_extractor = FfmpegFrameExtractor(frames_path=services.frames_path)

    video_stitcher: Any = frame_service
    if services.video_stitcher == "ffmpeg":
        video_stitcher = FfmpegVideoStitcher(output_path=services.stitch_output_path)

    logger.info(
        f"Created clients (knowledge: {services.knowledge_source}, "
        f"frames: {services.frame_extractor}, stitching: {services.video_stitcher})"
    )

    return ServiceClients(
        scene_store=scene_store or SQLiteSceneStore(config.store.db_path),
        knowledge_graph=knowledge_graph,
        reasoner=brain,
        image_generator=FalImageClient(base_url=services.fal_base_url, **http_kwargs),
        video_generator=FalVideoClient(base_url=services.fal_base_url, **http_kwargs),
        vision=FalVisionClient(base_url=services.fal_base_url, **http_kwargs),
        frame_extractor=frame_extractor,
        video_stitcher=video_stitcher,
    )
