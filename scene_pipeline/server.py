"""
HTTP Trigger Server
===================

FastAPI app for triggering scene generation and episode stitching from
workflow tools (n8n, CMS hooks) and polling progress.

Usage:
    python -m scene_pipeline.server --port 8000
    uvicorn scene_pipeline.server:create_default_app --factory --port 8000
"""

import argparse
import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, List, Dict, Any

from fastapi import FastAPI, BackgroundTasks, HTTPException
from pydantic import BaseModel, Field

from .api.factory import create_clients
from .core.config import Config, get_config
from .core.exceptions import SceneNotFoundError, SceneGenerationError
from .workflow.generator import SceneGenerator
from .workflow.stitcher import EpisodeStitcher

logger = logging.getLogger(__name__)


class GenerateRequest(BaseModel):
    """Request model for single scene generation."""
    continuity_frame_url: Optional[str] = None


class BatchRequest(BaseModel):
    """Request model for batch generation."""
    scene_ids: List[str] = Field(..., min_length=1)
    parallel: bool = False
    max_concurrent: Optional[int] = Field(default=None, ge=1)
    chain: bool = False


def create_app(
    generator: SceneGenerator,
    clients: Optional[Any] = None,
    stitcher: Optional[EpisodeStitcher] = None,
) -> FastAPI:
    """
    Build the API around a scene generator.

    Args:
        generator: Configured scene generator
        clients: ServiceClients to close on shutdown, if the app owns them
        stitcher: Episode stitcher; stitch routes answer 503 without one
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if clients is not None:
            await clients.aclose()

    app = FastAPI(
        title="Scene Generation Pipeline API",
        description="Trigger scene generation and episode stitching, and poll progress",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Batch job tracking
    batches: Dict[str, Dict[str, Any]] = {}

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "api_configured": bool(os.getenv("FAL_API_KEY")),
        }

    @app.post("/scenes/{scene_id}/generate", status_code=202)
    async def generate_scene(
        scene_id: str,
        background_tasks: BackgroundTasks,
        request: Optional[GenerateRequest] = None,
    ):
        """
        Start generating a scene.

        Generation runs in the background; poll /scenes/{scene_id}/progress.
        """
        try:
            await generator.get_progress(scene_id)
        except SceneNotFoundError:
            raise HTTPException(status_code=404, detail=f"Scene not found: {scene_id}")

        frame_url = request.continuity_frame_url if request else None
        background_tasks.add_task(run_generation, scene_id, frame_url)

        return {
            "scene_id": scene_id,
            "status": "queued",
            "message": f"Generation started. Check /scenes/{scene_id}/progress for progress.",
        }

    async def run_generation(scene_id: str, continuity_frame_url: Optional[str]):
        """Background task for scene generation."""
        try:
            await generator.generate_scene(scene_id, continuity_frame_url=continuity_frame_url)
        except SceneGenerationError as e:
            # Failure is already persisted on the scene record
            logger.error(f"Background generation failed: {e}")

    @app.post("/scenes/batch", status_code=202)
    async def generate_batch(request: BatchRequest, background_tasks: BackgroundTasks):
        """
        Start a batch of scenes.

        Poll /batches/{job_id} for the batch outcome.
        """
        if request.chain and request.parallel:
            raise HTTPException(status_code=422, detail="Chained batches must run sequentially")

        job_id = f"batch_{uuid.uuid4().hex[:12]}"
        batches[job_id] = {
            "job_id": job_id,
            "status": "queued",
            "created_at": datetime.now().isoformat(),
            "total_scenes": len(request.scene_ids),
        }

        background_tasks.add_task(run_batch, job_id, request)

        return {
            "job_id": job_id,
            "status": "queued",
            "total_scenes": len(request.scene_ids),
            "message": f"Batch generation started. Check /batches/{job_id} for progress.",
        }

    async def run_batch(job_id: str, request: BatchRequest):
        """Background task for batch generation."""
        batches[job_id]["status"] = "processing"

        try:
            result = await generator.generate_batch(
                request.scene_ids,
                parallel=request.parallel,
                max_concurrent=request.max_concurrent,
                chain=request.chain,
            )
        except Exception as e:
            logger.error(f"Batch {job_id} failed: {e}")
            batches[job_id].update({
                "status": "failed",
                "completed_at": datetime.now().isoformat(),
                "error": str(e),
            })
            return

        batches[job_id].update({
            "status": "completed" if not result.failed else "partial",
            "completed_at": datetime.now().isoformat(),
            **result.to_dict(),
        })

    @app.get("/batches/{job_id}")
    async def get_batch(job_id: str):
        """Get the status of a batch job."""
        if job_id not in batches:
            raise HTTPException(status_code=404, detail="Batch not found")
        return batches[job_id]

    @app.get("/scenes/{scene_id}/progress")
    async def get_progress(scene_id: str):
        """Get a scene's generation progress."""
        try:
            progress = await generator.get_progress(scene_id)
        except SceneNotFoundError:
            raise HTTPException(status_code=404, detail=f"Scene not found: {scene_id}")
        return progress.to_dict()

    # Episode stitch tracking
    stitches: Dict[str, Dict[str, Any]] = {}

    @app.post("/episodes/{episode_id}/stitch", status_code=202)
    async def stitch_episode(episode_id: str, background_tasks: BackgroundTasks):
        """
        Join the episode's completed scenes into the final video.

        Poll /episodes/{episode_id}/stitch for the outcome.
        """
        if stitcher is None:
            raise HTTPException(status_code=503, detail="Video stitching is not configured")
        if stitches.get(episode_id, {}).get("status") in ("queued", "processing"):
            raise HTTPException(status_code=409, detail=f"Episode {episode_id} is already stitching")

        stitches[episode_id] = {
            "episode_id": episode_id,
            "status": "queued",
            "created_at": datetime.now().isoformat(),
        }
        background_tasks.add_task(run_stitch, episode_id)

        return {
            "episode_id": episode_id,
            "status": "queued",
            "message": f"Stitching started. Check /episodes/{episode_id}/stitch for progress.",
        }

    async def run_stitch(episode_id: str):
        """Background task for episode stitching."""
        stitches[episode_id]["status"] = "processing"
        try:
            result = await stitcher.stitch_episode(episode_id)
        except Exception as e:
            logger.error(f"Stitching episode {episode_id} failed: {e}")
            stitches[episode_id].update({"status": "failed", "error": str(e)})
            return

        stitches[episode_id].update({"status": "completed", **result.to_dict()})

    @app.get("/episodes/{episode_id}/stitch")
    async def get_stitch(episode_id: str):
        """Get the status of an episode's stitch job."""
        if episode_id not in stitches:
            raise HTTPException(status_code=404, detail="No stitch job for episode")
        return stitches[episode_id]

    return app


def create_default_app(config: Optional[Config] = None) -> FastAPI:
    """Build the app with clients created from configuration."""
    config = config or get_config()
    clients = create_clients(config)
    stitcher = EpisodeStitcher.from_clients(clients) if clients.video_stitcher else None
    return create_app(
        SceneGenerator.from_clients(clients, config),
        clients=clients,
        stitcher=stitcher,
    )


def main() -> None:
    import uvicorn

    parser = argparse.ArgumentParser(description="Scene generation HTTP server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--config", help="Path to config file")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = create_default_app(Config.load(args.config))
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
