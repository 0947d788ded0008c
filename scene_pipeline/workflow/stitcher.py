"""
Episode Stitcher
================

Joins an episode's completed scenes, in scene-number order, into the final
episode video and records the result. Chained batches produce clips that
already start where the previous one stopped, so no transitions are added.
"""

import logging
from typing import Any

from ..api.base import EpisodeStore, VideoStitcher
from ..core.exceptions import StitchingError
from ..scene.models import StitchResult

logger = logging.getLogger(__name__)


class EpisodeStitcher:
    """Final video assembly for an episode."""

    def __init__(self, episode_store: EpisodeStore, video_stitcher: VideoStitcher):
        self.episode_store = episode_store
        self.video_stitcher = video_stitcher

    @classmethod
    def from_clients(cls, clients: Any) -> "EpisodeStitcher":
        if clients.video_stitcher is None:
            raise StitchingError("No video stitcher configured")
        return cls(clients.scene_store, clients.video_stitcher)

    async def stitch_episode(self, episode_id: str) -> StitchResult:
        """
        Stitch every completed scene of an episode.

        Scenes without a video URL or duration are skipped with a warning.

        Raises:
            StitchingError: If no scene can be stitched or the stitcher fails
        """
        scenes = await self.episode_store.completed_scenes(episode_id)
        if not scenes:
            raise StitchingError(
                f"No completed scenes found for episode {episode_id}",
                episode_id=episode_id,
            )

        ordered = sorted(scenes, key=lambda s: s.scene_number)
        usable = [s for s in ordered if s.video_url and s.video_duration]
        skipped = [s.scene_id for s in ordered if not (s.video_url and s.video_duration)]
        if skipped:
            logger.warning(
                f"{len(skipped)} scene(s) missing video data, skipping: {', '.join(skipped)}"
            )
        if not usable:
            raise StitchingError(
                f"No completed scenes with video for episode {episode_id}",
                episode_id=episode_id,
            )

        clips = [
            {
                "video_url": scene.video_url,
                "duration": scene.video_duration,
                "order": scene.scene_number,
            }
            for scene in usable
        ]

        logger.info(f"Stitching {len(clips)} scene(s) for episode {episode_id}")
        try:
            response = await self.video_stitcher.stitch(clips)
        except StitchingError as e:
            e.details.setdefault("episode_id", episode_id)
            raise
        except Exception as e:
            raise StitchingError(
                f"Video stitching failed: {e}",
                episode_id=episode_id,
            ) from e

        video_url = (response or {}).get("video_url")
        if not video_url:
            raise StitchingError("Stitching returned no video", episode_id=episode_id)

        duration = response.get("duration")
        result = StitchResult(
            episode_id=episode_id,
            video_url=video_url,
            duration=float(duration) if duration else sum(c["duration"] for c in clips),
            scene_ids=[scene.scene_id for scene in usable],
            skipped=skipped,
            task_id=response.get("task_id"),
        )

        await self.episode_store.record_final_video(result)
        logger.info(f"Episode {episode_id} stitched: {result.video_url} ({result.duration:.1f}s)")
        return result
