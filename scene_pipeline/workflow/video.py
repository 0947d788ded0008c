"""
Video Synthesis
===============

Animates a finished composite into a short clip and pulls a continuity
frame from near its end, so the next scene can start where this one
stopped.
"""

import logging
from typing import Optional, Any

from ..api.base import VideoGenerator, FrameExtractor
from ..core.config import VideoConfig
from ..core.exceptions import VideoGenerationError, FrameExtractionError
from ..scene.models import Pacing, Resolution, VideoResult, FrameResult

logger = logging.getLogger(__name__)


class VideoSynthesizer:
    """
    Image-to-video synthesis and continuity frame extraction.

    Ensures visual continuity by:
    - Extracting the last frame of each finished clip
    - Offering continuation cues for prompts seeded from that frame
    """

    def __init__(
        self,
        video_generator: VideoGenerator,
        frame_extractor: FrameExtractor,
        config: Optional[VideoConfig] = None,
    ):
        """
        Initialize the synthesizer.

        Args:
            video_generator: Image-to-video service
            frame_extractor: Frame grabber for finished clips
            config: Output fps, resolution and duration bounds
        """
        self.video_generator = video_generator
        self.frame_extractor = frame_extractor
        self.config = config or VideoConfig()

    @property
    def resolution(self) -> Resolution:
        return Resolution(width=self.config.width, height=self.config.height)

    def clamp_duration(self, duration: int) -> int:
        return min(max(int(duration), self.config.min_duration), self.config.max_duration)

    @staticmethod
    def _parse_resolution(value: Any) -> Optional[Resolution]:
        """Read a resolution reported by the video service (object, dict or "WxH")."""
        if isinstance(value, Resolution):
            return value
        if isinstance(value, dict) and value.get("width") and value.get("height"):
            return Resolution(width=int(value["width"]), height=int(value["height"]))
        if isinstance(value, str):
            width, _, height = value.lower().partition("x")
            if width.strip().isdigit() and height.strip().isdigit():
                return Resolution(width=int(width), height=int(height))
        return None

    async def synthesize(
        self,
        image_url: str,
        pacing: Pacing,
        scene_description: str,
    ) -> VideoResult:
        """
        Generate a clip from the composite.

        Raises:
            VideoGenerationError: If the service fails or returns no video
        """
        prompt = f"Cinematic scene: {scene_description}"
        duration = self.clamp_duration(pacing.duration)
        resolution = self.resolution

        logger.info(
            f"Generating {duration}s video at {resolution} "
            f"(motion {pacing.motion_strength}, {pacing.transition_type})"
        )

        try:
            response = await self.video_generator.generate(
                image_url=image_url,
                prompt=prompt,
                duration=duration,
                fps=self.config.fps,
                resolution=resolution,
                motion_strength=pacing.motion_strength,
            )
        except Exception as e:
            raise VideoGenerationError(
                f"Video generation failed: {e}",
                image_url=image_url,
                prompt=prompt,
            ) from e

        video_url = (response or {}).get("video_url")
        if not video_url:
            raise VideoGenerationError(
                "Video generation returned no video",
                image_url=image_url,
                prompt=prompt,
            )

        try:
            actual_duration = float(response.get("duration") or duration)
        except (TypeError, ValueError):
            actual_duration = float(duration)

        logger.info(f"Generated video: {video_url}")
        return VideoResult(
            video_url=video_url,
            duration=actual_duration,
            fps=response.get("fps") or self.config.fps,
            resolution=self._parse_resolution(response.get("resolution")) or resolution,
        )

    async def extract_continuity_frame(self, video: VideoResult) -> FrameResult:
        """
        Extract the frame just before the end of a clip.

        Raises:
            FrameExtractionError: If extraction fails or yields nothing
        """
        timestamp = max(0.0, video.duration - self.config.frame_offset)

        try:
            frame_url = await self.frame_extractor.extract_frame(video.video_url, timestamp)
        except FrameExtractionError:
            raise
        except Exception as e:
            raise FrameExtractionError(
                f"Frame extraction failed: {e}",
                video_url=video.video_url,
                timestamp=timestamp,
            ) from e

        if not frame_url:
            raise FrameExtractionError(
                "Frame extraction returned no frame",
                video_url=video.video_url,
                timestamp=timestamp,
            )

        logger.info(f"Extracted continuity frame at {timestamp:.2f}s: {frame_url}")
        return FrameResult(frame_url=frame_url, timestamp=timestamp)

    @staticmethod
    def continuation_prompt(
        base_prompt: str,
        prompt_suffix: str = "continuing from previous scene",
    ) -> str:
        """Prefix a prompt with cues for continuing from the previous shot."""
        continuation_cues = [
            "Seamless continuation from previous shot",
            "Maintaining visual continuity",
            prompt_suffix,
        ]
        prefix = ". ".join(filter(None, continuation_cues))
        return f"{prefix}. {base_prompt}"
