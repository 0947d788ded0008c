"""
Frame Extraction & Stitching
============================

Video post-processing collaborators:
- LastFrameServiceClient: remote submit-and-poll service for continuity
  frames and for joining finished clips
- FfmpegFrameExtractor / FfmpegVideoStitcher: local ffmpeg, for offline runs
"""

import asyncio
import logging
import subprocess
import uuid
from pathlib import Path
from typing import Optional, List, Dict, Any, Union, Callable

from .base import BaseServiceClient
from ..core.exceptions import FrameExtractionError, StitchingError, PipelineError, ProviderError

logger = logging.getLogger(__name__)


# Subprocess timeouts in seconds
SUBPROCESS_TIMEOUT = 30
CONCAT_TIMEOUT = 600


class LastFrameServiceClient(BaseServiceClient):
    """Remote frame extraction and stitching service."""

    def __init__(
        self,
        poll_interval: float = 3.0,
        max_wait: float = 300.0,
        stitch_max_wait: float = 600.0,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.stitch_max_wait = stitch_max_wait

    @property
    def service_name(self) -> str:
        return "last-frame"

    @property
    def env_key_name(self) -> str:
        return "LAST_FRAME_API_TOKEN"

    def _get_default_base_url(self) -> str:
        return "https://last-frame.ft.tc/api/v1"

    async def extract_frame(self, video_url: str, timestamp: float) -> str:
        """
        Submit an extraction task and wait for the frame URL.

        Raises:
            FrameExtractionError: If the task fails, times out, or returns no image
        """
        def fail(message: str) -> FrameExtractionError:
            return FrameExtractionError(message, video_url=video_url, timestamp=timestamp)

        submitted = await self._request(
            "POST",
            "/process",
            json={"video_url": video_url, "timestamp": timestamp},
        )
        task_id = submitted.get("taskId") or submitted.get("task_id")
        if not task_id:
            raise fail("Frame extraction service returned no task id")

        logger.info(f"Frame extraction task submitted: {task_id}")
        status = await self._wait_for_completion(
            f"/status/{task_id}", "Last frame extraction", self.max_wait, fail
        )

        image_url = (status.get("result") or {}).get("imageUrl")
        if not image_url:
            raise fail("Frame extraction completed but no image URL returned")
        return image_url

    async def stitch(self, clips: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Submit clips for stitching and wait for the joined video.

        Args:
            clips: Dicts with video_url, duration and order

        Returns:
            Dict with video_url, duration and task_id

        Raises:
            StitchingError: If the task fails, times out, or returns no video
        """
        submitted = await self._request(
            "POST",
            "/stitch",
            json={
                "scenes": [
                    {
                        "videoUrl": clip["video_url"],
                        "duration": clip["duration"],
                        "order": clip["order"],
                    }
                    for clip in clips
                ],
            },
        )
        task_id = submitted.get("taskId") or submitted.get("task_id")
        if not task_id:
            raise StitchingError("Stitching service returned no task id")

        def fail(message: str) -> StitchingError:
            return StitchingError(message, task_id=task_id)

        logger.info(f"Stitch task submitted for {len(clips)} clip(s): {task_id}")
        status = await self._wait_for_completion(
            f"/stitch/status/{task_id}", "Video stitch", self.stitch_max_wait, fail
        )

        result = status.get("result") or {}
        if not result.get("videoUrl"):
            raise fail("Stitch completed but no video URL returned")

        return {
            "video_url": result["videoUrl"],
            "duration": result.get("duration"),
            "task_id": task_id,
        }

    async def _wait_for_completion(
        self,
        status_path: str,
        label: str,
        max_wait: float,
        fail: Callable[[str], PipelineError],
    ) -> Dict[str, Any]:
        """Poll a task until it completes, fails, or times out."""
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            try:
                status = await self._request("GET", status_path)
            except ProviderError as e:
                # Polling errors are transient until the deadline passes
                logger.warning(f"Error polling {label.lower()} status: {e}")
                status = {}

            state = status.get("status")
            if state == "completed":
                return status
            if state == "failed":
                raise fail(f"{label} failed: {status.get('error') or 'Unknown error'}")

            if loop.time() - start_time >= max_wait:
                raise fail(f"{label} timed out after {max_wait} seconds")

            if status.get("progress"):
                logger.info(f"{label} progress: {status['progress']}%")
            logger.debug(f"{status_path} status: {state}, waiting...")
            await asyncio.sleep(self.poll_interval)


class FfmpegFrameExtractor:
    """
    Extracts frames locally with ffmpeg.

    ffmpeg reads both local paths and http(s) URLs, so the video does not
    need to be downloaded first. Returns the path of the written image.
    """

    def __init__(
        self,
        frames_path: Union[str, Path] = "./output/frames",
        quality: int = 95,
    ):
        """
        Initialize the extractor.

        Args:
            frames_path: Directory for storing extracted frames
            quality: JPEG quality (1-100)
        """
        self.frames_path = Path(frames_path)
        self.frames_path.mkdir(parents=True, exist_ok=True)
        self.quality = quality

    async def extract_frame(self, video_url: str, timestamp: float) -> str:
        """Extract the frame at ``timestamp`` seconds."""
        output_path = self.frames_path / f"frame_{uuid.uuid4().hex[:12]}.jpg"
        return await asyncio.to_thread(self._extract, video_url, timestamp, output_path)

    def _extract(self, video_url: str, timestamp: float, output_path: Path) -> str:
        # The generator may return a clip shorter than requested
        actual_duration = self.get_video_duration(video_url)
        if actual_duration:
            timestamp = min(timestamp, max(0.0, actual_duration - 0.1))

        cmd = [
            "ffmpeg", "-y",
            "-ss", str(max(0.0, timestamp)),
            "-i", video_url,
            "-vframes", "1",
            # Convert to ffmpeg's 1-31 scale
            "-q:v", str(int((100 - self.quality) / 3) + 1),
            str(output_path),
        ]

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=SUBPROCESS_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise FrameExtractionError(
                f"ffmpeg frame extraction error: {e}",
                video_url=video_url,
                timestamp=timestamp,
            )

        if not output_path.exists():
            raise FrameExtractionError(
                f"Frame extraction failed: {result.stderr.strip()[-500:]}",
                video_url=video_url,
                timestamp=timestamp,
            )

        logger.info(f"Extracted frame to {output_path}")
        return str(output_path)

    def get_video_duration(self, video_url: str) -> Optional[float]:
        """Get the duration of a video in seconds."""
        try:
            result = subprocess.run(
                [
                    "ffprobe", "-v", "error",
                    "-show_entries", "format=duration",
                    "-of", "default=noprint_wrappers=1:nokey=1",
                    video_url,
                ],
                capture_output=True,
                text=True,
                timeout=SUBPROCESS_TIMEOUT,
            )
            return float(result.stdout.strip())
        except (OSError, ValueError, subprocess.TimeoutExpired):
            return None

    async def close(self) -> None:
        """Nothing to release; present for symmetry with the HTTP clients."""
        return None


class FfmpegVideoStitcher:
    """
    Joins clips locally with ffmpeg's concat demuxer.

    Clips are stream-copied, so they must share codec and resolution, which
    holds for clips from the same video generator. Returns the path of the
    written video.
    """

    def __init__(self, output_path: Union[str, Path] = "./output/episodes"):
        """
        Initialize the stitcher.

        Args:
            output_path: Directory for stitched videos
        """
        self.output_path = Path(output_path)
        self.output_path.mkdir(parents=True, exist_ok=True)

    async def stitch(self, clips: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Concatenate clips in ``order`` and return the output path and total duration."""
        if not clips:
            raise StitchingError("No clips to stitch")

        ordered = sorted(clips, key=lambda clip: clip["order"])
        output_path = self.output_path / f"stitched_{uuid.uuid4().hex[:12]}.mp4"
        video_path = await asyncio.to_thread(self._concat, ordered, output_path)

        return {
            "video_url": video_path,
            "duration": sum(float(clip.get("duration") or 0.0) for clip in ordered),
            "task_id": None,
        }

    def _concat(self, clips: List[Dict[str, Any]], output_path: Path) -> str:
        list_path = output_path.with_suffix(".txt")
        with open(list_path, "w") as f:
            for clip in clips:
                source = clip["video_url"]
                if "://" not in source:
                    source = str(Path(source).absolute())
                f.write(f"file '{source}'\n")

        cmd = [
            "ffmpeg", "-y",
            "-f", "concat",
            "-safe", "0",
            "-protocol_whitelist", "file,http,https,tcp,tls,crypto",
            "-i", str(list_path),
            "-c", "copy",
            str(output_path),
        ]

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=CONCAT_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise StitchingError(f"ffmpeg concatenation error: {e}")
        finally:
            list_path.unlink(missing_ok=True)

        if not output_path.exists():
            raise StitchingError(f"Concatenation failed: {result.stderr.strip()[-500:]}")

        logger.info(f"Concatenated {len(clips)} clip(s) to {output_path}")
        return str(output_path)

    async def close(self) -> None:
        return None
