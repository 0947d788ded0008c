"""
Tests for Video Synthesis

Tests for scene_pipeline/workflow/video.py
"""

import pytest

from scene_pipeline.core.exceptions import VideoGenerationError, FrameExtractionError
from scene_pipeline.scene.models import Pacing, Resolution, VideoResult
from scene_pipeline.workflow.video import VideoSynthesizer

from conftest import FakeVideoGenerator, FakeFrameExtractor


class TestSynthesize:
    """Tests for VideoSynthesizer.synthesize."""

    @pytest.mark.asyncio
    async def test_request_parameters(self):
        videos = FakeVideoGenerator()
        synthesizer = VideoSynthesizer(videos, FakeFrameExtractor())

        result = await synthesizer.synthesize(
            "https://img.test/final.png",
            Pacing(duration=6, motion_strength=0.8, transition_type="fast_cut"),
            "A rooftop chase",
        )

        call = videos.calls[0]
        assert call["image_url"] == "https://img.test/final.png"
        assert call["prompt"] == "Cinematic scene: A rooftop chase"
        assert call["duration"] == 6
        assert call["fps"] == 24
        assert call["resolution"] == Resolution(1024, 576)
        assert call["motion_strength"] == 0.8
        assert result.video_url == "https://video.test/1.mp4"
        assert result.duration == 6.0

    @pytest.mark.parametrize("requested,sent", [(2, 5), (5, 5), (7, 7), (12, 7)])
    @pytest.mark.asyncio
    async def test_duration_is_clamped(self, requested, sent):
        videos = FakeVideoGenerator()
        synthesizer = VideoSynthesizer(videos, FakeFrameExtractor())

        await synthesizer.synthesize("https://img.test/1.png", Pacing(duration=requested), "x")

        assert videos.calls[0]["duration"] == sent

    @pytest.mark.asyncio
    async def test_missing_video_url(self):
        synthesizer = VideoSynthesizer(FakeVideoGenerator(response={"status": "done"}), FakeFrameExtractor())

        with pytest.raises(VideoGenerationError) as exc_info:
            await synthesizer.synthesize("https://img.test/1.png", Pacing(), "x")

        assert exc_info.value.phase == "generating_video"

    @pytest.mark.asyncio
    async def test_service_failure_is_wrapped(self, provider_error):
        synthesizer = VideoSynthesizer(FakeVideoGenerator(error=provider_error), FakeFrameExtractor())

        with pytest.raises(VideoGenerationError) as exc_info:
            await synthesizer.synthesize("https://img.test/1.png", Pacing(), "x")

        assert exc_info.value.__cause__ is provider_error
        assert exc_info.value.details["image_url"] == "https://img.test/1.png"

    @pytest.mark.asyncio
    async def test_unparseable_duration_falls_back(self):
        videos = FakeVideoGenerator(response={"video_url": "https://video.test/v.mp4", "duration": "n/a"})
        synthesizer = VideoSynthesizer(videos, FakeFrameExtractor())

        result = await synthesizer.synthesize("https://img.test/1.png", Pacing(duration=6), "x")

        assert result.duration == 6.0

    @pytest.mark.parametrize("reported", [
        Resolution(1280, 720),
        {"width": 1280, "height": 720},
        "1280x720",
    ])
    @pytest.mark.asyncio
    async def test_reported_resolution_is_used(self, reported):
        videos = FakeVideoGenerator(response={"video_url": "https://video.test/v.mp4", "resolution": reported})
        synthesizer = VideoSynthesizer(videos, FakeFrameExtractor())

        result = await synthesizer.synthesize("https://img.test/1.png", Pacing(duration=6), "x")

        assert result.resolution == Resolution(1280, 720)

    @pytest.mark.parametrize("reported", [None, "hd", {"width": 1280}])
    @pytest.mark.asyncio
    async def test_resolution_falls_back_to_config(self, reported):
        videos = FakeVideoGenerator(response={"video_url": "https://video.test/v.mp4", "resolution": reported})
        synthesizer = VideoSynthesizer(videos, FakeFrameExtractor())

        result = await synthesizer.synthesize("https://img.test/1.png", Pacing(duration=6), "x")

        assert result.resolution == Resolution(1024, 576)


class TestContinuityFrame:
    @pytest.mark.asyncio
    async def test_frame_taken_just_before_end(self):
        frames = FakeFrameExtractor()
        synthesizer = VideoSynthesizer(FakeVideoGenerator(), frames)

        frame = await synthesizer.extract_continuity_frame(VideoResult("https://video.test/v.mp4", 6.0))

        assert frames.calls[0]["timestamp"] == pytest.approx(5.9)
        assert frame.frame_url == "https://frames.test/1.jpg"

    @pytest.mark.asyncio
    async def test_timestamp_never_negative(self):
        frames = FakeFrameExtractor()
        synthesizer = VideoSynthesizer(FakeVideoGenerator(), frames)

        frame = await synthesizer.extract_continuity_frame(VideoResult("https://video.test/v.mp4", 0.05))

        assert frame.timestamp == 0.0

    @pytest.mark.asyncio
    async def test_extractor_failure_is_wrapped(self):
        synthesizer = VideoSynthesizer(
            FakeVideoGenerator(), FakeFrameExtractor(error=ConnectionError("ffmpeg crashed"))
        )

        with pytest.raises(FrameExtractionError) as exc_info:
            await synthesizer.extract_continuity_frame(VideoResult("https://video.test/v.mp4", 6.0))

        assert exc_info.value.phase == "extracting_frame"
        assert "ffmpeg crashed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_extraction_errors_pass_through(self):
        original = FrameExtractionError("service refused")
        synthesizer = VideoSynthesizer(FakeVideoGenerator(), FakeFrameExtractor(error=original))

        with pytest.raises(FrameExtractionError) as exc_info:
            await synthesizer.extract_continuity_frame(VideoResult("https://video.test/v.mp4", 6.0))

        assert exc_info.value is original

    @pytest.mark.asyncio
    async def test_empty_frame_url(self):
        class EmptyExtractor:
            async def extract_frame(self, video_url, timestamp):
                return ""

        synthesizer = VideoSynthesizer(FakeVideoGenerator(), EmptyExtractor())

        with pytest.raises(FrameExtractionError):
            await synthesizer.extract_continuity_frame(VideoResult("https://video.test/v.mp4", 6.0))


class TestContinuationPrompt:
    def test_default_suffix(self):
        prompt = VideoSynthesizer.continuation_prompt("Aiko opens the door.")
        assert prompt == (
            "Seamless continuation from previous shot. Maintaining visual continuity. "
            "continuing from previous scene. Aiko opens the door."
        )

    def test_empty_suffix_is_dropped(self):
        prompt = VideoSynthesizer.continuation_prompt("Aiko opens the door.", prompt_suffix="")
        assert prompt == (
            "Seamless continuation from previous shot. Maintaining visual continuity. "
            "Aiko opens the door."
        )
