"""
Tests for the command-line interface

Tests for scene_pipeline/cli.py
"""

import pytest

from scene_pipeline.cli import parse_args, show_progress, stitch_episode
from scene_pipeline.scene.models import SceneStatus
from scene_pipeline.workflow.stitcher import EpisodeStitcher

from conftest import FakeSceneStore, FakeVideoStitcher, make_scene


class TestParseArgs:
    def test_defaults(self):
        args = parse_args(["scene-1"])
        assert args.scene_ids == ["scene-1"]
        assert not args.parallel and not args.chain and not args.progress
        assert args.max_concurrent is None

    def test_parallel_batch(self):
        args = parse_args(["s1", "s2", "--parallel", "--max-concurrent", "2"])
        assert args.scene_ids == ["s1", "s2"]
        assert args.parallel
        assert args.max_concurrent == 2

    def test_chain_with_parallel_is_an_error(self):
        with pytest.raises(SystemExit):
            parse_args(["s1", "s2", "--chain", "--parallel"])

    def test_concurrency_must_be_positive(self):
        with pytest.raises(SystemExit):
            parse_args(["s1", "--parallel", "--max-concurrent", "0"])

    def test_scene_id_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_stitch_only(self):
        args = parse_args(["--stitch", "ep-1"])
        assert args.scene_ids == []
        assert args.stitch == "ep-1"

    def test_progress_needs_scene_ids(self):
        with pytest.raises(SystemExit):
            parse_args(["--stitch", "ep-1", "--progress"])


class TestShowProgress:
    @pytest.mark.asyncio
    async def test_prints_each_scene(self, make_generator, capsys):
        store = FakeSceneStore([
            make_scene("s1"),
            make_scene("s2", status=SceneStatus.FAILED, error="boom"),
        ])
        generator, _ = make_generator(scene_store=store)

        exit_code = await show_progress(generator, ["s1", "s2", "missing"])

        out = capsys.readouterr().out
        assert "s1: pending (0%) - Waiting to start" in out
        assert "s2: failed (0%) - Generation failed [error: boom]" in out
        assert "missing:" in out
        assert exit_code == 1


class TestStitchEpisode:
    @pytest.mark.asyncio
    async def test_prints_final_video(self, capsys):
        store = FakeSceneStore([
            make_scene("s1", status=SceneStatus.COMPLETED, video_url="https://video.test/s1.mp4", video_duration=6.0),
            make_scene("s2", scene_number=2, status=SceneStatus.COMPLETED),
        ])

        exit_code = await stitch_episode(EpisodeStitcher(store, FakeVideoStitcher()), "ep-1")

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "Final video: https://video.test/episode-1.mp4 (6.0s, 1 scene(s))" in out
        assert "Skipped (no video): s2" in out

    @pytest.mark.asyncio
    async def test_failure_exit_code(self, capsys):
        stitcher = EpisodeStitcher(FakeSceneStore(), FakeVideoStitcher())

        exit_code = await stitch_episode(stitcher, "ep-1")

        assert exit_code == 1
        assert "Stitching ep-1 failed" in capsys.readouterr().out
