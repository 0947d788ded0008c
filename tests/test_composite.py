"""
Tests for the Composite Engine

Tests for scene_pipeline/workflow/composite.py
"""

import pytest

from scene_pipeline.core.config import CompositeConfig
from scene_pipeline.core.exceptions import CompositeGenerationError
from scene_pipeline.scene.models import StepType
from scene_pipeline.workflow.composite import CompositeEngine, get_composite_stats, INTEGRATION_SUFFIX
from scene_pipeline.workflow.verifier import Verifier

from conftest import (
    FakeReasoner,
    FakeVision,
    FakeImageGenerator,
    PASSING_ANSWER,
    FAILING_ANSWER,
    make_scene,
    make_step,
)


PASS = {"score": 0.9, "issues": []}


def make_engine(image_generator=None, knowledge=None, answers=None, config=None):
    image_generator = image_generator or FakeImageGenerator()
    verifier = Verifier(FakeReasoner(knowledge or [PASS]), FakeVision(answers or [PASSING_ANSWER]))
    return CompositeEngine(image_generator, verifier, config), image_generator


def three_steps():
    return [
        make_step(1, StepType.LOCATION),
        make_step(2, StepType.CHARACTER),
        make_step(3, StepType.PROP),
    ]


class TestBuild:
    """Tests for CompositeEngine.build."""

    @pytest.mark.asyncio
    async def test_all_steps_pass_first_time(self):
        engine, images = make_engine()

        result = await engine.build(make_scene(), three_steps())

        assert [it.iteration for it in result.iterations] == [1, 2, 3]
        assert result.final_image_url == "https://img.test/3.png"

    @pytest.mark.asyncio
    async def test_each_step_edits_running_composite(self):
        engine, images = make_engine()

        await engine.build(make_scene(), three_steps())

        assert [c["edit_base_url"] for c in images.calls] == [
            None,
            "https://img.test/1.png",
            "https://img.test/2.png",
        ]
        assert images.calls[0]["prompt"] == "Prompt for step 1"
        assert images.calls[1]["prompt"] == "Prompt for step 2" + INTEGRATION_SUFFIX

    @pytest.mark.asyncio
    async def test_seed_image_is_first_edit_base(self):
        engine, images = make_engine()

        await engine.build(make_scene(), [make_step()], seed_image_url="https://frames.test/prev.jpg")

        assert images.calls[0]["edit_base_url"] == "https://frames.test/prev.jpg"

    @pytest.mark.asyncio
    async def test_failed_candidate_feeds_retry(self):
        """A rejected candidate is the edit base of the next attempt."""
        engine, images = make_engine(answers=[FAILING_ANSWER, PASSING_ANSWER])

        result = await engine.build(make_scene(), [make_step(1, StepType.CHARACTER)])

        assert len(result.iterations) == 2
        assert not result.iterations[0].verification.overall_pass
        assert images.calls[1]["edit_base_url"] == "https://img.test/1.png"
        assert result.iterations[1].input_image_url == "https://img.test/1.png"
        assert result.final_image_url == "https://img.test/2.png"

    @pytest.mark.asyncio
    async def test_vision_failure_forces_retry(self):
        """Knowledge 0.9 alone does not accept a step."""
        engine, images = make_engine(answers=["No, the location is missing.", PASSING_ANSWER])

        result = await engine.build(make_scene(), [make_step()])

        first = result.iterations[0].verification
        assert first.knowledge.passed and not first.vision.passed
        assert first.combined_score == pytest.approx(0.6)
        assert len(result.iterations) == 2


class TestLimits:
    @pytest.mark.asyncio
    async def test_step_retries_exhausted(self):
        """Five rejections of the first step raise with five history entries."""
        engine, images = make_engine(answers=[FAILING_ANSWER])
        step = make_step(1, StepType.CHARACTER)

        with pytest.raises(CompositeGenerationError) as exc_info:
            await engine.build(make_scene(), [step])

        error = exc_info.value
        assert error.step == step
        assert error.iteration == 5
        assert len(error.iterations) == 5
        assert all(it.step == step for it in error.iterations)
        assert error.verification is not None
        assert error.phase == "compositing"

    @pytest.mark.asyncio
    async def test_retries_after_prior_steps_count_globally(self):
        answers = [PASSING_ANSWER] + [FAILING_ANSWER] * 5
        engine, _ = make_engine(answers=answers)
        steps = [make_step(1, StepType.LOCATION), make_step(2, StepType.CHARACTER)]

        with pytest.raises(CompositeGenerationError) as exc_info:
            await engine.build(make_scene(), steps)

        error = exc_info.value
        assert error.step == steps[1]
        assert error.iteration == 6
        assert len([it for it in error.iterations if it.step == steps[1]]) == 5

    @pytest.mark.asyncio
    async def test_global_iteration_cap(self):
        """The circuit breaker trips before a 21st generation."""
        # Each step needs 4 attempts: 5 steps would need 20, the 6th trips the cap
        answers = ([FAILING_ANSWER] * 3 + [PASSING_ANSWER]) * 6
        engine, images = make_engine(answers=answers)
        steps = [make_step(i, StepType.CHARACTER) for i in range(1, 7)]

        with pytest.raises(CompositeGenerationError) as exc_info:
            await engine.build(make_scene(), steps)

        assert len(images.calls) == 20
        assert len(exc_info.value.iterations) == 20
        assert exc_info.value.iteration == 20
        assert exc_info.value.step == steps[5]

    @pytest.mark.asyncio
    async def test_limits_come_from_config(self):
        config = CompositeConfig(max_step_retries=2)
        engine, images = make_engine(answers=[FAILING_ANSWER], config=config)

        with pytest.raises(CompositeGenerationError):
            await engine.build(make_scene(), [make_step()])

        assert len(images.calls) == 2

    @pytest.mark.asyncio
    async def test_generator_failure_is_wrapped(self, provider_error):
        engine, _ = make_engine(answers=[PASSING_ANSWER] * 2)
        engine.image_generator = FakeImageGenerator(error=provider_error)

        with pytest.raises(CompositeGenerationError) as exc_info:
            await engine.build(make_scene(), [make_step()])

        assert exc_info.value.__cause__ is provider_error
        assert exc_info.value.iterations == []

    @pytest.mark.asyncio
    async def test_references_capped_when_sent(self):
        engine, images = make_engine()

        await engine.build(make_scene(), [make_step(references=5)])

        assert len(images.calls[0]["reference_images"]) == 3


class TestCompositeStats:
    @pytest.mark.asyncio
    async def test_stats(self):
        engine, _ = make_engine(answers=[FAILING_ANSWER, PASSING_ANSWER, PASSING_ANSWER])

        result = await engine.build(
            make_scene(), [make_step(1, StepType.CHARACTER), make_step(2, StepType.PROP)]
        )
        stats = get_composite_stats(result.iterations)

        assert stats["total_iterations"] == 3
        assert stats["steps"] == 2
        assert stats["total_retries"] == 1
        assert 0 < stats["average_score"] <= 1

    def test_empty_history(self):
        assert get_composite_stats([]) == {
            "total_iterations": 0,
            "steps": 0,
            "average_score": 0.0,
            "total_retries": 0,
        }
