"""
Composite Engine
================

Builds a scene's composite image one step at a time. Each candidate is
verified before it becomes the running composite; rejected candidates are
edited again rather than regenerated from scratch.

Limits:
- per-step retries (default 5)
- global iterations across all steps (default 20)
"""

import logging
from typing import Optional, List, Dict, Any

from ..api.base import ImageGenerator
from ..core.config import CompositeConfig
from ..core.exceptions import CompositeGenerationError
from ..scene.models import (
    Scene,
    CompositeStep,
    CompositeIteration,
    CompositeResult,
    VerificationResult,
)
from .verifier import Verifier

logger = logging.getLogger(__name__)


INTEGRATION_SUFFIX = (
    " Seamlessly integrate with existing scene elements, "
    "maintaining consistency and cohesion."
)


class CompositeEngine:
    """
    Iterative composite generation with verification.

    Every attempt, accepted or not, is appended to the iteration history.
    Errors raised from build() carry the history accumulated so far.
    """

    def __init__(
        self,
        image_generator: ImageGenerator,
        verifier: Verifier,
        config: Optional[CompositeConfig] = None,
    ):
        """
        Initialize the engine.

        Args:
            image_generator: Image generation service with edit support
            verifier: Dual verifier for candidates
            config: Iteration, retry and acceptance limits
        """
        self.image_generator = image_generator
        self.verifier = verifier
        self.config = config or CompositeConfig()

    async def build(
        self,
        scene: Scene,
        steps: List[CompositeStep],
        seed_image_url: Optional[str] = None,
    ) -> CompositeResult:
        """
        Build the composite for a scene.

        Args:
            scene: Scene being composited
            steps: Planned steps, in order
            seed_image_url: Image to edit for the first step (e.g. the
                previous scene's continuity frame)

        Returns:
            CompositeResult with the final image and full history

        Raises:
            CompositeGenerationError: On retry or iteration exhaustion, or
                when a collaborator fails
        """
        if not steps:
            raise CompositeGenerationError(
                f"No composite steps for scene {scene.scene_id}",
                scene_id=scene.scene_id,
            )

        iterations: List[CompositeIteration] = []
        running_image = seed_image_url
        iteration = 0

        for step in steps:
            retries = 0
            edit_base = running_image
            last_verification: Optional[VerificationResult] = None

            while True:
                if iteration >= self.config.max_iterations:
                    raise CompositeGenerationError(
                        f"Scene {scene.scene_id} exceeded {self.config.max_iterations} "
                        f"composite iterations at step {step.step}",
                        scene_id=scene.scene_id,
                        step=step,
                        iteration=iteration,
                        verification=last_verification,
                        iterations=iterations,
                    )
                iteration += 1

                logger.info(
                    f"Scene {scene.scene_id} step {step.step}/{len(steps)} ({step.type.value}), "
                    f"attempt {retries + 1}, iteration {iteration}"
                )

                candidate = await self._generate(scene, step, edit_base, iteration, iterations)
                verification = await self._verify(scene, step, candidate, iteration, iterations)
                last_verification = verification

                iterations.append(CompositeIteration(
                    iteration=iteration,
                    step=step,
                    input_image_url=edit_base,
                    output_image_url=candidate,
                    verification=verification,
                ))

                if self.is_accepted(verification):
                    running_image = candidate
                    break

                retries += 1
                logger.warning(
                    f"Step {step.step} rejected (score {verification.combined_score:.2f}), "
                    f"retry {retries}/{self.config.max_step_retries}"
                )
                if retries >= self.config.max_step_retries:
                    raise CompositeGenerationError(
                        f"Step {step.step} ({step.type.value}) failed verification after "
                        f"{retries} attempts",
                        scene_id=scene.scene_id,
                        step=step,
                        iteration=iteration,
                        verification=verification,
                        iterations=iterations,
                    )

                # Edit the rejected candidate instead of starting over
                edit_base = candidate

        logger.info(
            f"Composite for scene {scene.scene_id} finished after {iteration} iteration(s)"
        )
        return CompositeResult(final_image_url=running_image, iterations=iterations)

    def is_accepted(self, verification: VerificationResult) -> bool:
        return verification.overall_pass and verification.combined_score >= self.config.pass_threshold

    async def _generate(
        self,
        scene: Scene,
        step: CompositeStep,
        edit_base: Optional[str],
        iteration: int,
        iterations: List[CompositeIteration],
    ) -> str:
        prompt = step.prompt + INTEGRATION_SUFFIX if edit_base else step.prompt
        references = list(step.references[: self.config.max_references])

        try:
            image_url = await self.image_generator.generate(prompt, references, edit_base)
        except Exception as e:
            raise CompositeGenerationError(
                f"Image generation failed at step {step.step}: {e}",
                scene_id=scene.scene_id,
                step=step,
                iteration=iteration,
                iterations=iterations,
            ) from e

        if not image_url:
            raise CompositeGenerationError(
                f"Image generation returned no image at step {step.step}",
                scene_id=scene.scene_id,
                step=step,
                iteration=iteration,
                iterations=iterations,
            )
        return image_url

    async def _verify(
        self,
        scene: Scene,
        step: CompositeStep,
        candidate: str,
        iteration: int,
        iterations: List[CompositeIteration],
    ) -> VerificationResult:
        try:
            return await self.verifier.verify(candidate, step, scene.description)
        except Exception as e:
            raise CompositeGenerationError(
                f"Verification failed at step {step.step}: {e}",
                scene_id=scene.scene_id,
                step=step,
                iteration=iteration,
                verification=getattr(e, "verification", None),
                iterations=iterations,
            ) from e


def get_composite_stats(iterations: List[CompositeIteration]) -> Dict[str, Any]:
    """Summarize a composite history."""
    total = len(iterations)
    steps = len({it.step.step for it in iterations})
    average = sum(it.verification.combined_score for it in iterations) / total if total else 0.0

    return {
        "total_iterations": total,
        "steps": steps,
        "average_score": average,
        "total_retries": total - steps,
    }
