"""
Composite Verifier
==================

Dual verification of composite candidates:
- knowledge check: structured requirements query to the reasoning service
- vision check: yes/no question to a vision-language model

Both checks run concurrently and always run to completion. A candidate
passes only when both checks pass.
"""

import asyncio
import logging
import re
from typing import Optional, Dict, Any, Tuple, Callable, Awaitable

from ..api.base import Reasoner, VisionModel
from ..core.config import VerificationConfig
from ..core.exceptions import VerificationError
from ..scene.models import CompositeStep, CheckResult, VerificationResult

logger = logging.getLogger(__name__)


POSITIVE_INDICATORS = ("yes", "present", "contains", "correct", "properly")
NEGATIVE_INDICATORS = ("no", "not", "missing", "absent", "incorrect")

_SCORE_PATTERN = re.compile(r"score[:\s]+([0-9.]+)", re.IGNORECASE)


def _has_word(text: str, words) -> bool:
    return any(re.search(rf"\b{re.escape(word)}\b", text) for word in words)


class Verifier:
    """
    Verifies composite images against their step requirements.

    Collaborator failures degrade the affected check to a failing result
    with score 0. In strict mode a degraded check raises VerificationError
    once both checks have finished.
    """

    def __init__(
        self,
        reasoner: Reasoner,
        vision: VisionModel,
        config: Optional[VerificationConfig] = None,
    ):
        """
        Initialize the verifier.

        Args:
            reasoner: Multimodal reasoning service for the knowledge check
            vision: Vision-language model for the vision check
            config: Score thresholds and strict mode
        """
        self.reasoner = reasoner
        self.vision = vision
        self.config = config or VerificationConfig()

    async def verify(
        self,
        image_url: str,
        step: CompositeStep,
        scene_description: str,
    ) -> VerificationResult:
        """
        Run both checks on a candidate image.

        Raises:
            VerificationError: In strict mode, if either check faulted
        """
        (knowledge, knowledge_error), (vision, vision_error) = await asyncio.gather(
            self._run_check("knowledge", self._knowledge_check, image_url, step, scene_description),
            self._run_check("vision", self._vision_check, image_url, step, scene_description),
        )

        result = VerificationResult(knowledge=knowledge, vision=vision)

        logger.info(
            f"Step {step.step} verification: {'PASS' if result.overall_pass else 'FAIL'} "
            f"(knowledge {knowledge.score:.2f}, vision {vision.score:.2f})"
        )

        if self.config.strict and (knowledge_error or vision_error):
            failed = [name for name, err in (("knowledge", knowledge_error), ("vision", vision_error)) if err]
            raise VerificationError(
                f"Verification check(s) faulted for step {step.step}: {', '.join(failed)}",
                verification=result,
            )

        return result

    async def _run_check(
        self,
        name: str,
        check: Callable[[str, CompositeStep, str], Awaitable[CheckResult]],
        image_url: str,
        step: CompositeStep,
        scene_description: str,
    ) -> Tuple[CheckResult, Optional[Exception]]:
        try:
            return await check(image_url, step, scene_description), None
        except Exception as e:
            logger.warning(f"{name} check failed for step {step.step}: {e}")
            degraded = CheckResult(
                name=name,
                passed=False,
                score=0.0,
                feedback=f"{name.capitalize()} verification unavailable: {e}",
                issues=[f"{name} check error: {type(e).__name__}"],
            )
            return degraded, e

    # -------------------------------------------------------------------------
    # Knowledge Check
    # -------------------------------------------------------------------------

    async def _knowledge_check(
        self,
        image_url: str,
        step: CompositeStep,
        scene_description: str,
    ) -> CheckResult:
        query = self.build_knowledge_query(step, scene_description)
        response = await self.reasoner.analyze(image_url, query) or {}

        score = self.extract_score(response, default=self.config.default_score)
        issues = [str(issue) for issue in response.get("issues") or []]
        feedback = response.get("feedback") or response.get("description") or ""

        return CheckResult(
            name="knowledge",
            passed=score >= self.config.knowledge_pass_score and not issues,
            score=score,
            feedback=feedback,
            issues=issues,
        )

    @staticmethod
    def build_knowledge_query(step: CompositeStep, scene_description: str) -> str:
        expected = ", ".join(ref.type for ref in step.references) or step.type.value
        requirements = [
            f"Step {step.step}: {step.description}",
            f"Scene context: {scene_description}",
            f"Expected elements: {expected}",
        ]
        return (
            "Analyze this image and verify it meets these requirements:\n"
            + "\n".join(requirements)
            + "\n\nRate the image on a scale of 0-1 based on:\n"
            f"1. Presence of required elements ({step.type.value})\n"
            "2. Visual quality and consistency\n"
            "3. Alignment with scene description\n"
            "4. Reference matching\n\n"
            "Provide score and list any issues found."
        )

    @staticmethod
    def extract_score(response: Dict[str, Any], default: float = 0.5) -> float:
        """
        Pull a 0-1 score out of a reasoning response.

        Tries ``score``, ``rating`` and ``confidence`` fields, then a
        "score: N" phrase in the feedback or description text.
        """
        score = None
        for key in ("score", "rating", "confidence"):
            value = response.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                score = float(value)
                break

        if score is None:
            text = response.get("feedback") or response.get("description") or ""
            match = _SCORE_PATTERN.search(str(text))
            if match:
                try:
                    score = float(match.group(1))
                except ValueError:
                    score = None

        if score is None:
            score = default

        return min(max(score, 0.0), 1.0)

    # -------------------------------------------------------------------------
    # Vision Check
    # -------------------------------------------------------------------------

    async def _vision_check(
        self,
        image_url: str,
        step: CompositeStep,
        scene_description: str,
    ) -> CheckResult:
        question = self.build_vision_question(step, scene_description)
        answer = await self.vision.ask(image_url, question) or ""

        passed = self.classify_answer(answer, step)
        return CheckResult(
            name="vision",
            passed=passed,
            score=self.config.vision_pass_score if passed else self.config.vision_fail_score,
            feedback=answer,
            issues=[] if passed else [f"Vision model did not confirm {step.type.value}: {answer[:200]}"],
        )

    @staticmethod
    def build_vision_question(step: CompositeStep, scene_description: str) -> str:
        return (
            f'Does this image contain {step.type.value} as described: "{step.description}"?\n'
            f"Scene context: {scene_description}.\n"
            "Answer YES if all elements are present and properly rendered, "
            "or NO with explanation if anything is missing or incorrect."
        )

    @staticmethod
    def classify_answer(answer: str, step: CompositeStep) -> bool:
        """
        Classify a free-text answer.

        Passes when a positive indicator is present, no negative indicator
        is present, and the step type is mentioned. Indicators match whole
        words; the step type also matches its plural.
        """
        text = answer.lower()
        mentions_type = re.search(rf"\b{re.escape(step.type.value)}", text) is not None
        return (
            _has_word(text, POSITIVE_INDICATORS)
            and not _has_word(text, NEGATIVE_INDICATORS)
            and mentions_type
        )


def format_report(result: VerificationResult) -> str:
    """Render a verification result for logs and CLI output."""
    lines = [
        f"Verification Result: {'PASS' if result.overall_pass else 'FAIL'}",
        f"Combined Score: {result.combined_score:.2f}",
    ]

    for label, check in (("Knowledge", result.knowledge), ("Vision", result.vision)):
        lines += [
            "",
            f"{label} Verification:",
            f"  - Status: {'PASS' if check.passed else 'FAIL'}",
            f"  - Score: {check.score:.2f}",
            f"  - Feedback: {check.feedback}",
        ]
        if check.issues:
            lines.append(f"  - Issues: {', '.join(check.issues)}")

    return "\n".join(lines)
