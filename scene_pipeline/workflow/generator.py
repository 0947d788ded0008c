"""
Scene Generator
===============

Main orchestration class: drives one scene (or a batch of scenes) through
shot planning, composite building, video synthesis and continuity frame
extraction, persisting status between phases.
"""

import asyncio
import dataclasses
import logging
from typing import Optional, List, Dict, Any, Tuple

from ..api.base import SceneStore
from ..core.config import Config, BatchConfig, get_config
from ..core.exceptions import (
    PipelineError,
    CompositeGenerationError,
    FrameExtractionError,
    SceneGenerationError,
)
from ..scene.models import (
    Scene,
    SceneStatus,
    SceneProgress,
    BatchFailure,
    BatchResult,
)
from .composite import CompositeEngine
from .shot_planner import ShotPlanner
from .verifier import Verifier
from .video import VideoSynthesizer

logger = logging.getLogger(__name__)


# Status -> (percent complete, description)
PROGRESS = {
    SceneStatus.PENDING: (0, "Waiting to start"),
    SceneStatus.ANALYZING: (20, "Analyzing shot requirements"),
    SceneStatus.COMPOSITING: (40, "Building composite image"),
    SceneStatus.GENERATING_VIDEO: (80, "Generating video from composite"),
    SceneStatus.EXTRACTING_FRAME: (90, "Extracting last frame"),
    SceneStatus.COMPLETED: (100, "Generation complete"),
    SceneStatus.FAILED: (0, "Generation failed"),
}


class SceneGenerator:
    """
    Scene generation orchestrator.

    Handles:
    - The per-scene state machine and its persistence
    - Failure classification by pipeline phase
    - Sequential, chained and bounded-parallel batches
    """

    def __init__(
        self,
        scene_store: SceneStore,
        shot_planner: ShotPlanner,
        composite_engine: CompositeEngine,
        video_synthesizer: VideoSynthesizer,
        batch_config: Optional[BatchConfig] = None,
    ):
        """
        Initialize the scene generator.

        Args:
            scene_store: Scene persistence
            shot_planner: Builds the composite plan
            composite_engine: Builds and verifies the composite
            video_synthesizer: Animates the composite and extracts frames
            batch_config: Default batch concurrency
        """
        self.scene_store = scene_store
        self.shot_planner = shot_planner
        self.composite_engine = composite_engine
        self.video_synthesizer = video_synthesizer
        self.batch_config = batch_config or BatchConfig()

    @classmethod
    def from_clients(cls, clients: Any, config: Optional[Config] = None) -> "SceneGenerator":
        """
        Assemble a generator from a ServiceClients bundle.

        Args:
            clients: Collaborators (see api.factory.create_clients)
            config: Configuration (defaults to the global config)
        """
        config = config or get_config()

        verifier = Verifier(clients.reasoner, clients.vision, config.verification)
        return cls(
            scene_store=clients.scene_store,
            shot_planner=ShotPlanner(clients.knowledge_graph, config.composite, config.video),
            composite_engine=CompositeEngine(clients.image_generator, verifier, config.composite),
            video_synthesizer=VideoSynthesizer(
                clients.video_generator, clients.frame_extractor, config.video
            ),
            batch_config=config.batch,
        )

    # -------------------------------------------------------------------------
    # Single Scene
    # -------------------------------------------------------------------------

    async def generate_scene(
        self,
        scene_id: str,
        continuity_frame_url: Optional[str] = None,
    ) -> Scene:
        """
        Generate a scene end to end.

        Args:
            scene_id: Scene to generate
            continuity_frame_url: Previous scene's last frame, used as the
                edit base for the first composite step

        Returns:
            The completed scene

        Raises:
            SceneGenerationError: On any failure, tagged with the phase
        """
        try:
            scene = await self.scene_store.fetch(scene_id)
        except Exception as e:
            logger.error(f"Could not load scene {scene_id}: {e}")
            raise SceneGenerationError(
                f"Scene {scene_id} could not be loaded: {e}",
                scene_id=scene_id,
                phase=SceneStatus.FAILED.value,
                cause=e,
            ) from e

        if scene.status != SceneStatus.PENDING:
            logger.info(f"Restarting scene {scene_id} from {scene.status.value}")
        scene.status = SceneStatus.PENDING
        scene.error = None
        await self._persist(scene.scene_id, {"status": SceneStatus.PENDING, "error": None})

        try:
            return await self._run(scene, continuity_frame_url)
        except Exception as e:
            raise await self._fail(scene, e) from e

    async def _run(self, scene: Scene, continuity_frame_url: Optional[str]) -> Scene:
        logger.info(f"Generating scene {scene.scene_id}")

        # Shot planning
        await self._transition(scene, SceneStatus.ANALYZING)
        decision = await self.shot_planner.analyze(scene)

        steps = list(decision.composite_steps)
        if continuity_frame_url:
            steps[0] = dataclasses.replace(
                steps[0],
                prompt=self.video_synthesizer.continuation_prompt(steps[0].prompt),
            )

        # Composite
        await self._transition(scene, SceneStatus.COMPOSITING)
        composite = await self.composite_engine.build(
            scene, steps, seed_image_url=continuity_frame_url
        )
        scene.composite_iterations = composite.iterations
        scene.final_composite_url = composite.final_image_url

        # Video
        await self._transition(
            scene,
            SceneStatus.GENERATING_VIDEO,
            composite_iterations=scene.composite_iterations,
            final_composite_url=scene.final_composite_url,
        )
        video = await self.video_synthesizer.synthesize(
            composite.final_image_url, decision.pacing, scene.description
        )
        scene.video_url = video.video_url
        scene.video_duration = video.duration

        # Continuity frame
        await self._transition(
            scene,
            SceneStatus.EXTRACTING_FRAME,
            video_url=scene.video_url,
            video_duration=scene.video_duration,
        )
        try:
            frame = await self.video_synthesizer.extract_continuity_frame(video)
            scene.last_frame_url = frame.frame_url
        except FrameExtractionError as e:
            # The clip is still usable without a continuity frame
            logger.warning(f"Frame extraction failed for scene {scene.scene_id}: {e}")
            scene.last_frame_url = None

        await self._transition(scene, SceneStatus.COMPLETED, last_frame_url=scene.last_frame_url)
        logger.info(f"Scene {scene.scene_id} completed: {scene.video_url}")
        return scene

    async def _transition(self, scene: Scene, target: SceneStatus, **fields: Any) -> None:
        """Move the scene to ``target`` and persist the status with any phase output."""
        if not scene.status.can_transition_to(target):
            raise PipelineError(
                f"Invalid status transition {scene.status.value} -> {target.value}",
                phase=scene.status.value,
            )

        scene.status = target
        if fields:
            await self._persist(scene.scene_id, {"status": target, **fields})
        else:
            await self._persist_status(scene.scene_id, target)

    async def _fail(self, scene: Scene, error: Exception) -> SceneGenerationError:
        """Record a failure and build the error to raise."""
        phase = getattr(error, "phase", None) or scene.status.value
        if phase == SceneStatus.PENDING.value:
            phase = SceneStatus.FAILED.value

        logger.error(f"Scene {scene.scene_id} failed during {phase}: {error}")

        fields: Dict[str, Any] = {"status": SceneStatus.FAILED, "error": str(error)}
        if isinstance(error, CompositeGenerationError):
            scene.composite_iterations = error.iterations
            fields["composite_iterations"] = error.iterations

        scene.status = SceneStatus.FAILED
        scene.error = str(error)
        await self._persist(scene.scene_id, fields)

        return SceneGenerationError(
            f"Scene {scene.scene_id} failed during {phase}: {error}",
            scene_id=scene.scene_id,
            phase=phase,
            cause=error,
        )

    async def _persist_status(self, scene_id: str, status: SceneStatus) -> None:
        try:
            await self.scene_store.update_status(scene_id, status)
        except Exception as e:
            logger.warning(f"Failed to persist status {status.value} for scene {scene_id}: {e}")

    async def _persist(self, scene_id: str, fields: Dict[str, Any]) -> None:
        try:
            await self.scene_store.update_fields(scene_id, fields)
        except Exception as e:
            logger.warning(f"Failed to persist {', '.join(fields)} for scene {scene_id}: {e}")

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    async def generate_batch(
        self,
        scene_ids: List[str],
        parallel: bool = False,
        max_concurrent: Optional[int] = None,
        chain: bool = False,
    ) -> BatchResult:
        """
        Generate several scenes, collecting each outcome independently.

        Args:
            scene_ids: Scenes to generate; results keep this order
            parallel: Run scenes concurrently
            max_concurrent: Concurrency limit (defaults to batch config)
            chain: Seed each scene with the previous successful scene's
                last frame (sequential only)

        Returns:
            BatchResult with successes and failures
        """
        if chain and parallel:
            raise ValueError("Chained batches must run sequentially")

        limit = max_concurrent if max_concurrent is not None else self.batch_config.max_concurrent
        if limit < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {limit}")

        logger.info(
            f"Generating batch of {len(scene_ids)} scene(s) "
            f"({'parallel, max ' + str(limit) if parallel else 'sequential'}"
            f"{', chained' if chain else ''})"
        )

        if parallel:
            outcomes = await self._run_parallel(scene_ids, limit)
        else:
            outcomes = await self._run_sequential(scene_ids, chain)

        result = BatchResult()
        for scene_id, scene, error in outcomes:
            if scene is not None:
                result.success.append(scene)
            else:
                result.failed.append(BatchFailure(scene_id=scene_id, error=error))

        logger.info(
            f"Batch finished: {len(result.success)} succeeded, {len(result.failed)} failed"
        )
        return result

    async def _run_sequential(
        self,
        scene_ids: List[str],
        chain: bool,
    ) -> List[Tuple[str, Optional[Scene], Optional[str]]]:
        outcomes = []
        previous_frame: Optional[str] = None

        for i, scene_id in enumerate(scene_ids):
            logger.info(f"Generating scene {i + 1}/{len(scene_ids)}: {scene_id}")
            try:
                scene = await self.generate_scene(
                    scene_id,
                    continuity_frame_url=previous_frame if chain else None,
                )
            except SceneGenerationError as e:
                outcomes.append((scene_id, None, str(e)))
                continue

            outcomes.append((scene_id, scene, None))
            previous_frame = scene.last_frame_url

        return outcomes

    async def _run_parallel(
        self,
        scene_ids: List[str],
        limit: int,
    ) -> List[Tuple[str, Optional[Scene], Optional[str]]]:
        semaphore = asyncio.Semaphore(limit)

        async def run_one(scene_id: str) -> Tuple[str, Optional[Scene], Optional[str]]:
            async with semaphore:
                try:
                    return scene_id, await self.generate_scene(scene_id), None
                except SceneGenerationError as e:
                    return scene_id, None, str(e)

        return list(await asyncio.gather(*(run_one(scene_id) for scene_id in scene_ids)))

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    async def get_progress(self, scene_id: str) -> SceneProgress:
        """Report a scene's progress from its persisted status."""
        scene = await self.scene_store.fetch(scene_id)
        percent, description = PROGRESS[scene.status]
        return SceneProgress(
            scene_id=scene.scene_id,
            status=scene.status,
            progress=percent,
            current_step=description,
            error=scene.error,
        )
