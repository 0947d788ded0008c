"""
Shot Planner
============

Turns a scene into an ordered composite plan: which elements to add, which
reference images to show the image model, which angle each character is
seen from, and how the clip should be paced.
"""

import logging
import re
from typing import Optional, List, Dict, Any, Iterable

from ..api.base import KnowledgeGraph
from ..core.config import CompositeConfig, VideoConfig
from ..core.exceptions import PlanningError
from ..scene.models import (
    Scene,
    CameraAngle,
    StepType,
    STEP_TYPE_ORDER,
    KnowledgeNode,
    ReferenceImage,
    CompositeStep,
    Pacing,
    ShotDecision,
)

logger = logging.getLogger(__name__)


# Camera angle -> angle of the character's 360 profile to reference
CAMERA_TO_CHARACTER_ANGLE = {
    CameraAngle.FRONT: CameraAngle.FRONT,
    CameraAngle.SIDE: CameraAngle.SIDE,
    CameraAngle.BACK: CameraAngle.BACK,
    CameraAngle.THREE_QUARTER: CameraAngle.THREE_QUARTER,
    CameraAngle.TOP: CameraAngle.TOP,
    CameraAngle.BOTTOM: CameraAngle.BOTTOM,
    CameraAngle.DUTCH: CameraAngle.THREE_QUARTER,
}

# Word prefixes that mark a high-action scene
ACTION_KEYWORDS = ("fight", "run", "chase", "battle", "explod", "crash", "jump")
_ACTION_PATTERN = re.compile(r"\b(" + "|".join(ACTION_KEYWORDS) + r")", re.IGNORECASE)


def select_character_angle(camera_angle: Optional[str]) -> CameraAngle:
    """Map the scene's camera angle to a character profile angle."""
    parsed = CameraAngle.parse(camera_angle)
    return CAMERA_TO_CHARACTER_ANGLE.get(parsed, CameraAngle.FRONT)


def _image_urls(images: Any) -> List[str]:
    """Normalize an image list of plain URLs and/or {"url": ...} mappings."""
    urls = []
    for image in images or []:
        if isinstance(image, str):
            urls.append(image)
        elif isinstance(image, dict) and image.get("url"):
            urls.append(image["url"])
    return urls


class ShotPlanner:
    """
    Plans composite steps from the knowledge graph.

    Steps are always ordered location, then characters, then props, so that
    background elements anchor the geometry of everything added later.
    Planning is deterministic for a given scene and graph.
    """

    def __init__(
        self,
        knowledge_graph: KnowledgeGraph,
        composite_config: Optional[CompositeConfig] = None,
        video_config: Optional[VideoConfig] = None,
    ):
        """
        Initialize the planner.

        Args:
            knowledge_graph: Source of location, character and prop nodes
            composite_config: Reference image limit
            video_config: Clip duration bounds
        """
        self.knowledge_graph = knowledge_graph
        self.composite_config = composite_config or CompositeConfig()
        self.video_config = video_config or VideoConfig()

    @property
    def max_references(self) -> int:
        return self.composite_config.max_references

    async def analyze(self, scene: Scene) -> ShotDecision:
        """
        Plan the shot for a scene.

        Raises:
            PlanningError: If no composite step could be built
        """
        logger.info(f"Analyzing scene {scene.scene_id}")

        location = await self._resolve_location(scene)
        characters = await self._resolve_nodes(scene.characters, "character")
        props = await self._resolve_nodes(scene.props, "prop")

        character_angle = select_character_angle(scene.camera_angle)
        character_angles = {node.node_id: character_angle for node in characters}

        steps: List[CompositeStep] = []

        if location:
            steps.append(CompositeStep(
                step=len(steps) + 1,
                type=StepType.LOCATION,
                description=f"Establish {location.name} as background",
                prompt=self._location_prompt(scene, location),
                references=self._cap_references(
                    self._location_references(location), f"location {location.node_id}"
                ),
            ))

        for node in characters:
            steps.append(CompositeStep(
                step=len(steps) + 1,
                type=StepType.CHARACTER,
                description=f"Add {node.name} to scene",
                prompt=self._character_prompt(scene, node, character_angle),
                references=self._cap_references(
                    self._character_references(node, character_angle),
                    f"character {node.node_id}",
                ),
            ))

        for node in props:
            steps.append(CompositeStep(
                step=len(steps) + 1,
                type=StepType.PROP,
                description=f"Add {node.name} to scene",
                prompt=self._prop_prompt(scene, node),
                references=self._cap_references(
                    self._prop_references(node), f"prop {node.node_id}"
                ),
            ))

        if not steps:
            raise PlanningError(
                f"No composite steps could be planned for scene {scene.scene_id}",
                scene_id=scene.scene_id,
            )

        pacing = self.calculate_pacing(scene.description, len(characters))
        reasoning = self._reasoning(scene, steps, character_angles, pacing)

        logger.info(f"Planned {len(steps)} composite step(s) for scene {scene.scene_id}")
        logger.debug(reasoning)

        return ShotDecision(
            scene_id=scene.scene_id,
            composite_steps=steps,
            character_angles=character_angles,
            pacing=pacing,
            reasoning=reasoning,
        )

    # -------------------------------------------------------------------------
    # Knowledge Lookups
    # -------------------------------------------------------------------------

    async def _resolve_location(self, scene: Scene) -> Optional[KnowledgeNode]:
        if not scene.location:
            return None

        node = await self.knowledge_graph.get_node(scene.location)
        if node:
            return node

        # Scenes may name the location instead of referencing its node
        matches = await self.knowledge_graph.search(
            scene.location, "location", project_id=scene.project_id or None, limit=1
        )
        if matches:
            return matches[0]

        logger.warning(f"Location not found in knowledge graph: {scene.location}")
        return None

    async def _resolve_nodes(self, node_ids: Iterable[str], kind: str) -> List[KnowledgeNode]:
        nodes = []
        for node_id in node_ids:
            node = await self.knowledge_graph.get_node(node_id)
            if node is None:
                logger.warning(f"Skipping unresolved {kind}: {node_id}")
                continue
            nodes.append(node)
        return nodes

    # -------------------------------------------------------------------------
    # References
    # -------------------------------------------------------------------------

    def _cap_references(self, references: List[ReferenceImage], label: str) -> tuple:
        if len(references) > self.max_references:
            logger.warning(
                f"Dropping {len(references) - self.max_references} reference image(s) "
                f"for {label} (max {self.max_references})"
            )
        return tuple(references[: self.max_references])

    @staticmethod
    def _location_references(node: KnowledgeNode) -> List[ReferenceImage]:
        return [
            ReferenceImage(url=url, type="location")
            for url in _image_urls(node.properties.get("images"))
        ]

    @staticmethod
    def _prop_references(node: KnowledgeNode) -> List[ReferenceImage]:
        return [
            ReferenceImage(url=url, type="prop")
            for url in _image_urls(node.properties.get("images"))
        ]

    @staticmethod
    def _character_references(node: KnowledgeNode, angle: CameraAngle) -> List[ReferenceImage]:
        """Requested angle first, then front view, then generic images."""
        profile = node.properties.get("profile360") or {}

        candidates = [(url, angle.value) for url in _image_urls(profile.get(angle.value))]
        if angle != CameraAngle.FRONT:
            candidates += [(url, CameraAngle.FRONT.value) for url in _image_urls(profile.get("front"))]
        candidates += [(url, None) for url in _image_urls(node.properties.get("images"))]

        references = []
        seen = set()
        for url, ref_angle in candidates:
            if url in seen:
                continue
            seen.add(url)
            references.append(ReferenceImage(
                url=url,
                type="character",
                character_id=node.node_id,
                angle=ref_angle,
            ))
        return references

    # -------------------------------------------------------------------------
    # Prompts
    # -------------------------------------------------------------------------

    @staticmethod
    def _location_prompt(scene: Scene, node: KnowledgeNode) -> str:
        return (
            f"Create a detailed {scene.time_of_day or 'daytime'} scene of {node.name}. "
            f"{scene.description}. High quality, cinematic lighting."
        )

    @staticmethod
    def _character_prompt(scene: Scene, node: KnowledgeNode, angle: CameraAngle) -> str:
        return (
            f"Add {node.name} to the scene in {angle.value.replace('_', '-')} view. "
            f"Maintain consistency with reference images. {scene.description}."
        )

    @staticmethod
    def _prop_prompt(scene: Scene, node: KnowledgeNode) -> str:
        return (
            f"Add {node.name} to the scene. {scene.description}. "
            f"Ensure proper scale and placement."
        )

    # -------------------------------------------------------------------------
    # Pacing
    # -------------------------------------------------------------------------

    def calculate_pacing(self, description: str, character_count: int) -> Pacing:
        """Derive clip duration and motion from cast size and action words."""
        duration = min(
            max(self.video_config.min_duration + character_count, self.video_config.min_duration),
            self.video_config.max_duration,
        )

        if _ACTION_PATTERN.search(description or ""):
            return Pacing(duration=duration, motion_strength=0.8, transition_type="fast_cut")
        return Pacing(duration=duration, motion_strength=0.5, transition_type="smooth")

    @staticmethod
    def _reasoning(
        scene: Scene,
        steps: List[CompositeStep],
        character_angles: Dict[str, CameraAngle],
        pacing: Pacing,
    ) -> str:
        step_desc = ", ".join(f"{s.step}. {s.description}" for s in steps)
        angle_desc = ", ".join(
            f"{node_id}: {angle.value}" for node_id, angle in character_angles.items()
        ) or "none"
        return (
            f"Scene {scene.scene_number} requires {len(steps)} composite steps: {step_desc}. "
            f"Character angles: {angle_desc}. "
            f"Pacing: {pacing.duration}s duration with {pacing.motion_strength} motion strength."
        )

    # -------------------------------------------------------------------------
    # Plan Utilities
    # -------------------------------------------------------------------------

    @staticmethod
    def optimize_step_order(steps: List[CompositeStep]) -> List[CompositeStep]:
        """Stable sort: location, character, prop, lighting, effect."""
        return sorted(steps, key=lambda s: STEP_TYPE_ORDER.get(s.type, 99))

    def validate_prerequisites(self, scene: Scene, steps: List[CompositeStep]) -> List[str]:
        """
        Check that a scene and plan can be composited.

        Returns:
            List of problems; empty when the plan is usable
        """
        errors = []

        if not scene.scene_id:
            errors.append("Scene ID is required")
        if not scene.description:
            errors.append("Scene description is required")
        if not steps:
            errors.append("At least one composite step is required")

        for step in steps:
            if not step.prompt:
                errors.append(f"Step {step.step} is missing prompt")
            if len(step.references) > self.max_references:
                errors.append(
                    f"Step {step.step} has too many references (max {self.max_references})"
                )

        return errors
