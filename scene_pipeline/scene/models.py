"""
Scene Models
============

Core data models for scenes, shot planning, composite iterations and
verification results.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

logger = logging.getLogger(__name__)


class SceneStatus(Enum):
    """Status of a scene in the generation state machine."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPOSITING = "compositing"
    GENERATING_VIDEO = "generating_video"
    EXTRACTING_FRAME = "extracting_frame"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SceneStatus.COMPLETED, SceneStatus.FAILED)

    def can_transition_to(self, target: "SceneStatus") -> bool:
        """Check whether the state machine allows moving to ``target``."""
        if self.is_terminal:
            return False
        if target == SceneStatus.FAILED:
            return True
        return _NEXT_STATUS.get(self) == target


_NEXT_STATUS = {
    SceneStatus.PENDING: SceneStatus.ANALYZING,
    SceneStatus.ANALYZING: SceneStatus.COMPOSITING,
    SceneStatus.COMPOSITING: SceneStatus.GENERATING_VIDEO,
    SceneStatus.GENERATING_VIDEO: SceneStatus.EXTRACTING_FRAME,
    SceneStatus.EXTRACTING_FRAME: SceneStatus.COMPLETED,
}


class CameraAngle(Enum):
    """Camera angles, also used to select character profile images."""

    FRONT = "front"
    SIDE = "side"
    BACK = "back"
    THREE_QUARTER = "three_quarter"
    TOP = "top"
    BOTTOM = "bottom"
    DUTCH = "dutch"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["CameraAngle"]:
        """Parse a free-form angle name, returning None when unknown."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError:
            return None


class StepType(Enum):
    """Kind of visual element a composite step adds."""

    LOCATION = "location"
    CHARACTER = "character"
    PROP = "prop"
    LIGHTING = "lighting"
    EFFECT = "effect"


# Background elements anchor later composites geometrically
STEP_TYPE_ORDER = {
    StepType.LOCATION: 1,
    StepType.CHARACTER: 2,
    StepType.PROP: 3,
    StepType.LIGHTING: 4,
    StepType.EFFECT: 5,
}


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


# =============================================================================
# Knowledge
# =============================================================================


@dataclass
class KnowledgeNode:
    """A typed node returned by the knowledge graph."""

    node_id: str
    node_type: str
    name: str
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KnowledgeNode":
        properties = dict(data.get("properties") or {})
        return cls(
            node_id=str(data.get("id") or data.get("node_id") or ""),
            node_type=str(data.get("type") or data.get("node_type") or "").lower(),
            name=data.get("name") or properties.get("name") or "",
            properties=properties,
        )


# =============================================================================
# Planning
# =============================================================================


@dataclass(frozen=True)
class ReferenceImage:
    """A reference image supplied to the image generator."""

    url: str
    type: str
    weight: float = 1.0
    character_id: Optional[str] = None
    angle: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "type": self.type,
            "weight": self.weight,
            "character_id": self.character_id,
            "angle": self.angle,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReferenceImage":
        return cls(
            url=data["url"],
            type=data.get("type", "style"),
            weight=data.get("weight", 1.0),
            character_id=data.get("character_id"),
            angle=data.get("angle"),
        )


@dataclass(frozen=True)
class CompositeStep:
    """One discrete addition to the composite image."""

    step: int
    type: StepType
    description: str
    prompt: str
    references: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "type": self.type.value,
            "description": self.description,
            "prompt": self.prompt,
            "references": [ref.to_dict() for ref in self.references],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompositeStep":
        return cls(
            step=data["step"],
            type=StepType(data["type"]),
            description=data.get("description", ""),
            prompt=data.get("prompt", ""),
            references=tuple(ReferenceImage.from_dict(r) for r in data.get("references", [])),
        )


@dataclass
class Pacing:
    """Clip timing and motion parameters."""

    duration: int = 5
    motion_strength: float = 0.5
    transition_type: str = "smooth"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "duration": self.duration,
            "motion_strength": self.motion_strength,
            "transition_type": self.transition_type,
        }


@dataclass
class ShotDecision:
    """Output of the shot planner, consumed once per run."""

    scene_id: str
    composite_steps: List[CompositeStep] = field(default_factory=list)
    character_angles: Dict[str, CameraAngle] = field(default_factory=dict)
    pacing: Pacing = field(default_factory=Pacing)
    reasoning: str = ""


# =============================================================================
# Verification
# =============================================================================


@dataclass
class CheckResult:
    """Result of one verification channel."""

    name: str
    passed: bool
    score: float
    feedback: str = ""
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "score": self.score,
            "feedback": self.feedback,
            "issues": list(self.issues),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CheckResult":
        return cls(
            name=data.get("name", ""),
            passed=bool(data.get("passed", False)),
            score=float(data.get("score", 0.0)),
            feedback=data.get("feedback", ""),
            issues=list(data.get("issues") or []),
        )


@dataclass
class VerificationResult:
    """
    Combined result of the knowledge check and the vision check.

    ``overall_pass`` is a two-of-two gate: it is true only when both
    channels pass on their own.
    """

    knowledge: CheckResult
    vision: CheckResult

    @property
    def overall_pass(self) -> bool:
        return self.knowledge.passed and self.vision.passed

    @property
    def combined_score(self) -> float:
        return (self.knowledge.score + self.vision.score) / 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            "knowledge": self.knowledge.to_dict(),
            "vision": self.vision.to_dict(),
            "overall_pass": self.overall_pass,
            "combined_score": self.combined_score,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationResult":
        return cls(
            knowledge=CheckResult.from_dict(data.get("knowledge", {})),
            vision=CheckResult.from_dict(data.get("vision", {})),
        )


# =============================================================================
# Composite
# =============================================================================


@dataclass
class CompositeIteration:
    """Audit record for a single composite attempt."""

    iteration: int
    step: CompositeStep
    output_image_url: str
    verification: VerificationResult
    input_image_url: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration": self.iteration,
            "step": self.step.to_dict(),
            "input_image_url": self.input_image_url,
            "output_image_url": self.output_image_url,
            "verification": self.verification.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompositeIteration":
        return cls(
            iteration=data["iteration"],
            step=CompositeStep.from_dict(data["step"]),
            output_image_url=data["output_image_url"],
            verification=VerificationResult.from_dict(data["verification"]),
            input_image_url=data.get("input_image_url"),
            timestamp=_parse_datetime(data.get("timestamp")) or datetime.now(),
        )


@dataclass
class CompositeResult:
    """Finished composite and the history that produced it."""

    final_image_url: str
    iterations: List[CompositeIteration] = field(default_factory=list)


# =============================================================================
# Video
# =============================================================================


@dataclass
class Resolution:
    """Video frame size in pixels."""

    width: int = 1024
    height: int = 576

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"

    def to_dict(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass
class VideoResult:
    """A generated clip."""

    video_url: str
    duration: float
    fps: int = 24
    resolution: Resolution = field(default_factory=Resolution)


@dataclass
class FrameResult:
    """An extracted continuity frame."""

    frame_url: str
    timestamp: float


# =============================================================================
# Scene
# =============================================================================


@dataclass
class DialogueLine:
    """A line of dialogue spoken in the scene."""

    character_id: str
    text: str

    def to_dict(self) -> Dict[str, str]:
        return {"character_id": self.character_id, "text": self.text}


@dataclass
class Scene:
    """
    A single scene: the unit of work for the pipeline.

    Scenes are authored elsewhere; the pipeline reads the descriptive fields
    and writes status and result fields.
    """

    # Identity
    scene_id: str
    episode_id: str = ""
    project_id: str = ""
    scene_number: int = 1

    # Content
    description: str = ""
    location: Optional[str] = None
    time_of_day: Optional[str] = None
    camera_angle: Optional[str] = None
    characters: List[str] = field(default_factory=list)
    props: List[str] = field(default_factory=list)
    dialogue: List[DialogueLine] = field(default_factory=list)

    # Results
    status: SceneStatus = SceneStatus.PENDING
    composite_iterations: List[CompositeIteration] = field(default_factory=list)
    final_composite_url: Optional[str] = None
    video_url: Optional[str] = None
    video_duration: Optional[float] = None
    last_frame_url: Optional[str] = None
    error: Optional[str] = None

    # Metadata
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "scene_id": self.scene_id,
            "episode_id": self.episode_id,
            "project_id": self.project_id,
            "scene_number": self.scene_number,
            "description": self.description,
            "location": self.location,
            "time_of_day": self.time_of_day,
            "camera_angle": self.camera_angle,
            "characters": list(self.characters),
            "props": list(self.props),
            "dialogue": [line.to_dict() for line in self.dialogue],
            "status": self.status.value,
            "composite_iterations": [it.to_dict() for it in self.composite_iterations],
            "final_composite_url": self.final_composite_url,
            "video_url": self.video_url,
            "video_duration": self.video_duration,
            "last_frame_url": self.last_frame_url,
            "error": self.error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Scene":
        """Create from dictionary."""
        return cls(
            scene_id=data["scene_id"],
            episode_id=data.get("episode_id") or "",
            project_id=data.get("project_id") or "",
            scene_number=data.get("scene_number") or 1,
            description=data.get("description") or "",
            location=data.get("location"),
            time_of_day=data.get("time_of_day"),
            camera_angle=data.get("camera_angle"),
            characters=list(data.get("characters") or []),
            props=list(data.get("props") or []),
            dialogue=[DialogueLine(**line) for line in data.get("dialogue") or []],
            status=SceneStatus(data.get("status") or "pending"),
            composite_iterations=[
                CompositeIteration.from_dict(it) for it in data.get("composite_iterations") or []
            ],
            final_composite_url=data.get("final_composite_url"),
            video_url=data.get("video_url"),
            video_duration=data.get("video_duration"),
            last_frame_url=data.get("last_frame_url"),
            error=data.get("error"),
            created_at=_parse_datetime(data.get("created_at")) or datetime.now(),
            updated_at=_parse_datetime(data.get("updated_at")),
        )


# =============================================================================
# Reporting
# =============================================================================


@dataclass
class SceneProgress:
    """Progress snapshot for a scene."""

    scene_id: str
    status: SceneStatus
    progress: int
    current_step: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scene_id": self.scene_id,
            "status": self.status.value,
            "progress": self.progress,
            "current_step": self.current_step,
            "error": self.error,
        }


@dataclass
class BatchFailure:
    """A scene that failed inside a batch run."""

    scene_id: str
    error: str


@dataclass
class BatchResult:
    """Per-scene outcome of a batch run."""

    success: List[Scene] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": [scene.scene_id for scene in self.success],
            "failed": [{"scene_id": f.scene_id, "error": f.error} for f in self.failed],
        }


# =============================================================================
# Episode Assembly
# =============================================================================


@dataclass
class StitchResult:
    """An episode's completed scenes joined into one video."""

    episode_id: str
    video_url: str
    duration: float
    scene_ids: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    task_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "episode_id": self.episode_id,
            "video_url": self.video_url,
            "duration": self.duration,
            "scene_ids": list(self.scene_ids),
            "skipped": list(self.skipped),
            "task_id": self.task_id,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StitchResult":
        return cls(
            episode_id=data["episode_id"],
            video_url=data["video_url"],
            duration=float(data.get("duration") or 0.0),
            scene_ids=list(data.get("scene_ids") or []),
            skipped=list(data.get("skipped") or []),
            task_id=data.get("task_id"),
            created_at=_parse_datetime(data.get("created_at")) or datetime.now(),
        )
