"""
Scene Models
============

Data structures shared across the pipeline.
"""

from .models import (
    SceneStatus,
    CameraAngle,
    StepType,
    KnowledgeNode,
    STEP_TYPE_ORDER,
    ReferenceImage,
    CompositeStep,
    Pacing,
    ShotDecision,
    CheckResult,
    VerificationResult,
    CompositeIteration,
    CompositeResult,
    Resolution,
    VideoResult,
    FrameResult,
    DialogueLine,
    Scene,
    SceneProgress,
    BatchFailure,
    BatchResult,
)

__all__ = [
    "SceneStatus",
    "CameraAngle",
    "StepType",
    "KnowledgeNode",
    "STEP_TYPE_ORDER",
    "ReferenceImage",
    "CompositeStep",
    "Pacing",
    "ShotDecision",
    "CheckResult",
    "VerificationResult",
    "CompositeIteration",
    "CompositeResult",
    "Resolution",
    "VideoResult",
    "FrameResult",
    "DialogueLine",
    "Scene",
    "SceneProgress",
    "BatchFailure",
    "BatchResult",
]
