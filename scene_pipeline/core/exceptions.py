"""
Custom Exceptions
=================

Unified exception hierarchy for the scene generation pipeline.

Every error may carry the pipeline phase it was raised in, so the
orchestrator never has to guess the phase from the message text.
"""

from typing import Optional, Dict, Any, List


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    # Phase (SceneStatus value) this kind of error belongs to, if any
    default_phase: Optional[str] = None

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        phase: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.recoverable = recoverable
        self.phase = phase or self.default_phase

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "phase": self.phase,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ConfigurationError(PipelineError):
    """Configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type
        super().__init__(message, details=details, **kwargs)


class ProviderError(PipelineError):
    """Collaborator service (HTTP API) errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if provider:
            details["provider"] = provider
        if status_code:
            details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body[:500]

        # 429 and 5xx are worth retrying
        recoverable = kwargs.pop("recoverable", status_code in (429, 500, 502, 503, 504) if status_code else False)
        super().__init__(message, recoverable=recoverable, details=details, **kwargs)


class RateLimitError(ProviderError):
    """Rate limit exceeded errors."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(message, status_code=429, recoverable=True, details=details, **kwargs)


class SceneNotFoundError(PipelineError):
    """The scene store has no record for the requested scene."""

    def __init__(self, scene_id: str, **kwargs):
        details = kwargs.pop("details", {})
        details["scene_id"] = scene_id
        super().__init__(f"Scene not found: {scene_id}", details=details, **kwargs)
        self.scene_id = scene_id


class PlanningError(PipelineError):
    """The shot planner could not extract any composite element."""

    default_phase = "analyzing"

    def __init__(self, message: str, scene_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if scene_id:
            details["scene_id"] = scene_id
        super().__init__(message, details=details, **kwargs)
        self.scene_id = scene_id


class CompositeGenerationError(PipelineError):
    """
    A composite step exhausted its retries, or the scene hit the global
    iteration cap.

    Carries the offending step, the global iteration count, the last
    verification result and the partial iteration history.
    """

    default_phase = "compositing"

    def __init__(
        self,
        message: str,
        scene_id: Optional[str] = None,
        step: Optional[Any] = None,
        iteration: int = 0,
        verification: Optional[Any] = None,
        iterations: Optional[List[Any]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if scene_id:
            details["scene_id"] = scene_id
        if step is not None:
            details["step"] = getattr(step, "step", step)
            details["step_type"] = getattr(getattr(step, "type", None), "value", None)
        details["iteration"] = iteration
        if verification is not None:
            details["combined_score"] = getattr(verification, "combined_score", None)
        super().__init__(message, details=details, **kwargs)
        self.scene_id = scene_id
        self.step = step
        self.iteration = iteration
        self.verification = verification
        self.iterations = list(iterations or [])


class VerificationError(PipelineError):
    """A verification check faulted (raised only in strict mode)."""

    default_phase = "compositing"

    def __init__(
        self,
        message: str,
        verification: Optional[Any] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.verification = verification


class VideoGenerationError(PipelineError):
    """The video generator failed or returned no video."""

    default_phase = "generating_video"

    def __init__(
        self,
        message: str,
        image_url: Optional[str] = None,
        prompt: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if image_url:
            details["image_url"] = image_url
        if prompt:
            details["prompt"] = prompt[:200]
        super().__init__(message, details=details, **kwargs)


class FrameExtractionError(PipelineError):
    """The continuity frame could not be extracted."""

    default_phase = "extracting_frame"

    def __init__(
        self,
        message: str,
        video_url: Optional[str] = None,
        timestamp: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if video_url:
            details["video_url"] = video_url
        if timestamp is not None:
            details["timestamp"] = timestamp
        super().__init__(message, details=details, **kwargs)


class SceneGenerationError(PipelineError):
    """
    Top-level wrapper raised by the orchestrator.

    Callers of the scene generator always receive this error, whatever the
    original cause was.
    """

    def __init__(
        self,
        message: str,
        scene_id: str,
        phase: str,
        cause: Optional[BaseException] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["scene_id"] = scene_id
        if cause is not None:
            details["cause"] = type(cause).__name__
        super().__init__(message, details=details, phase=phase, **kwargs)
        self.scene_id = scene_id
        self.cause = cause


class StitchingError(PipelineError):
    """An episode's scenes could not be joined into a final video."""

    def __init__(
        self,
        message: str,
        episode_id: Optional[str] = None,
        task_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if episode_id:
            details["episode_id"] = episode_id
        if task_id:
            details["task_id"] = task_id
        super().__init__(message, details=details, **kwargs)
        self.episode_id = episode_id
