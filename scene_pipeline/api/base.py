"""
Collaborator Contracts & Base Client
====================================

Protocols for the external services the pipeline consumes, plus a shared
base class for the HTTP adapters that implement them.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any, Protocol, runtime_checkable
import httpx

from ..core.exceptions import ProviderError, RateLimitError
from ..core.security import redact_api_key
from ..scene.models import (
    Scene,
    SceneStatus,
    ReferenceImage,
    Resolution,
    KnowledgeNode,
    StitchResult,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================


DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 2.0
DEFAULT_RETRY_MULTIPLIER = 2.0
DEFAULT_TIMEOUT = 120


# =============================================================================
# Collaborator Contracts
# =============================================================================


@runtime_checkable
class SceneStore(Protocol):
    """Persistence for scene records."""

    async def fetch(self, scene_id: str) -> Scene: ...

    async def update_status(self, scene_id: str, status: SceneStatus) -> None: ...

    async def update_fields(self, scene_id: str, fields: Dict[str, Any]) -> None: ...


@runtime_checkable
class KnowledgeGraph(Protocol):
    """Typed lookups of locations, characters and props."""

    async def get_node(self, node_id: str) -> Optional[KnowledgeNode]: ...

    async def search(
        self,
        query: str,
        node_type: str,
        project_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[KnowledgeNode]: ...


@runtime_checkable
class Reasoner(Protocol):
    """Multimodal reasoning over an image and a structured query."""

    async def analyze(self, image_url: str, query: str) -> Dict[str, Any]: ...


@runtime_checkable
class ImageGenerator(Protocol):
    """Image generation with edit semantics."""

    async def generate(
        self,
        prompt: str,
        reference_images: List[ReferenceImage],
        edit_base_url: Optional[str] = None,
    ) -> str: ...


@runtime_checkable
class VideoGenerator(Protocol):
    """Image-to-video generation."""

    async def generate(
        self,
        image_url: str,
        prompt: str,
        duration: int,
        fps: int,
        resolution: Resolution,
        motion_strength: float,
    ) -> Dict[str, Any]: ...


@runtime_checkable
class VisionModel(Protocol):
    """Natural-language questions about an image."""

    async def ask(self, image_url: str, question: str) -> str: ...


@runtime_checkable
class FrameExtractor(Protocol):
    """Grabs a single frame from a video."""

    async def extract_frame(self, video_url: str, timestamp: float) -> str: ...


@runtime_checkable
class VideoStitcher(Protocol):
    """Joins ordered clips into one video."""

    async def stitch(self, clips: List[Dict[str, Any]]) -> Dict[str, Any]: ...


@runtime_checkable
class EpisodeStore(Protocol):
    """Episode-level reads and writes used when assembling the final video."""

    async def completed_scenes(self, episode_id: str) -> List[Scene]: ...

    async def record_final_video(self, result: StitchResult) -> None: ...


# =============================================================================
# Base HTTP Client
# =============================================================================


class BaseServiceClient(ABC):
    """
    Base class for HTTP collaborator clients.

    Features:
    - Lazily created, lock-protected httpx client
    - Automatic retry with exponential backoff for recoverable errors
    - Consistent ProviderError mapping
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ):
        """
        Initialize the client.

        Args:
            api_key: API key (or read from environment)
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries on recoverable failures
            retry_delay: Initial backoff delay in seconds
        """
        self.api_key = api_key or self._get_api_key_from_env()
        self.base_url = (base_url or self._get_default_base_url()).rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

        self._validate_config()

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Return the service name."""
        pass

    @property
    @abstractmethod
    def env_key_name(self) -> str:
        """Return the environment variable name for the API key."""
        pass

    @abstractmethod
    def _get_default_base_url(self) -> str:
        """Return the default base URL for this service."""
        pass

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    def _get_api_key_from_env(self) -> Optional[str]:
        """Get API key from environment variable."""
        return os.getenv(self.env_key_name)

    def _validate_config(self) -> None:
        """Validate the client configuration."""
        if not self.api_key:
            logger.warning(
                f"No API key found for {self.service_name}. "
                f"Set {self.env_key_name} environment variable or pass api_key parameter."
            )

    def _get_headers(self) -> Dict[str, str]:
        """Get default headers for requests."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout),
                    headers=self._get_headers(),
                )
            return self._client

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Send a JSON request, retrying recoverable failures with backoff.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            json: Request body
            params: Query parameters

        Returns:
            Decoded JSON response body

        Raises:
            ProviderError: On non-recoverable errors or when retries run out
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        last_error: Optional[ProviderError] = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                delay = self.retry_delay * (DEFAULT_RETRY_MULTIPLIER ** (attempt - 1))
                logger.info(f"{self.service_name}: retry {attempt}/{self.max_retries} after {delay:.1f}s delay")
                await asyncio.sleep(delay)

            try:
                client = await self._get_client()
                response = await client.request(method, url, json=json, params=params)
            except httpx.TimeoutException as e:
                last_error = ProviderError(
                    f"{self.service_name} request timed out: {e}",
                    provider=self.service_name,
                    recoverable=True,
                )
                logger.warning(str(last_error))
                continue
            except httpx.HTTPError as e:
                last_error = ProviderError(
                    f"{self.service_name} request failed: {redact_api_key(str(e))}",
                    provider=self.service_name,
                    recoverable=True,
                )
                logger.warning(str(last_error))
                continue

            if response.status_code == 429:
                retry_after = response.headers.get("retry-after")
                last_error = RateLimitError(
                    f"{self.service_name} rate limited",
                    retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                    provider=self.service_name,
                )
                logger.warning(str(last_error))
                continue

            if response.status_code >= 400:
                error = ProviderError(
                    f"{self.service_name} API error: {response.status_code}",
                    provider=self.service_name,
                    status_code=response.status_code,
                    response_body=redact_api_key(response.text),
                )
                if not error.recoverable:
                    raise error
                last_error = error
                logger.warning(f"Recoverable {self.service_name} error: {error}")
                continue

            try:
                return response.json()
            except ValueError as e:
                raise ProviderError(
                    f"{self.service_name} returned invalid JSON: {e}",
                    provider=self.service_name,
                    status_code=response.status_code,
                )

        raise ProviderError(
            f"{self.service_name}: all retries exhausted. Last error: {last_error}",
            provider=self.service_name,
        )

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client."""
        async with self._client_lock:
            if self._client:
                await self._client.aclose()
                self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
