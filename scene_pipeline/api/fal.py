"""
fal.ai Clients
==============

Adapters for the fal.ai endpoints used by the pipeline:
- nano-banana image edit (composite steps)
- Kling image-to-video (clip synthesis)
- moondream2 visual query (vision verification)
"""

import logging
from typing import Optional, List, Dict, Any

from .base import BaseServiceClient
from ..core.exceptions import ProviderError
from ..core.security import sanitize_prompt
from ..scene.models import ReferenceImage, Resolution

logger = logging.getLogger(__name__)


class FalClient(BaseServiceClient):
    """Shared fal.ai settings."""

    @property
    def service_name(self) -> str:
        return "fal.ai"

    @property
    def env_key_name(self) -> str:
        return "FAL_API_KEY"

    def _get_default_base_url(self) -> str:
        return "https://fal.run"

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }


class FalImageClient(FalClient):
    """
    Composite image generation.

    Uses the edit endpoint whenever input images exist, so the running
    composite is edited rather than regenerated.
    """

    EDIT_ENDPOINT = "fal-ai/nano-banana/edit"
    TEXT_ENDPOINT = "fal-ai/nano-banana"

    # The edit endpoint accepts at most this many input images
    MAX_INPUT_IMAGES = 3

    async def generate(
        self,
        prompt: str,
        reference_images: List[ReferenceImage],
        edit_base_url: Optional[str] = None,
    ) -> str:
        """
        Generate or edit an image.

        Args:
            prompt: Step prompt
            reference_images: Up to 3 reference images
            edit_base_url: Running composite to edit

        Returns:
            URL of the generated image
        """
        image_urls = []
        if edit_base_url:
            image_urls.append(edit_base_url)

        available = self.MAX_INPUT_IMAGES - len(image_urls)
        image_urls.extend(ref.url for ref in reference_images[:available])
        if len(reference_images) > available:
            logger.debug(
                f"Dropped {len(reference_images) - available} reference(s) to fit "
                f"{self.MAX_INPUT_IMAGES} input images"
            )

        payload: Dict[str, Any] = {
            "prompt": sanitize_prompt(prompt),
            "num_images": 1,
            "output_format": "png",
        }

        if image_urls:
            payload["image_urls"] = image_urls
            endpoint = self.EDIT_ENDPOINT
        else:
            endpoint = self.TEXT_ENDPOINT

        logger.info(f"Generating image via {endpoint} with {len(image_urls)} input image(s)")
        logger.debug(f"Payload: {payload}")

        data = await self._request("POST", endpoint, json=payload)

        images = data.get("images") or []
        if not images or not images[0].get("url"):
            raise ProviderError(
                f"No images returned from {endpoint}",
                provider=self.service_name,
            )

        return images[0]["url"]


class FalVideoClient(FalClient):
    """Image-to-video synthesis."""

    ENDPOINT = "fal-ai/kling-video/v2.5/standard/image-to-video"

    async def generate(
        self,
        image_url: str,
        prompt: str,
        duration: int,
        fps: int,
        resolution: Resolution,
        motion_strength: float,
    ) -> Dict[str, Any]:
        """
        Animate an image into a clip.

        Returns:
            Dict with video_url, duration, fps and resolution; video_url is
            None when the service returned no video
        """
        payload = {
            "image_url": image_url,
            "prompt": sanitize_prompt(prompt),
            "duration": str(duration),
            "fps": fps,
            "width": resolution.width,
            "height": resolution.height,
            "motion_strength": motion_strength,
        }

        logger.info(f"Generating {duration}s video via {self.ENDPOINT}")
        logger.debug(f"Payload: {payload}")

        data = await self._request("POST", self.ENDPOINT, json=payload)

        video = data.get("video") or {}
        return {
            "video_url": video.get("url") or data.get("video_url"),
            "duration": data.get("duration", duration),
            "fps": data.get("fps", fps),
            "resolution": resolution,
        }


class FalVisionClient(FalClient):
    """Vision-language questions via moondream2."""

    ENDPOINT = "fal-ai/moondream2/visual-query"

    async def ask(self, image_url: str, question: str) -> str:
        """Ask a question about an image and return the free-text answer."""
        data = await self._request(
            "POST",
            self.ENDPOINT,
            json={"image_url": image_url, "prompt": question},
        )
        return data.get("output") or ""
