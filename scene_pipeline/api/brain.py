"""
Brain Client
============

HTTP adapter for the knowledge-graph service ("brain"). Serves both node
lookups for shot planning and multimodal reasoning queries for the
knowledge verification check.
"""

import logging
from typing import Optional, List, Dict, Any

from .base import BaseServiceClient
from ..scene.models import KnowledgeNode
from ..core.exceptions import ProviderError

logger = logging.getLogger(__name__)


class BrainClient(BaseServiceClient):
    """Knowledge graph and multimodal reasoning over HTTP."""

    @property
    def service_name(self) -> str:
        return "brain"

    @property
    def env_key_name(self) -> str:
        return "BRAIN_API_KEY"

    def _get_default_base_url(self) -> str:
        return "http://localhost:8001"

    async def get_node(self, node_id: str) -> Optional[KnowledgeNode]:
        """Fetch a node by id, returning None if it does not exist."""
        try:
            data = await self._request("GET", f"/api/v1/brain/nodes/{node_id}")
        except ProviderError as e:
            if e.details.get("status_code") == 404:
                return None
            raise

        node = data.get("node", data)
        if not node:
            return None
        return KnowledgeNode.from_dict(node)

    async def search(
        self,
        query: str,
        node_type: str,
        project_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[KnowledgeNode]:
        """Semantic search restricted to one node type."""
        payload: Dict[str, Any] = {
            "query": query,
            "types": [node_type],
            "limit": limit,
        }
        if project_id:
            payload["project_id"] = project_id

        data = await self._request("POST", "/api/v1/brain/search", json=payload)

        results = data.get("results") or data.get("nodes") or []
        # Search hits may wrap the node: {"node": {...}, "score": 0.9}
        return [KnowledgeNode.from_dict(item.get("node", item)) for item in results]

    async def analyze(self, image_url: str, query: str) -> Dict[str, Any]:
        """Run a multimodal query against an image."""
        logger.debug(f"Brain multimodal query for {image_url}")
        return await self._request(
            "POST",
            "/api/v1/brain/multimodal/query",
            json={"image_url": image_url, "query": query},
        )
