"""
YAML Knowledge Base
===================

File-backed knowledge graph for offline runs. Holds the same typed nodes the
knowledge service returns: locations, characters (with per-angle profile360
image sets) and props.

Example file::

    project_id: neon-city
    locations:
      alley-01:
        name: Neon Alley
        images:
          - https://cdn.example.com/alley.png
    characters:
      aiko:
        name: Aiko
        profile360:
          front: [https://cdn.example.com/aiko_front.png]
          three_quarter:
            - url: https://cdn.example.com/aiko_34.png
        images: [https://cdn.example.com/aiko.png]
    props:
      katana:
        name: Katana
        images: [https://cdn.example.com/katana.png]
"""

import logging
from pathlib import Path
from typing import Optional, List, Dict, Union
import yaml

from ..scene.models import KnowledgeNode
from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# YAML section -> node type
SECTION_TYPES = {
    "locations": "location",
    "characters": "character",
    "props": "prop",
}


class YamlKnowledgeGraph:
    """
    Knowledge graph loaded from a YAML file.

    Node ids are the mapping keys; every other field of an entry becomes a
    node property.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """
        Initialize the knowledge graph.

        Args:
            path: Path to the knowledge YAML file
        """
        self.path = Path(path) if path else None
        self.project_id: Optional[str] = None
        self.nodes: Dict[str, KnowledgeNode] = {}

        if self.path:
            self.load(self.path)

    def load(self, path: Union[str, Path]) -> None:
        """Load nodes from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(
                f"Knowledge file not found: {path}",
                config_key="services.knowledge_path",
            )

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in knowledge file: {e}",
                config_key="services.knowledge_path",
            )

        self.project_id = data.get("project_id")

        for section, node_type in SECTION_TYPES.items():
            for node_id, entry in (data.get(section) or {}).items():
                self.add_node(node_type, str(node_id), entry or {})

        logger.info(f"Loaded knowledge base from {path}")
        for section, node_type in SECTION_TYPES.items():
            count = sum(1 for n in self.nodes.values() if n.node_type == node_type)
            logger.info(f"  - {count} {section}")

    def add_node(self, node_type: str, node_id: str, properties: Dict) -> KnowledgeNode:
        """Add or replace a node."""
        properties = dict(properties)
        properties.setdefault("name", node_id)
        if self.project_id:
            properties.setdefault("project_id", self.project_id)

        node = KnowledgeNode(
            node_id=node_id,
            node_type=node_type,
            name=properties["name"],
            properties=properties,
        )
        self.nodes[node_id] = node
        return node

    async def get_node(self, node_id: str) -> Optional[KnowledgeNode]:
        """Get a node by id."""
        return self.nodes.get(node_id)

    async def search(
        self,
        query: str,
        node_type: str,
        project_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[KnowledgeNode]:
        """
        Find nodes of one type by name.

        Exact (case-insensitive) name matches rank before substring matches.
        """
        needle = query.strip().lower()
        if not needle:
            return []

        exact = []
        partial = []
        for node in self.nodes.values():
            if node.node_type != node_type:
                continue
            node_project = node.properties.get("project_id")
            if project_id and node_project and node_project != project_id:
                continue

            name = node.name.lower()
            if name == needle:
                exact.append(node)
            elif needle in name:
                partial.append(node)

        return (exact + partial)[:limit]

    async def close(self) -> None:
        return None
