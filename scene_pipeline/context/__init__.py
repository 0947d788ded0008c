"""Local knowledge and scene persistence."""

from .knowledge_base import YamlKnowledgeGraph
from .scene_store import SQLiteSceneStore

__all__ = [
    "YamlKnowledgeGraph",
    "SQLiteSceneStore",
]
