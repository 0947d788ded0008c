"""
Tests for the YAML Knowledge Base

Tests for scene_pipeline/context/knowledge_base.py
"""

import pytest

from scene_pipeline.context.knowledge_base import YamlKnowledgeGraph
from scene_pipeline.core.exceptions import ConfigurationError


KNOWLEDGE_YAML = """
project_id: neon-city
locations:
  alley-01:
    name: Neon Alley
    images:
      - https://cdn.test/alley.png
  market:
    name: Night Market Alley
characters:
  aiko:
    name: Aiko
    profile360:
      front: [https://cdn.test/aiko_front.png]
props:
  katana: {}
"""


@pytest.fixture
def graph(tmp_path) -> YamlKnowledgeGraph:
    path = tmp_path / "knowledge.yaml"
    path.write_text(KNOWLEDGE_YAML)
    return YamlKnowledgeGraph(path)


class TestLoad:
    def test_nodes_are_typed(self, graph):
        assert graph.project_id == "neon-city"
        assert graph.nodes["alley-01"].node_type == "location"
        assert graph.nodes["aiko"].node_type == "character"
        assert graph.nodes["katana"].node_type == "prop"

    def test_name_defaults_to_id(self, graph):
        assert graph.nodes["katana"].name == "katana"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            YamlKnowledgeGraph(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "knowledge.yaml"
        path.write_text("characters: [unclosed\n")

        with pytest.raises(ConfigurationError):
            YamlKnowledgeGraph(path)


class TestLookup:
    @pytest.mark.asyncio
    async def test_get_node(self, graph):
        node = await graph.get_node("aiko")
        assert node.name == "Aiko"
        assert node.properties["profile360"]["front"] == ["https://cdn.test/aiko_front.png"]
        assert await graph.get_node("ghost") is None

    @pytest.mark.asyncio
    async def test_exact_match_ranks_first(self, graph):
        matches = await graph.search("neon alley", "location")
        assert [n.node_id for n in matches] == ["alley-01"]

        matches = await graph.search("Alley", "location")
        assert [n.node_id for n in matches] == ["alley-01", "market"]

    @pytest.mark.asyncio
    async def test_search_filters_type_and_limit(self, graph):
        assert await graph.search("Aiko", "location") == []
        assert len(await graph.search("alley", "location", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_search_filters_project(self, graph):
        assert await graph.search("Neon Alley", "location", project_id="other") == []
        assert len(await graph.search("Neon Alley", "location", project_id="neon-city")) == 1
