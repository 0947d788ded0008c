"""
Pytest Configuration and Fixtures

In-memory collaborators for exercising the pipeline without network access.
"""

import copy
from collections import defaultdict
from typing import Optional, List, Dict, Any

import pytest

from scene_pipeline.api.factory import ServiceClients
from scene_pipeline.context.scene_store import SQLiteSceneStore
from scene_pipeline.core.config import Config
from scene_pipeline.core.exceptions import SceneNotFoundError, ProviderError
from scene_pipeline.scene.models import (
    Scene,
    SceneStatus,
    KnowledgeNode,
    CompositeStep,
    StepType,
    ReferenceImage,
    StitchResult,
)
from scene_pipeline.workflow.generator import SceneGenerator


PASSING_ANSWER = "Yes, the location, character and prop are present and properly rendered."
FAILING_ANSWER = "No, the character is missing from the image."


# =============================================================================
# Fake Collaborators
# =============================================================================


class FakeSceneStore:
    """Scene store backed by a dict; records every status it is given."""

    def __init__(self, scenes: Optional[List[Scene]] = None, fail_writes: bool = False):
        self.scenes: Dict[str, Scene] = {s.scene_id: s for s in scenes or []}
        self.fail_writes = fail_writes
        self.status_history: Dict[str, List[SceneStatus]] = defaultdict(list)
        self.field_writes: List[Dict[str, Any]] = []
        self.final_videos: Dict[str, StitchResult] = {}

    async def fetch(self, scene_id: str) -> Scene:
        if scene_id not in self.scenes:
            raise SceneNotFoundError(scene_id)
        return copy.deepcopy(self.scenes[scene_id])

    async def update_status(self, scene_id: str, status: SceneStatus) -> None:
        await self.update_fields(scene_id, {"status": status})

    async def update_fields(self, scene_id: str, fields: Dict[str, Any]) -> None:
        if self.fail_writes:
            raise ConnectionError("scene store unavailable")
        self.field_writes.append({"scene_id": scene_id, **fields})
        if "status" in fields:
            self.status_history[scene_id].append(fields["status"])
        scene = self.scenes[scene_id]
        for key, value in fields.items():
            setattr(scene, key, value)

    async def completed_scenes(self, episode_id: str) -> List[Scene]:
        scenes = [
            copy.deepcopy(s) for s in self.scenes.values()
            if s.episode_id == episode_id and s.status == SceneStatus.COMPLETED
        ]
        return sorted(scenes, key=lambda s: s.scene_number)

    async def record_final_video(self, result: StitchResult) -> None:
        self.final_videos[result.episode_id] = result


class FakeKnowledgeGraph:
    """Knowledge graph over a fixed set of nodes."""

    def __init__(self, nodes: Optional[List[KnowledgeNode]] = None):
        self.nodes = {n.node_id: n for n in nodes or []}
        self.searches: List[Dict[str, Any]] = []

    async def get_node(self, node_id: str) -> Optional[KnowledgeNode]:
        return self.nodes.get(node_id)

    async def search(self, query, node_type, project_id=None, limit=5):
        self.searches.append({"query": query, "node_type": node_type, "project_id": project_id})
        matches = [
            n for n in self.nodes.values()
            if n.node_type == node_type and n.name.lower() == query.lower()
        ]
        return matches[:limit]


class FakeReasoner:
    """Returns queued responses in order, repeating the last one."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [{"score": 0.85, "issues": []}])
        self.queries: List[str] = []

    async def analyze(self, image_url: str, query: str) -> Dict[str, Any]:
        self.queries.append(query)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeVision:
    """Returns queued answers in order, repeating the last one."""

    def __init__(self, answers: Optional[List[Any]] = None):
        self.answers = list(answers or [PASSING_ANSWER])
        self.questions: List[str] = []

    async def ask(self, image_url: str, question: str) -> str:
        self.questions.append(question)
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeImageGenerator:
    """Hands out sequential image URLs and records every call."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, prompt, reference_images, edit_base_url=None) -> str:
        self.calls.append({
            "prompt": prompt,
            "reference_images": list(reference_images),
            "edit_base_url": edit_base_url,
        })
        if self.error:
            raise self.error
        return f"https://img.test/{len(self.calls)}.png"


class FakeVideoGenerator:
    def __init__(self, response: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, image_url, prompt, duration, fps, resolution, motion_strength):
        self.calls.append({
            "image_url": image_url,
            "prompt": prompt,
            "duration": duration,
            "fps": fps,
            "resolution": resolution,
            "motion_strength": motion_strength,
        })
        if self.error:
            raise self.error
        if self.response is not None:
            return self.response
        return {
            "video_url": f"https://video.test/{len(self.calls)}.mp4",
            "duration": duration,
            "fps": fps,
            "resolution": resolution,
        }


class FakeFrameExtractor:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def extract_frame(self, video_url: str, timestamp: float) -> str:
        self.calls.append({"video_url": video_url, "timestamp": timestamp})
        if self.error:
            raise self.error
        return f"https://frames.test/{len(self.calls)}.jpg"


class FakeVideoStitcher:
    def __init__(self, response: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.calls: List[List[Dict[str, Any]]] = []

    async def stitch(self, clips: List[Dict[str, Any]]) -> Dict[str, Any]:
        self.calls.append(list(clips))
        if self.error:
            raise self.error
        if self.response is not None:
            return self.response
        return {
            "video_url": f"https://video.test/episode-{len(self.calls)}.mp4",
            "duration": sum(clip["duration"] for clip in clips),
            "task_id": f"task-{len(self.calls)}",
        }


# =============================================================================
# Sample Data
# =============================================================================


def make_scene(scene_id: str = "scene-1", **kwargs) -> Scene:
    defaults = {
        "episode_id": "ep-1",
        "project_id": "proj-1",
        "scene_number": 1,
        "description": "Aiko waits in the rain",
        "location": "alley",
        "camera_angle": "front",
        "characters": ["aiko"],
        "props": [],
    }
    defaults.update(kwargs)
    return Scene(scene_id=scene_id, **defaults)


def make_step(step: int = 1, step_type: StepType = StepType.LOCATION, references: int = 1) -> CompositeStep:
    return CompositeStep(
        step=step,
        type=step_type,
        description=f"Add {step_type.value} {step}",
        prompt=f"Prompt for step {step}",
        references=tuple(
            ReferenceImage(url=f"https://ref.test/{step}-{i}.png", type=step_type.value)
            for i in range(references)
        ),
    )


@pytest.fixture
def knowledge_nodes() -> List[KnowledgeNode]:
    """A location, two characters and a prop."""
    return [
        KnowledgeNode(
            node_id="alley",
            node_type="location",
            name="Neon Alley",
            properties={"images": [{"url": "https://ref.test/alley.png"}]},
        ),
        KnowledgeNode(
            node_id="aiko",
            node_type="character",
            name="Aiko",
            properties={
                "profile360": {
                    "front": [{"url": "https://ref.test/aiko_front.png"}],
                    "three_quarter": [{"url": "https://ref.test/aiko_34.png"}],
                },
                "images": ["https://ref.test/aiko.png"],
            },
        ),
        KnowledgeNode(
            node_id="ren",
            node_type="character",
            name="Ren",
            properties={"profile360": {"front": ["https://ref.test/ren_front.png"]}},
        ),
        KnowledgeNode(
            node_id="umbrella",
            node_type="prop",
            name="Red Umbrella",
            properties={"images": ["https://ref.test/umbrella.png"]},
        ),
    ]


@pytest.fixture
def knowledge_graph(knowledge_nodes) -> FakeKnowledgeGraph:
    return FakeKnowledgeGraph(knowledge_nodes)


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def make_clients(knowledge_graph):
    """Build a ServiceClients bundle of fakes; keyword arguments override."""

    def _make(**overrides) -> ServiceClients:
        parts = {
            "scene_store": FakeSceneStore([make_scene()]),
            "knowledge_graph": knowledge_graph,
            "reasoner": FakeReasoner(),
            "image_generator": FakeImageGenerator(),
            "video_generator": FakeVideoGenerator(),
            "vision": FakeVision(),
            "frame_extractor": FakeFrameExtractor(),
            "video_stitcher": FakeVideoStitcher(),
        }
        parts.update(overrides)
        return ServiceClients(**parts)

    return _make


@pytest.fixture
def make_generator(make_clients, config):
    """Build a SceneGenerator over fakes; returns (generator, clients)."""

    def _make(**overrides):
        clients = make_clients(**overrides)
        return SceneGenerator.from_clients(clients, config), clients

    return _make


@pytest.fixture
def sqlite_store(tmp_path) -> SQLiteSceneStore:
    """SQLite scene store in a temporary directory."""
    return SQLiteSceneStore(tmp_path / "scenes.db")


@pytest.fixture
def provider_error() -> ProviderError:
    return ProviderError("fal.ai API error: 500", provider="fal.ai", status_code=500)
