"""
Workflow Module
===============

Scene generation: shot planning, composite building with verification,
video synthesis, orchestration and episode stitching.
"""

from .shot_planner import ShotPlanner, select_character_angle
from .verifier import Verifier, format_report
from .composite import CompositeEngine, get_composite_stats
from .video import VideoSynthesizer
from .generator import SceneGenerator
from .stitcher import EpisodeStitcher

__all__ = [
    "ShotPlanner",
    "select_character_angle",
    "Verifier",
    "format_report",
    "CompositeEngine",
    "get_composite_stats",
    "VideoSynthesizer",
    "SceneGenerator",
    "EpisodeStitcher",
]
