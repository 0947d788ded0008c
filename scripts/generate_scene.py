#!/usr/bin/env python3
"""
CLI Script: Generate Scene
==========================

Command-line tool for generating one or more stored scenes.

Usage:
    python scripts/generate_scene.py scene-001
    python scripts/generate_scene.py scene-001 scene-002 --chain
    python scripts/generate_scene.py scene-001 scene-002 --parallel --max-concurrent 2
"""

from scene_pipeline.cli import main


if __name__ == "__main__":
    main()
