"""
Command-line interface for generating scenes.

Usage:
    scene-pipeline scene-001
    scene-pipeline scene-001 scene-002 scene-003 --chain
    scene-pipeline scene-001 scene-002 --parallel --max-concurrent 2
    scene-pipeline scene-001 --progress
    scene-pipeline scene-001 scene-002 --chain --stitch ep-01
    scene-pipeline --stitch ep-01
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional, List

from .api.factory import create_clients
from .core.config import Config
from .core.exceptions import PipelineError
from .workflow.composite import get_composite_stats
from .workflow.generator import SceneGenerator
from .workflow.stitcher import EpisodeStitcher


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Generate video scenes from stored scene descriptions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s scene-001
  %(prog)s scene-001 scene-002 scene-003 --chain
  %(prog)s scene-001 scene-002 --parallel --max-concurrent 2
  %(prog)s scene-001 --progress
  %(prog)s scene-001 scene-002 --chain --stitch ep-01
  %(prog)s --stitch ep-01
        """,
    )

    parser.add_argument(
        "scene_ids",
        nargs="*",
        help="Scene ID(s) to generate",
    )

    # Batch settings
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Generate scenes concurrently",
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        help="Concurrency limit for --parallel (default: from config)",
    )
    parser.add_argument(
        "--chain",
        action="store_true",
        help="Seed each scene with the previous scene's last frame",
    )
    parser.add_argument(
        "--stitch",
        metavar="EPISODE_ID",
        help="Stitch the episode's completed scenes into its final video",
    )

    # Inspection
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show progress of the given scenes instead of generating",
    )

    # Config
    parser.add_argument(
        "--config",
        help="Path to config file",
    )
    parser.add_argument(
        "--db",
        help="Path to scene database (overrides store.db_path)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    if not args.scene_ids and not args.stitch:
        parser.error("at least one scene ID (or --stitch) is required")
    if args.progress and not args.scene_ids:
        parser.error("--progress needs scene IDs")
    if args.chain and args.parallel:
        parser.error("--chain cannot be combined with --parallel")
    if args.max_concurrent is not None and args.max_concurrent < 1:
        parser.error("--max-concurrent must be >= 1")

    return args


async def show_progress(generator: SceneGenerator, scene_ids: List[str]) -> int:
    exit_code = 0
    for scene_id in scene_ids:
        try:
            progress = await generator.get_progress(scene_id)
        except PipelineError as e:
            print(f"{scene_id}: {e}")
            exit_code = 1
            continue

        line = f"{scene_id}: {progress.status.value} ({progress.progress}%) - {progress.current_step}"
        if progress.error:
            line += f" [error: {progress.error}]"
        print(line)
    return exit_code


async def stitch_episode(stitcher: EpisodeStitcher, episode_id: str) -> int:
    try:
        result = await stitcher.stitch_episode(episode_id)
    except PipelineError as e:
        print(f"Stitching {episode_id} failed: {e}")
        return 1

    print(f"Episode: {result.episode_id}")
    print(f"Final video: {result.video_url} ({result.duration:.1f}s, {len(result.scene_ids)} scene(s))")
    if result.skipped:
        print(f"Skipped (no video): {', '.join(result.skipped)}")
    return 0


async def generate_scenes(generator: SceneGenerator, args: argparse.Namespace) -> int:
    if not os.getenv("FAL_API_KEY"):
        print("Warning: FAL_API_KEY environment variable not set")

    print("=" * 50)
    print("Scene Generation Pipeline")
    print("=" * 50)

    result = await generator.generate_batch(
        args.scene_ids,
        parallel=args.parallel,
        max_concurrent=args.max_concurrent,
        chain=args.chain,
    )

    for scene in result.success:
        stats = get_composite_stats(scene.composite_iterations)
        print("\n" + "-" * 50)
        print(f"Scene: {scene.scene_id}")
        print(f"Status: {scene.status.value}")
        print(f"Composite: {scene.final_composite_url}")
        print(
            f"  {stats['total_iterations']} iteration(s), "
            f"{stats['total_retries']} retries, "
            f"average score {stats['average_score']:.2f}"
        )
        print(f"Video URL: {scene.video_url}")
        print(f"Last frame: {scene.last_frame_url or 'not available'}")

    for failure in result.failed:
        print("\n" + "-" * 50)
        print(f"Scene: {failure.scene_id}")
        print("Status: failed")
        print(f"Error: {failure.error}")

    print("=" * 50)
    print(f"{len(result.success)} succeeded, {len(result.failed)} failed")

    return 0 if not result.failed else 1


async def run(args: argparse.Namespace) -> int:
    """Run the CLI and return the exit code."""
    config = Config.load(args.config)
    if args.db:
        config.store.db_path = args.db

    clients = create_clients(config)
    generator = SceneGenerator.from_clients(clients, config)

    try:
        if args.progress:
            return await show_progress(generator, args.scene_ids)

        exit_code = 0
        if args.scene_ids:
            exit_code = await generate_scenes(generator, args)

        if args.stitch:
            print("\n" + "=" * 50)
            stitched = await stitch_episode(EpisodeStitcher.from_clients(clients), args.stitch)
            exit_code = exit_code or stitched

        return exit_code
    finally:
        await clients.aclose()


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        exit_code = asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nCancelled")
        sys.exit(130)
    except PipelineError as e:
        print(f"\nError: {e}")
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
