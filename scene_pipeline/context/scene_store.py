"""
Scene Store
===========

SQLite-backed persistence for scene records. Status and result fields are
written between pipeline phases so progress survives a process restart.
"""

import asyncio
import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

from ..core.exceptions import SceneNotFoundError
from ..scene.models import Scene, SceneStatus, CompositeIteration, DialogueLine, StitchResult

logger = logging.getLogger(__name__)


# Columns stored as JSON text
_JSON_COLUMNS = {"characters", "props", "dialogue", "composite_iterations"}

# Fields the pipeline is allowed to write through update_fields()
WRITABLE_FIELDS = {
    "status",
    "composite_iterations",
    "final_composite_url",
    "video_url",
    "video_duration",
    "last_frame_url",
    "error",
}


class SQLiteSceneStore:
    """
    Scene records in a local SQLite database.

    Provides:
    - fetch / update_status / update_fields for the orchestrator
    - completed_scenes / record_final_video for episode stitching
    - save_scene / list_scenes / get_final_video for authoring and inspection
    """

    def __init__(self, db_path: Union[str, Path] = "./output/scenes.db"):
        """
        Initialize the scene store.

        Args:
            db_path: Path to SQLite database
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS scenes (
                    scene_id TEXT PRIMARY KEY,
                    episode_id TEXT,
                    project_id TEXT,
                    scene_number INTEGER,
                    description TEXT,
                    location TEXT,
                    time_of_day TEXT,
                    camera_angle TEXT,
                    characters TEXT,
                    props TEXT,
                    dialogue TEXT,
                    status TEXT,
                    composite_iterations TEXT,
                    final_composite_url TEXT,
                    video_url TEXT,
                    video_duration REAL,
                    last_frame_url TEXT,
                    error TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_scenes_episode
                ON scenes(episode_id)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_scenes_status
                ON scenes(status)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS final_videos (
                    episode_id TEXT PRIMARY KEY,
                    video_url TEXT,
                    duration REAL,
                    scene_ids TEXT,
                    skipped TEXT,
                    task_id TEXT,
                    created_at TEXT
                )
            """)
            conn.commit()
        finally:
            conn.close()

        logger.info(f"Initialized scene store at {self.db_path}")

    # -------------------------------------------------------------------------
    # Pipeline Contract
    # -------------------------------------------------------------------------

    # Async methods run their sqlite3 calls in a worker thread

    async def fetch(self, scene_id: str) -> Scene:
        """Fetch a scene, raising SceneNotFoundError if it does not exist."""
        scene = await asyncio.to_thread(self.get_scene, scene_id)
        if scene is None:
            raise SceneNotFoundError(scene_id)
        return scene

    async def update_status(self, scene_id: str, status: SceneStatus) -> None:
        """Set the scene's status."""
        await self.update_fields(scene_id, {"status": status})

    async def update_fields(self, scene_id: str, fields: Dict[str, Any]) -> None:
        """
        Write a subset of result fields.

        Raises:
            ValueError: If a field is not writable by the pipeline
            SceneNotFoundError: If the scene does not exist
        """
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not writable: {', '.join(sorted(unknown))}")
        if not fields:
            return

        await asyncio.to_thread(self._write_fields, scene_id, fields)
        logger.debug(f"Updated scene {scene_id}: {', '.join(fields)}")

    async def completed_scenes(self, episode_id: str) -> List[Scene]:
        """An episode's completed scenes in scene-number order."""
        return await asyncio.to_thread(self.list_scenes, episode_id, SceneStatus.COMPLETED)

    async def record_final_video(self, result: StitchResult) -> None:
        """Store (or replace) an episode's stitched video."""
        await asyncio.to_thread(self._write_final_video, result)

    def _write_fields(self, scene_id: str, fields: Dict[str, Any]) -> None:
        columns = []
        values = []
        for key, value in fields.items():
            columns.append(f"{key} = ?")
            values.append(self._encode(key, value))

        columns.append("updated_at = ?")
        values.append(datetime.now().isoformat())
        values.append(scene_id)

        conn = self._connect()
        try:
            cursor = conn.execute(
                f"UPDATE scenes SET {', '.join(columns)} WHERE scene_id = ?",
                values,
            )
            conn.commit()
            updated = cursor.rowcount
        finally:
            conn.close()

        if updated == 0:
            raise SceneNotFoundError(scene_id)

    def _write_final_video(self, result: StitchResult) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO final_videos "
                "(episode_id, video_url, duration, scene_ids, skipped, task_id, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    result.episode_id,
                    result.video_url,
                    result.duration,
                    json.dumps(result.scene_ids),
                    json.dumps(result.skipped),
                    result.task_id,
                    result.created_at.isoformat(),
                ),
            )
            conn.commit()
        finally:
            conn.close()

        logger.info(f"Recorded final video for episode {result.episode_id}: {result.video_url}")

    # -------------------------------------------------------------------------
    # Authoring & Inspection
    # -------------------------------------------------------------------------

    def save_scene(self, scene: Scene) -> None:
        """Insert or replace a full scene record."""
        data = scene.to_dict()
        columns = list(data.keys())
        values = [self._encode(key, data[key]) for key in columns]

        conn = self._connect()
        try:
            conn.execute(
                f"INSERT OR REPLACE INTO scenes ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                values,
            )
            conn.commit()
        finally:
            conn.close()

    def get_scene(self, scene_id: str) -> Optional[Scene]:
        """Get a scene by ID."""
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM scenes WHERE scene_id = ?", (scene_id,)
            ).fetchone()
        finally:
            conn.close()

        return self._row_to_scene(dict(row)) if row else None

    def list_scenes(
        self,
        episode_id: Optional[str] = None,
        status: Optional[SceneStatus] = None,
    ) -> List[Scene]:
        """List scenes ordered by scene number, optionally filtered."""
        query = "SELECT * FROM scenes"
        conditions = []
        params: List[Any] = []

        if episode_id:
            conditions.append("episode_id = ?")
            params.append(episode_id)
        if status:
            conditions.append("status = ?")
            params.append(status.value)

        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY scene_number"

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()

        return [self._row_to_scene(dict(row)) for row in rows]

    def get_final_video(self, episode_id: str) -> Optional[StitchResult]:
        """Get an episode's stitched video, if one was recorded."""
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM final_videos WHERE episode_id = ?", (episode_id,)
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        data = dict(row)
        data["scene_ids"] = json.loads(data.get("scene_ids") or "[]")
        data["skipped"] = json.loads(data.get("skipped") or "[]")
        return StitchResult.from_dict(data)

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------

    @staticmethod
    def _encode(key: str, value: Any) -> Any:
        """Convert a model value into a column value."""
        if isinstance(value, SceneStatus):
            return value.value
        if isinstance(value, datetime):
            return value.isoformat()
        if key in _JSON_COLUMNS:
            items = []
            for item in value or []:
                if isinstance(item, (CompositeIteration, DialogueLine)):
                    item = item.to_dict()
                items.append(item)
            return json.dumps(items)
        return value

    @staticmethod
    def _row_to_scene(row: Dict[str, Any]) -> Scene:
        """Convert database row to Scene object."""
        for key in _JSON_COLUMNS:
            row[key] = json.loads(row.get(key) or "[]")
        return Scene.from_dict(row)
