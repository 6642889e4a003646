"""Project records and delivery metadata persisted in SQLite."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Optional

from handoff.core.history import append_and_truncate, apply_current_updates
from handoff.core.models import ProjectInfo
from handoff.core.validation import validate_project_id

_SCHEMA_VERSION = 1


class ProjectMetadataStore:
    """SQLite-backed project lookup plus the delivery metadata blob.

    The metadata blob is only ever touched through :meth:`append_and_truncate`
    and :meth:`upsert_current`, so the run history could move to a real table
    without changing callers.
    """

    def __init__(self, path: Path, now_fn=None) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))
        self._logger = logging.getLogger(__name__)
        try:
            self._init_schema()
        except Exception:
            self._conn.close()
            raise

    def _now_iso(self) -> str:
        value = self._now_fn()
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

    def _init_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_metadata (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS projects (
                project_id TEXT PRIMARY KEY CHECK(length(project_id) > 0 AND length(project_id) <= 64),
                project_code TEXT NOT NULL,
                project_name TEXT NOT NULL,
                client_name TEXT,
                status TEXT NOT NULL,
                is_real INTEGER NOT NULL DEFAULT 1 CHECK(is_real IN (0, 1)),
                source_relpath TEXT,
                metadata TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        version = self._get_setting("schema_version")
        if version is None:
            self._set_setting("schema_version", str(_SCHEMA_VERSION))
        elif int(version) > _SCHEMA_VERSION:
            raise ValueError(
                f"DB schema {version} > supported {_SCHEMA_VERSION}. Please upgrade Handoff."
            )
        self._conn.commit()

    def _get_setting(self, key: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT value FROM schema_metadata WHERE key = ?",
            (key,),
        ).fetchone()
        return row[0] if row else None

    def _set_setting(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO schema_metadata (key, value) VALUES (?, ?)",
            (key, value),
        )

    def add_project(self, project: ProjectInfo) -> None:
        validate_project_id(project.project_id)
        now = self._now_iso()
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO projects (
                    project_id, project_code, project_name, client_name, status,
                    is_real, source_relpath, metadata, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, '{}', ?, ?)
                ON CONFLICT(project_id) DO UPDATE SET
                    project_code = excluded.project_code,
                    project_name = excluded.project_name,
                    client_name = excluded.client_name,
                    status = excluded.status,
                    is_real = excluded.is_real,
                    source_relpath = excluded.source_relpath,
                    updated_at = excluded.updated_at
                """,
                (
                    project.project_id,
                    project.project_code,
                    project.project_name,
                    project.client_name,
                    project.status,
                    1 if project.is_real else 0,
                    project.source_relpath,
                    now,
                    now,
                ),
            )
            self._conn.commit()

    def get_project(self, project_id: str) -> Optional[ProjectInfo]:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT project_id, project_code, project_name, client_name, status,
                       is_real, source_relpath
                FROM projects
                WHERE project_id = ?
                """,
                (project_id,),
            ).fetchone()
        if not row:
            return None
        return ProjectInfo(
            project_id=row[0],
            project_code=row[1],
            project_name=row[2],
            client_name=row[3],
            status=row[4],
            is_real=bool(row[5]),
            source_relpath=row[6],
        )

    def set_status(self, project_id: str, status: str) -> None:
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE projects SET status = ?, updated_at = ? WHERE project_id = ?",
                (status, self._now_iso(), project_id),
            )
            if cursor.rowcount == 0:
                raise ValueError(f"Unknown project: {project_id}")
            self._conn.commit()

    def get_metadata(self, project_id: str) -> dict:
        with self._lock:
            return self._read_metadata(project_id)

    def append_and_truncate(self, project_id: str, run: dict, max_entries: int) -> None:
        """Append one run to ``delivery.runs`` keeping the newest ``max_entries``."""
        with self._lock:
            metadata = self._read_metadata(project_id)
            delivery = metadata.setdefault("delivery", {})
            delivery["runs"] = append_and_truncate(delivery.get("runs") or [], run, max_entries)
            self._write_metadata(project_id, metadata)
        self._logger.debug("Appended delivery run for %s", project_id)

    def upsert_current(self, project_id: str, updates: dict, removals: tuple[str, ...] = ()) -> None:
        """Merge ``updates`` into ``delivery.current``; ``removals`` are dropped first."""
        with self._lock:
            metadata = self._read_metadata(project_id)
            delivery = metadata.setdefault("delivery", {})
            current = delivery.get("current") if isinstance(delivery.get("current"), dict) else {}
            delivery["current"] = apply_current_updates(current, updates, removals)
            self._write_metadata(project_id, metadata)
        self._logger.debug("Upserted delivery.current for %s (%d fields)", project_id, len(updates))

    def _read_metadata(self, project_id: str) -> dict:
        row = self._conn.execute(
            "SELECT metadata FROM projects WHERE project_id = ?",
            (project_id,),
        ).fetchone()
        if not row:
            raise ValueError(f"Unknown project: {project_id}")
        try:
            data = json.loads(row[0] or "{}")
        except ValueError as exc:
            raise ValueError(f"Corrupt metadata for {project_id}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Corrupt metadata for {project_id}: expected an object")
        return data

    def _write_metadata(self, project_id: str, metadata: dict) -> None:
        self._conn.execute(
            "UPDATE projects SET metadata = ?, updated_at = ? WHERE project_id = ?",
            (json.dumps(metadata, sort_keys=True), self._now_iso(), project_id),
        )
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()
