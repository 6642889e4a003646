"""Persist delivery manifests and the per-project run history."""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from typing import Callable, Optional, Protocol

from handoff.core.history import current_projection_updates
from handoff.core.manifest import DeliveryManifest, serialize_manifest, write_manifest
from handoff.core.models import DeliveryRunResult, utc_now
from handoff.core.paths import local_manifest_path, remote_manifest_path

logger = logging.getLogger(__name__)


class MetadataStore(Protocol):
    def get_metadata(self, project_id: str) -> dict:
        ...

    def append_and_truncate(self, project_id: str, run: dict, max_entries: int) -> None:
        ...

    def upsert_current(self, project_id: str, updates: dict, removals: tuple[str, ...] = ()) -> None:
        ...


class ManifestUploader(Protocol):
    def upload_bytes(self, token: str, path: str, data: bytes):
        ...


class ManifestRecorder:
    def __init__(
        self,
        store: MetadataStore,
        *,
        max_history_runs: int = 10,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._max_history_runs = max_history_runs
        self._now_fn = now_fn or utc_now

    def write_local(self, container_root: Path, manifest: DeliveryManifest) -> Path:
        path = local_manifest_path(container_root)
        write_manifest(path, manifest)
        logger.debug("Delivery manifest written to %s", path)
        return path

    def upload_remote(
        self,
        uploader: ManifestUploader,
        token: str,
        container_root: str,
        manifest: DeliveryManifest,
    ) -> str:
        path = remote_manifest_path(container_root)
        uploader.upload_bytes(token, path, serialize_manifest(manifest))
        logger.debug("Delivery manifest uploaded to %s", path)
        return path

    def record_run(self, run: DeliveryRunResult) -> None:
        """Append the run to history, then upsert the ``current`` projection."""
        self._store.append_and_truncate(run.project_id, run.to_dict(), self._max_history_runs)
        updates, removals = current_projection_updates(run, self._now_fn())
        if updates or removals:
            self._store.upsert_current(run.project_id, updates, removals)
