"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable

import pytest

from handoff.core.models import ProjectInfo
from handoff.infrastructure.metadata_store import ProjectMetadataStore
from handoff.settings import DeliverySettings
from tests.helpers.fs import NOW


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def now_fn() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def roots(tmp_path: Path) -> tuple[Path, Path]:
    """Create and return ``(source_root, dropbox_root)``."""
    source_root = tmp_path / "lucidlink"
    dropbox_root = tmp_path / "Dropbox"
    source_root.mkdir()
    dropbox_root.mkdir()
    return source_root, dropbox_root


@pytest.fixture
def local_settings(roots: tuple[Path, Path]) -> DeliverySettings:
    source_root, dropbox_root = roots
    return DeliverySettings(
        source_root=source_root,
        dropbox_root=dropbox_root,
        dropbox_delivery_relpath="04_Client_Deliveries",
    )


@pytest.fixture
def store(tmp_path: Path, now_fn) -> ProjectMetadataStore:
    db = ProjectMetadataStore(tmp_path / "projects.db", now_fn=now_fn)
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def project() -> ProjectInfo:
    return ProjectInfo(
        project_id="prj_0001",
        project_code="MGF25-0001",
        project_name="Spring Campaign",
        client_name="Acme",
        source_relpath="02_Projects_Active/MGF25-0001_Spring Campaign",
    )
