"""Delivery manifest: one durable JSON record per delivery attempt."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import json
import os
from pathlib import Path
from typing import Iterable, Optional
import uuid

from handoff.core.models import DeliverableFile, VersionPlan, format_utc
from handoff.provisioning.template import ProvisioningTokens

SCHEMA_VERSION = 2


@dataclass(frozen=True)
class DeliveryManifest:
    delivery_run_id: str
    created_at_utc: datetime
    project_id: str
    project_code: Optional[str]
    project_name: Optional[str]
    client_name: Optional[str]
    source_path: str
    stable_path: str
    version_path: str
    version_label: str
    retention_until_utc: datetime
    files: tuple[DeliverableFile, ...]
    api_stable_path: Optional[str] = None
    api_version_path: Optional[str] = None
    stable_share_url: Optional[str] = None
    schema_version: int = SCHEMA_VERSION

    @property
    def current_version(self) -> str:
        return self.version_label

    def to_dict(self) -> dict:
        return {
            "schemaVersion": self.schema_version,
            "deliveryRunId": self.delivery_run_id,
            "createdAtUtc": format_utc(self.created_at_utc),
            "projectId": self.project_id,
            "projectCode": self.project_code,
            "projectName": self.project_name,
            "clientName": self.client_name,
            "sourcePath": self.source_path,
            "stablePath": self.stable_path,
            "versionPath": self.version_path,
            "apiStablePath": self.api_stable_path,
            "apiVersionPath": self.api_version_path,
            "versionLabel": self.version_label,
            "currentVersion": self.current_version,
            "stableShareUrl": self.stable_share_url,
            "retentionUntilUtc": format_utc(self.retention_until_utc),
            "files": [item.summary().to_dict() for item in self.files],
        }


def build_manifest(
    *,
    project_id: str,
    tokens: ProvisioningTokens,
    source_path: str,
    stable_path: str,
    version_path: str,
    plan: VersionPlan,
    retention_until: datetime,
    files: Iterable[DeliverableFile],
    created_at: datetime,
    stable_share_url: Optional[str] = None,
    api_stable_path: Optional[str] = None,
    api_version_path: Optional[str] = None,
    run_id: Optional[str] = None,
) -> DeliveryManifest:
    return DeliveryManifest(
        delivery_run_id=run_id or str(uuid.uuid4()),
        created_at_utc=created_at,
        project_id=project_id,
        project_code=tokens.project_code,
        project_name=tokens.project_name,
        client_name=tokens.client_name,
        source_path=source_path,
        stable_path=stable_path,
        version_path=version_path,
        version_label=plan.version_label,
        retention_until_utc=retention_until,
        files=tuple(files),
        api_stable_path=api_stable_path,
        api_version_path=api_version_path,
        stable_share_url=stable_share_url,
    )


def serialize_manifest(manifest: DeliveryManifest) -> bytes:
    return json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")


def write_manifest(path: Path, manifest: DeliveryManifest) -> None:
    """Write atomically so a crash never leaves a truncated manifest behind."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(path.name + ".tmp")
    temp_path.write_bytes(serialize_manifest(manifest))
    os.replace(temp_path, path)
