"""Apply and verify folder templates on the local filesystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import json
import logging
from pathlib import Path
from typing import Callable, Optional

from handoff.core.models import ProvisioningSummary, format_utc, utc_now
from handoff.core.paths import FOLDER_MANIFEST_NAME, local_manifest_path
from handoff.provisioning.template import (
    FolderPlan,
    FolderTemplate,
    NodeKind,
    PlanItem,
    ProvisioningTokens,
    plan_template,
)

logger = logging.getLogger(__name__)


@dataclass
class ProvisioningResult:
    mode: str
    template_key: str
    target_root: str
    manifest_path: Optional[str] = None
    created_items: list[PlanItem] = field(default_factory=list)
    missing_required: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors and not self.missing_required

    def summary(self) -> ProvisioningSummary:
        return ProvisioningSummary(
            mode=self.mode,
            template_key=self.template_key,
            target_root=self.target_root,
            manifest_path=self.manifest_path,
            success=self.success,
            missing_required=tuple(self.missing_required),
            errors=tuple(self.errors),
            warnings=tuple(self.warnings),
        )


@dataclass(frozen=True)
class ContainerManifest:
    """Template expansion against a remote container root; no I/O involved."""

    template_key: str
    folder_paths: tuple[str, ...]
    manifest_bytes: bytes


def build_manifest_payload(
    template: FolderTemplate,
    plan: FolderPlan,
    tokens: ProvisioningTokens,
    *,
    run_mode: str,
    target_root: str,
    timestamp: datetime,
    result: Optional[ProvisioningResult] = None,
) -> dict:
    return {
        "templateKey": template.template_key,
        "templateHash": template.template_hash,
        "runMode": run_mode,
        "timestampUtc": format_utc(timestamp),
        "tokens": tokens.to_dict(),
        "targetRoot": target_root,
        "expectedItems": [_manifest_item(item) for item in plan.items],
        "createdItems": [_manifest_item(item) for item in (result.created_items if result else [])],
        "missingRequired": list(result.missing_required) if result else [],
        "warnings": list(result.warnings) if result else [],
        "errors": list(result.errors) if result else [],
    }


def serialize_manifest(payload: dict) -> bytes:
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def _manifest_item(item: PlanItem) -> dict:
    return {"path": item.relative_path, "kind": item.kind.value, "optional": item.optional}


class FolderProvisioner:
    """Materializes a :class:`FolderTemplate` under a base path."""

    def __init__(self, template: FolderTemplate, now_fn: Optional[Callable[[], datetime]] = None) -> None:
        self.template = template
        self._now_fn = now_fn or utc_now

    def project_folder_name(self, tokens: ProvisioningTokens) -> str:
        return plan_template(self.template, tokens).root_name

    def apply(self, base_path: Path, tokens: ProvisioningTokens) -> ProvisioningResult:
        plan = plan_template(self.template, tokens)
        target_root = base_path / plan.root_name
        result = ProvisioningResult("apply", self.template.template_key, str(target_root))

        target_root.mkdir(parents=True, exist_ok=True)
        for item in plan.items:
            path = target_root / item.relative_path
            if item.kind == NodeKind.FOLDER:
                if not path.is_dir():
                    path.mkdir(parents=True, exist_ok=True)
                    result.created_items.append(item)
                continue
            if path.exists():
                continue
            if not path.parent.is_dir():
                result.errors.append(f"Missing parent directory for {item.relative_path}.")
                continue
            path.touch()
            result.created_items.append(item)

        self._write_manifest(target_root, plan, tokens, result)
        logger.debug("Applied template %s at %s (%d created)", self.template.template_key, target_root, len(result.created_items))
        return result

    def verify(self, base_path: Path, tokens: ProvisioningTokens) -> ProvisioningResult:
        plan = plan_template(self.template, tokens)
        target_root = base_path / plan.root_name
        result = ProvisioningResult("verify", self.template.template_key, str(target_root))
        for item in plan.items:
            if item.optional:
                continue
            path = target_root / item.relative_path
            exists = path.is_dir() if item.kind == NodeKind.FOLDER else path.is_file()
            if not exists:
                result.missing_required.append(item.relative_path)
        if result.missing_required:
            logger.info("Template verify found %d missing items under %s", len(result.missing_required), target_root)
        manifest = local_manifest_path(target_root, FOLDER_MANIFEST_NAME)
        result.manifest_path = str(manifest) if manifest.is_file() else None
        return result

    def container_manifest(self, tokens: ProvisioningTokens, target_root: str) -> ContainerManifest:
        plan = plan_template(self.template, tokens)
        payload = build_manifest_payload(
            self.template,
            plan,
            tokens,
            run_mode="api",
            target_root=target_root,
            timestamp=self._now_fn(),
        )
        folders = []
        seen = set()
        for path in plan.folder_paths():
            key = path.casefold()
            if key in seen:
                continue
            seen.add(key)
            folders.append(path)
        return ContainerManifest(
            template_key=self.template.template_key,
            folder_paths=tuple(folders),
            manifest_bytes=serialize_manifest(payload),
        )

    def _write_manifest(
        self,
        target_root: Path,
        plan: FolderPlan,
        tokens: ProvisioningTokens,
        result: ProvisioningResult,
    ) -> None:
        manifest = local_manifest_path(target_root, FOLDER_MANIFEST_NAME)
        try:
            manifest.parent.mkdir(parents=True, exist_ok=True)
            payload = build_manifest_payload(
                self.template,
                plan,
                tokens,
                run_mode=result.mode,
                target_root=str(target_root),
                timestamp=self._now_fn(),
                result=result,
            )
            manifest.write_bytes(serialize_manifest(payload))
            result.manifest_path = str(manifest)
        except OSError as exc:
            result.warnings.append(f"Provisioning manifest not written: {exc}")
