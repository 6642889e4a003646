"""Local-filesystem destination: provision the container and copy versioned files."""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
import shutil
from typing import Callable, Optional

from handoff.core.manifest import build_manifest
from handoff.core.models import DESTINATION_DOMAIN, DomainResult, RootState, VersionPlan, add_months, utc_now
from handoff.core.paths import (
    api_path_from_local_root,
    local_container_root,
    local_stable_root,
)
from handoff.core.share_links import ShareLinkManager
from handoff.core.validation import ensure_safe_segment, is_within
from handoff.core.versioning import plan_from_filesystem
from handoff.destinations.base import DeliveryContext, DestinationOutcome, terminal_outcome
from handoff.destinations.cleanup import delete_with_retry, validate_test_cleanup
from handoff.errors import PathSafetyError
from handoff.infrastructure.scanner import DeliverableScanner
from handoff.provisioning.provisioner import FolderProvisioner
from handoff.services.recorder import ManifestRecorder
from handoff.settings import DeliverySettings

logger = logging.getLogger(__name__)

LEGACY_FILES_NOTE = "Legacy files detected directly under Final; no automatic normalization performed."
VERIFY_FAILED_NOTE = "Delivery container verify failed."


class LocalDestination:
    """Copies deliverables into ``<container>/01_Deliverables/Final/vN``.

    Copies are skip-if-exists, which is what makes a retry after a partial copy
    converge instead of duplicating work.
    """

    mode = "local"

    def __init__(
        self,
        settings: DeliverySettings,
        *,
        provisioner: FolderProvisioner,
        scanner: DeliverableScanner,
        share_links: ShareLinkManager,
        recorder: ManifestRecorder,
        delete_fn: Optional[Callable[[Path], None]] = None,
        sleep_fn: Optional[Callable[[float], None]] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings
        self._provisioner = provisioner
        self._scanner = scanner
        self._share_links = share_links
        self._recorder = recorder
        self._delete_fn = delete_fn
        self._sleep_fn = sleep_fn
        self._now_fn = now_fn or utc_now

    def deliver(self, context: DeliveryContext) -> DestinationOutcome:
        root = self._settings.dropbox_root
        if root is None:
            return terminal_outcome(context, RootState.SKIPPED_UNCONFIGURED, "Dropbox root not configured.")
        root_path = str(root)
        if not root.is_dir():
            return terminal_outcome(
                context, RootState.BLOCKED_MISSING_ROOT, "Dropbox root missing.", root_path=root_path
            )

        try:
            client_folder = ensure_safe_segment(context.client_folder, "client folder name")
            project_folder = self._provisioner.project_folder_name(context.tokens)
        except (PathSafetyError, ValueError) as exc:
            return terminal_outcome(context, RootState.BLOCKED_INVALID_CONTAINER, str(exc), root_path=root_path)

        target = local_container_root(
            root,
            self._settings.dropbox_delivery_relpath,
            client_folder,
            project_folder,
            test_mode=context.request.test_mode,
        )
        base_path = target.parent
        target_str = str(target)

        if context.request.test_mode and context.request.allow_test_cleanup and target.exists():
            error = validate_test_cleanup(root, target, context.request.allow_test_cleanup)
            if error:
                return terminal_outcome(
                    context, RootState.BLOCKED_TEST_CLEANUP, error, root_path=root_path, destination_path=target_str
                )
            cleanup = delete_with_retry(target, delete_fn=self._delete_fn, sleep_fn=self._sleep_fn)
            if not cleanup.success:
                return terminal_outcome(
                    context,
                    RootState.CLEANUP_LOCKED,
                    cleanup.error or "Test cleanup failed (locked; cleanup skipped).",
                    root_path=root_path,
                    destination_path=target_str,
                )

        context.check_cancelled()
        try:
            self._provisioner.apply(base_path, context.tokens)
            verify = self._provisioner.verify(base_path, context.tokens)
        except OSError as exc:
            logger.warning("Delivery container provisioning failed at %s: %s", target, exc)
            return terminal_outcome(
                context,
                RootState.CONTAINER_VERIFY_FAILED,
                VERIFY_FAILED_NOTE,
                root_path=root_path,
                destination_path=target_str,
                notes=(str(exc),),
            )
        if not verify.success:
            return terminal_outcome(
                context,
                RootState.CONTAINER_VERIFY_FAILED,
                VERIFY_FAILED_NOTE,
                root_path=root_path,
                destination_path=target_str,
                provisioning=verify.summary(),
            )

        stable_root = local_stable_root(target)
        stable_root.mkdir(parents=True, exist_ok=True)
        plan = plan_from_filesystem(stable_root, context.files, self._scanner)

        notes = [
            f"Created new delivery version {plan.version_label}."
            if plan.is_new_version
            else f"Reusing existing delivery version {plan.version_label}."
        ]
        if plan.legacy_files_detected:
            notes.append(LEGACY_FILES_NOTE)

        if plan.is_new_version:
            self._copy_files(context, plan)

        now = self._now_fn()
        retention_until = add_months(now, self._settings.retention_months)
        share = self._share_links.ensure(
            str(stable_root),
            context.share_state,
            refresh_requested=context.request.refresh_share_link,
            test_mode=context.request.test_mode,
            resolve_api_path=self._share_path,
        )
        if share.error:
            notes.append(share.error)

        manifest = build_manifest(
            project_id=context.project.project_id,
            tokens=context.tokens,
            source_path=str(context.source_path),
            stable_path=plan.stable_root,
            version_path=plan.version_root,
            plan=plan,
            retention_until=retention_until,
            files=context.files,
            created_at=now,
            stable_share_url=share.url if share.succeeded else None,
            run_id=context.run_id,
        )
        self._recorder.write_local(target, manifest)

        state = RootState.DELIVERED if plan.is_new_version else RootState.DELIVERED_NOOP
        return DestinationOutcome(
            domain=DomainResult(
                domain_key=DESTINATION_DOMAIN,
                root_path=root_path,
                root_state=state,
                provisioning=verify.summary(),
                deliverables=tuple(item.summary() for item in context.files),
                version_label=plan.version_label,
                destination_path=plan.stable_root,
                notes=tuple(notes),
            ),
            destination_path=plan.stable_root,
            version_label=plan.version_label,
            retention_until=retention_until,
            share=share,
        )

    def _copy_files(self, context: DeliveryContext, plan: VersionPlan) -> None:
        version_root = Path(plan.version_root)
        version_root.mkdir(parents=True, exist_ok=True)
        copied = 0
        for item in context.files:
            context.check_cancelled()
            destination = version_root / item.relative_path
            if destination.exists():
                continue
            destination.parent.mkdir(parents=True, exist_ok=True)
            # copy2 keeps mtime so the next attempt fingerprints this version as identical
            shutil.copy2(item.source_path, destination)
            copied += 1
        logger.info("Copied %d of %d files into %s", copied, len(context.files), version_root)

    def _share_path(self, stable_path: str) -> str:
        root = self._settings.dropbox_root
        if root is None:
            raise ValueError("Dropbox root not configured; cannot create share link.")
        if not is_within(root, Path(stable_path)):
            logger.warning("Dropbox stable path %s is outside the local sync root %s", stable_path, root)
        return api_path_from_local_root(root, Path(stable_path))
