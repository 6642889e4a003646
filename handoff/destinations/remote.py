"""Remote-API destination: create Dropbox folders and upload files and manifests."""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from typing import Callable, Optional, Protocol

from handoff.core.manifest import build_manifest
from handoff.core.models import (
    DESTINATION_DOMAIN,
    DeliverableFile,
    DeliveryShareOutcome,
    DomainResult,
    ProvisioningSummary,
    RootState,
    ShareStatus,
    add_months,
    utc_now,
)
from handoff.core.paths import (
    DELIVERABLES_SUFFIX,
    FOLDER_MANIFEST_NAME,
    combine_remote_path,
    local_container_root,
    local_stable_root,
    remote_manifest_path,
)
from handoff.core.share_links import AccessTokenProvider, ShareLinkManager
from handoff.core.validation import ensure_safe_segment
from handoff.core.versioning import plan_from_history
from handoff.destinations.base import DeliveryContext, DestinationOutcome, terminal_outcome
from handoff.errors import DeliveryCancelled
from handoff.provisioning.provisioner import FolderProvisioner
from handoff.services.recorder import ManifestRecorder
from handoff.settings import DeliverySettings

logger = logging.getLogger(__name__)


class RemoteFilesClient(Protocol):
    def ensure_folder(self, token: str, path: str) -> None:
        ...

    def upload_file(self, token: str, path: str, source_path: Path):
        ...

    def upload_bytes(self, token: str, path: str, data: bytes):
        ...


def delivery_folder_list(container_root: str, template_folders, version_path: str) -> list[str]:
    """Container root, version folder and template folders; shortest path first."""
    folders: dict[str, str] = {}
    for path in [container_root, version_path] + [
        combine_remote_path(container_root, relpath) for relpath in template_folders if relpath
    ]:
        folders.setdefault(path.casefold(), path)
    return sorted(folders.values(), key=lambda path: (len(path), path))


def upload_parent_folders(version_path: str, files: tuple[DeliverableFile, ...]) -> list[str]:
    folders: dict[str, str] = {}
    for item in files:
        parent = item.relative_path.replace("\\", "/").rpartition("/")[0]
        if not parent:
            continue
        path = combine_remote_path(version_path, parent)
        folders.setdefault(path.casefold(), path)
    return sorted(folders.values(), key=lambda path: (len(path), path))


class RemoteApiDestination:
    """Delivers through the Dropbox API.

    There is no rollback: files already uploaded stay uploaded when a later
    step fails. Uploads overwrite by path, so re-running an unchanged file set
    is wasteful but converges on the same tree.
    """

    mode = "api"

    def __init__(
        self,
        settings: DeliverySettings,
        *,
        files_client: RemoteFilesClient,
        token_provider: AccessTokenProvider,
        provisioner: FolderProvisioner,
        share_links: ShareLinkManager,
        recorder: ManifestRecorder,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings
        self._files = files_client
        self._token_provider = token_provider
        self._provisioner = provisioner
        self._share_links = share_links
        self._recorder = recorder
        self._now_fn = now_fn or utc_now

    def deliver(self, context: DeliveryContext) -> DestinationOutcome:
        api_root = (self._settings.dropbox_api_root or "").strip().strip("/")
        if not api_root:
            return terminal_outcome(
                context, RootState.BLOCKED_API_ROOT_MISSING, "Dropbox API root folder not configured."
            )
        root_path = "/" + api_root

        notes: list[str] = []
        try:
            token_result = self._token_provider.get_access_token()
            token = getattr(token_result, "access_token", None)
            if not token or not token.strip():
                error = getattr(token_result, "error", None) or "Dropbox access token not configured."
                return terminal_outcome(
                    context,
                    RootState.BLOCKED_DROPBOX_AUTH,
                    error,
                    root_path=root_path,
                    share=DeliveryShareOutcome(status=ShareStatus.FAILED, error=error),
                )
            return self._deliver(context, api_root, root_path, token, notes)
        except DeliveryCancelled:
            raise
        except Exception as exc:
            logger.warning("Remote delivery failed for %s: %s", context.project.project_id, exc)
            notes.insert(0, str(exc))
            return DestinationOutcome(
                domain=DomainResult(
                    domain_key=DESTINATION_DOMAIN,
                    root_path="",
                    root_state=RootState.DELIVERY_FAILED,
                    deliverables=tuple(item.summary() for item in context.files),
                    notes=tuple(notes),
                ),
                share=DeliveryShareOutcome(status=ShareStatus.FAILED, error=str(exc)),
            )

    def _deliver(
        self,
        context: DeliveryContext,
        api_root: str,
        root_path: str,
        token: str,
        notes: list[str],
    ) -> DestinationOutcome:
        settings = self._settings
        client_folder = ensure_safe_segment(context.client_folder, "client folder name")
        project_folder = self._provisioner.project_folder_name(context.tokens)
        if not settings.dropbox_delivery_relpath:
            raise ValueError("Dropbox delivery root relpath is required.")

        local_stable = None
        if settings.dropbox_root is not None:
            local_stable = str(
                local_stable_root(
                    local_container_root(
                        settings.dropbox_root,
                        settings.dropbox_delivery_relpath,
                        client_folder,
                        project_folder,
                        test_mode=context.request.test_mode,
                    )
                )
            )

        container_root = combine_remote_path(api_root, settings.dropbox_delivery_relpath, client_folder, project_folder)
        api_stable_path = combine_remote_path(container_root, *DELIVERABLES_SUFFIX)
        plan = plan_from_history(api_stable_path, context.history, context.files)
        api_version_path = plan.version_root

        notes.append(
            f"Created new delivery version {plan.version_label}."
            if plan.is_new_version
            else f"Reusing existing delivery version {plan.version_label}."
        )

        container = self._provisioner.container_manifest(context.tokens, container_root)
        for folder in delivery_folder_list(container_root, container.folder_paths, api_version_path):
            context.check_cancelled()
            self._files.ensure_folder(token, folder)
        for folder in upload_parent_folders(api_version_path, context.files):
            self._files.ensure_folder(token, folder)

        if plan.is_new_version:
            for item in context.files:
                context.check_cancelled()
                self._files.upload_file(token, combine_remote_path(api_version_path, item.relative_path), item.source_path)
            logger.info("Uploaded %d files to %s", len(context.files), api_version_path)

        folder_manifest_path = remote_manifest_path(container_root, FOLDER_MANIFEST_NAME)
        self._files.upload_bytes(token, folder_manifest_path, container.manifest_bytes)

        now = self._now_fn()
        retention_until = add_months(now, settings.retention_months)
        share = self._share_links.ensure(
            api_stable_path,
            context.share_state,
            refresh_requested=context.request.refresh_share_link,
            test_mode=context.request.test_mode,
        )
        if share.error:
            notes.append(share.error)

        destination_path = local_stable or api_stable_path
        manifest = build_manifest(
            project_id=context.project.project_id,
            tokens=context.tokens,
            source_path=str(context.source_path),
            stable_path=destination_path,
            version_path=api_version_path,
            plan=plan,
            retention_until=retention_until,
            files=context.files,
            created_at=now,
            stable_share_url=share.url if share.succeeded else None,
            api_stable_path=api_stable_path,
            api_version_path=api_version_path,
            run_id=context.run_id,
        )
        self._recorder.upload_remote(self._files, token, container_root, manifest)

        provisioning = ProvisioningSummary(
            mode="api",
            template_key=container.template_key,
            target_root=container_root,
            manifest_path=folder_manifest_path,
        )
        state = RootState.DELIVERED if plan.is_new_version else RootState.DELIVERED_NOOP
        return DestinationOutcome(
            domain=DomainResult(
                domain_key=DESTINATION_DOMAIN,
                root_path=str(settings.dropbox_root) if settings.dropbox_root else root_path,
                root_state=state,
                provisioning=provisioning,
                deliverables=tuple(item.summary() for item in context.files),
                version_label=plan.version_label,
                destination_path=destination_path,
                notes=tuple(notes),
            ),
            destination_path=destination_path,
            api_stable_path=api_stable_path,
            api_version_path=api_version_path,
            version_label=plan.version_label,
            retention_until=retention_until,
            share=share,
        )

