"""Application bootstrap with dependency injection."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from .core.models import utc_now
from .core.orchestrator import DeliveryOrchestrator
from .core.share_links import ShareLinkManager
from .destinations.base import DestinationStrategy
from .destinations.local import LocalDestination
from .destinations.remote import RemoteApiDestination
from .infrastructure.metadata_store import ProjectMetadataStore
from .infrastructure.scanner import DeliverableScanner
from .infrastructure.source_resolver import SourceResolver
from .providers import DropboxAccessTokenProvider, DropboxFilesClient, DropboxShareLinkClient
from .provisioning.provisioner import FolderProvisioner
from .provisioning.template import load_template
from .services.email import DeliveryEmailService, EmailSender, SmtpEmailSender
from .services.recorder import ManifestRecorder
from .settings import DeliverySettings


def select_strategy(
    settings: DeliverySettings,
    *,
    provisioner: FolderProvisioner,
    scanner: DeliverableScanner,
    share_links: ShareLinkManager,
    recorder: ManifestRecorder,
    files_client: DropboxFilesClient,
    token_provider: DropboxAccessTokenProvider,
    now_fn: Callable[[], datetime],
) -> DestinationStrategy:
    """Pick the destination strategy once per process from ``use_api_root``."""
    if settings.use_api_root:
        return RemoteApiDestination(
            settings,
            files_client=files_client,
            token_provider=token_provider,
            provisioner=provisioner,
            share_links=share_links,
            recorder=recorder,
            now_fn=now_fn,
        )
    return LocalDestination(
        settings,
        provisioner=provisioner,
        scanner=scanner,
        share_links=share_links,
        recorder=recorder,
        now_fn=now_fn,
    )


class DeliveryApp:
    """Wires settings, store, Dropbox clients and the orchestrator together."""

    def __init__(
        self,
        settings: DeliverySettings,
        store: ProjectMetadataStore,
        *,
        files_client: Optional[DropboxFilesClient] = None,
        share_client: Optional[DropboxShareLinkClient] = None,
        token_provider: Optional[DropboxAccessTokenProvider] = None,
        email_sender: Optional[EmailSender] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        now_fn = now_fn or utc_now

        self.scanner = DeliverableScanner(settings.allowed_extensions)
        self.resolver = SourceResolver(self.scanner)
        self.provisioner = FolderProvisioner(load_template(settings.template_path), now_fn=now_fn)
        self.token_provider = token_provider or DropboxAccessTokenProvider(
            access_token=settings.dropbox_access_token,
            refresh_token=settings.dropbox_refresh_token,
            app_key=settings.dropbox_app_key,
            app_secret=settings.dropbox_app_secret,
            now_fn=now_fn,
        )
        self.files_client = files_client or DropboxFilesClient()
        self.share_links = ShareLinkManager(
            share_client or DropboxShareLinkClient(),
            self.token_provider,
            ttl_days=settings.share_link_ttl_days,
            now_fn=now_fn,
        )
        self.recorder = ManifestRecorder(store, max_history_runs=settings.max_history_runs, now_fn=now_fn)
        self.strategy = select_strategy(
            settings,
            provisioner=self.provisioner,
            scanner=self.scanner,
            share_links=self.share_links,
            recorder=self.recorder,
            files_client=self.files_client,
            token_provider=self.token_provider,
            now_fn=now_fn,
        )

        if email_sender is None and settings.smtp_host:
            email_sender = SmtpEmailSender(
                settings.smtp_host,
                settings.smtp_port,
                username=settings.smtp_username,
                password=settings.smtp_password,
            )
        self.email_service = DeliveryEmailService(
            email_sender,
            from_address=settings.email_from,
            default_reply_to=settings.default_reply_to,
            now_fn=now_fn,
        )
        self.orchestrator = DeliveryOrchestrator(
            store,
            self.resolver,
            self.strategy,
            self.recorder,
            self.email_service,
            settings,
            now_fn=now_fn,
        )
