"""Sequence one delivery attempt: resolve, plan, deliver, link, record, notify."""

from __future__ import annotations

from datetime import datetime
import logging
from threading import Event
from typing import Callable, Optional, Protocol
import uuid

from handoff.core.history import read_delivery_history, read_share_state
from handoff.core.models import (
    DESTINATION_DOMAIN,
    SOURCE_DOMAIN,
    DeliveryRequest,
    DeliveryRunResult,
    DomainResult,
    ProjectInfo,
    RootState,
    utc_now,
)
from handoff.destinations.base import DeliveryContext, DestinationStrategy
from handoff.errors import ValidationError
from handoff.infrastructure.source_resolver import SourceResolver
from handoff.provisioning.template import ProvisioningTokens
from handoff.services.email import DeliveryEmailService
from handoff.services.recorder import ManifestRecorder
from handoff.settings import DeliverySettings

logger = logging.getLogger(__name__)

STATUS_READY = "ready_to_deliver"
STATUS_DELIVERING = "delivering"
STATUS_DELIVERED = "delivered"
STATUS_FAILED = "delivery_failed"
DELIVERABLE_STATUSES = frozenset({STATUS_READY, STATUS_FAILED, STATUS_DELIVERED})

SOURCE_NOT_READY_NOTE = "Source not ready."


class ProjectStore(Protocol):
    def get_project(self, project_id: str) -> Optional[ProjectInfo]:
        ...

    def set_status(self, project_id: str, status: str) -> None:
        ...

    def get_metadata(self, project_id: str) -> dict:
        ...


class DeliveryOrchestrator:
    """Runs a single delivery attempt against one destination strategy.

    The caller holds the per-project lock for the whole call. Project metadata
    is read once before any destination work and written once at the end.
    """

    def __init__(
        self,
        store: ProjectStore,
        resolver: SourceResolver,
        strategy: DestinationStrategy,
        recorder: ManifestRecorder,
        email_service: Optional[DeliveryEmailService],
        settings: DeliverySettings,
        now_fn: Optional[Callable[[], datetime]] = None,
        job_id_fn: Optional[Callable[[], str]] = None,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._strategy = strategy
        self._recorder = recorder
        self._email_service = email_service
        self._settings = settings
        self._now_fn = now_fn or utc_now
        self._job_id_fn = job_id_fn or (lambda: uuid.uuid4().hex)

    def run(self, request: DeliveryRequest, cancel_event: Optional[Event] = None) -> DeliveryRunResult:
        project = self._store.get_project(request.project_id)
        if project is None:
            raise ValidationError(f"Project not found: {request.project_id}")

        started_at = self._now_fn()
        job_id = self._job_id_fn()

        if not project.is_real and not request.allow_non_real:
            note = "Project is not marked as real; set allowNonReal=true to deliver."
            return self._blocked(job_id, request, started_at, RootState.BLOCKED_NON_REAL, note)

        blocked = self._status_guard(project, request)
        if blocked is not None:
            state, note = blocked
            return self._blocked(job_id, request, started_at, state, note)

        self._store.set_status(project.project_id, STATUS_DELIVERING)
        try:
            result = self._deliver(job_id, request, project, started_at, cancel_event)
        except Exception:
            logger.exception("Delivery for %s aborted", project.project_id)
            self._store.set_status(project.project_id, STATUS_FAILED)
            raise

        self._recorder.record_run(result)
        final_status = STATUS_FAILED if result.has_errors else STATUS_DELIVERED
        self._store.set_status(project.project_id, final_status)
        logger.info(
            "Delivery %s for %s finished: status=%s version=%s",
            job_id,
            project.project_id,
            final_status,
            result.version_label,
        )
        return result

    def _status_guard(self, project: ProjectInfo, request: DeliveryRequest):
        status = (project.status or "").strip().lower()
        if status == STATUS_DELIVERING:
            return RootState.BLOCKED_ALREADY_DELIVERING, "Project is already delivering."
        if request.force:
            return None
        if status not in DELIVERABLE_STATUSES:
            return RootState.BLOCKED_STATUS_NOT_READY, f"Project status '{project.status}' is not ready for delivery."
        return None

    def _deliver(
        self,
        job_id: str,
        request: DeliveryRequest,
        project: ProjectInfo,
        started_at: datetime,
        cancel_event: Optional[Event],
    ) -> DeliveryRunResult:
        source = self._resolver.resolve(self._settings.source_root, project.source_relpath)
        source_path = str(source.source_path) if source.source_path else None
        files = tuple(item.summary() for item in source.files)

        if not source.ready:
            destination = DomainResult(
                domain_key=DESTINATION_DOMAIN,
                root_path="",
                root_state=RootState.BLOCKED_SOURCE_MISSING,
                notes=(SOURCE_NOT_READY_NOTE,),
            )
            return self._result(
                job_id, request, started_at, (source.domain, destination), source_path=source_path, files=files
            )

        metadata = self._store.get_metadata(project.project_id)
        context = DeliveryContext(
            run_id=job_id,
            request=request,
            project=project,
            tokens=ProvisioningTokens(
                project_code=project.project_code,
                project_name=project.project_name,
                client_name=project.client_name,
                editor_initials=request.editor_initials,
            ),
            source_path=source.source_path,
            files=source.files,
            share_state=read_share_state(metadata),
            history=read_delivery_history(metadata),
            started_at=started_at,
            cancel_event=cancel_event,
        )
        logger.info("Delivering %s via %s mode", project.project_id, self._strategy.mode)
        outcome = self._strategy.deliver(context)

        result = self._result(
            job_id,
            request,
            started_at,
            (source.domain, outcome.domain),
            source_path=source_path,
            files=files,
            destination_path=outcome.destination_path,
            api_stable_path=outcome.api_stable_path,
            api_version_path=outcome.api_version_path,
            version_label=outcome.version_label,
            retention_until=outcome.retention_until,
            share=outcome.share,
        )
        if self._email_service is not None and outcome.share is not None:
            result = result.with_email(self._email_service.send_if_ready(result, request, project))
        return result

    def _blocked(
        self,
        job_id: str,
        request: DeliveryRequest,
        started_at: datetime,
        state: RootState,
        note: str,
    ) -> DeliveryRunResult:
        logger.info("Delivery for %s blocked: %s", request.project_id, state.value)
        domains = tuple(
            DomainResult(domain_key=key, root_path="", root_state=state, notes=(note,))
            for key in (SOURCE_DOMAIN, DESTINATION_DOMAIN)
        )
        result = self._result(job_id, request, started_at, domains, source_path=None, files=())
        self._recorder.record_run(result)
        return result

    @staticmethod
    def _result(
        job_id: str,
        request: DeliveryRequest,
        started_at: datetime,
        domains: tuple[DomainResult, ...],
        *,
        source_path: Optional[str],
        files,
        destination_path: Optional[str] = None,
        api_stable_path: Optional[str] = None,
        api_version_path: Optional[str] = None,
        version_label: Optional[str] = None,
        retention_until: Optional[datetime] = None,
        share=None,
    ) -> DeliveryRunResult:
        return DeliveryRunResult(
            job_id=job_id,
            project_id=request.project_id,
            editor_initials=request.editor_initials,
            started_at_utc=started_at,
            test_mode=request.test_mode,
            allow_test_cleanup=request.allow_test_cleanup,
            allow_non_real=request.allow_non_real,
            force=request.force,
            source_path=source_path,
            destination_path=destination_path,
            api_stable_path=api_stable_path,
            api_version_path=api_version_path,
            version_label=version_label,
            retention_until_utc=retention_until,
            files=files,
            domains=domains,
            share=share,
        )
