"""Destination strategy contract shared by the local and remote-API modes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from threading import Event
from typing import Optional, Protocol

from handoff.core.models import (
    DESTINATION_DOMAIN,
    DeliverableFile,
    DeliveryHistory,
    DeliveryRequest,
    DeliveryShareOutcome,
    DomainResult,
    ProjectInfo,
    RootState,
    ShareLinkState,
)
from handoff.core.paths import DEFAULT_CLIENT_FOLDER
from handoff.errors import DeliveryCancelled
from handoff.provisioning.template import ProvisioningTokens


@dataclass(frozen=True)
class DeliveryContext:
    """Everything one strategy needs for one attempt; read once at attempt start."""

    run_id: str
    request: DeliveryRequest
    project: ProjectInfo
    tokens: ProvisioningTokens
    source_path: Path
    files: tuple[DeliverableFile, ...]
    share_state: ShareLinkState
    history: DeliveryHistory
    started_at: datetime
    cancel_event: Optional[Event] = None

    @property
    def client_folder(self) -> str:
        name = (self.project.client_name or "").strip()
        return name or DEFAULT_CLIENT_FOLDER

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise DeliveryCancelled(f"Delivery for {self.project.project_id} cancelled.")


@dataclass(frozen=True)
class DestinationOutcome:
    domain: DomainResult
    destination_path: Optional[str] = None
    api_stable_path: Optional[str] = None
    api_version_path: Optional[str] = None
    version_label: Optional[str] = None
    retention_until: Optional[datetime] = None
    share: Optional[DeliveryShareOutcome] = None


class DestinationStrategy(Protocol):
    mode: str

    def deliver(self, context: DeliveryContext) -> DestinationOutcome:
        ...


def terminal_outcome(
    context: DeliveryContext,
    state: RootState,
    note: str,
    *,
    root_path: str = "",
    destination_path: Optional[str] = None,
    provisioning=None,
    share: Optional[DeliveryShareOutcome] = None,
    notes: tuple[str, ...] = (),
) -> DestinationOutcome:
    """Build a short-circuit outcome carrying ``note`` after any earlier notes."""
    return DestinationOutcome(
        domain=DomainResult(
            domain_key=DESTINATION_DOMAIN,
            root_path=root_path,
            root_state=state,
            provisioning=provisioning,
            deliverables=tuple(item.summary() for item in context.files),
            destination_path=destination_path,
            notes=notes + (note,),
        ),
        destination_path=destination_path,
        share=share,
    )
