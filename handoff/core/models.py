"""Delivery value types shared by resolver, planner, destinations and recorder."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional


SOURCE_DOMAIN = "lucidlink"
DESTINATION_DOMAIN = "dropbox"


class RootState(str, Enum):
    """Terminal outcome tag for one domain within one attempt."""

    SKIPPED_UNCONFIGURED = "skipped_unconfigured"
    BLOCKED_MISSING_ROOT = "blocked_missing_root"
    CONTAINER_MISSING = "container_missing"
    NO_SOURCE_FOLDER = "no_source_folder"
    NO_DELIVERABLES_FOUND = "no_deliverables_found"
    BLOCKED_TEST_CLEANUP = "blocked_test_cleanup"
    CLEANUP_LOCKED = "cleanup_locked"
    CONTAINER_VERIFY_FAILED = "container_verify_failed"
    DELIVERY_FAILED = "delivery_failed"
    BLOCKED_NON_REAL = "blocked_non_real"
    BLOCKED_ALREADY_DELIVERING = "blocked_already_delivering"
    BLOCKED_STATUS_NOT_READY = "blocked_status_not_ready"
    BLOCKED_SOURCE_MISSING = "blocked_source_missing"
    BLOCKED_API_ROOT_MISSING = "blocked_api_root_missing"
    BLOCKED_DROPBOX_AUTH = "blocked_dropbox_auth"
    BLOCKED_INVALID_CONTAINER = "blocked_invalid_container"
    SOURCE_READY = "source_ready"
    DELIVERED = "delivered"
    DELIVERED_NOOP = "delivered_noop"


_ERROR_STATES = {
    RootState.BLOCKED_MISSING_ROOT.value,
    RootState.CONTAINER_MISSING.value,
    RootState.NO_SOURCE_FOLDER.value,
    RootState.NO_DELIVERABLES_FOUND.value,
    RootState.CLEANUP_LOCKED.value,
    RootState.CONTAINER_VERIFY_FAILED.value,
    RootState.DELIVERY_FAILED.value,
}


def is_error_state(state: str) -> bool:
    value = state.value if isinstance(state, RootState) else str(state)
    return value.startswith("blocked_") or value.endswith("_failed") or value in _ERROR_STATES


class ShareStatus(str, Enum):
    CREATED = "created"
    REUSED = "reused"
    FAILED = "failed"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_utc(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class DeliverableFile:
    """One resolved deliverable; immutable for the lifetime of an attempt."""

    source_path: Path
    relative_path: str
    size_bytes: int
    last_modified_utc: datetime

    def summary(self) -> "DeliveryFileSummary":
        return DeliveryFileSummary(self.relative_path, self.size_bytes, self.last_modified_utc)


@dataclass(frozen=True)
class DeliveryFileSummary:
    relative_path: str
    size_bytes: int
    last_modified_utc: datetime

    def to_dict(self) -> dict:
        return {
            "relativePath": self.relative_path,
            "sizeBytes": self.size_bytes,
            "lastWriteTimeUtc": format_utc(self.last_modified_utc),
        }


@dataclass(frozen=True)
class VersionPlan:
    version_label: str
    stable_root: str
    version_root: str
    is_new_version: bool
    legacy_files_detected: bool = False


@dataclass(frozen=True)
class ProvisioningSummary:
    mode: str
    template_key: str
    target_root: str
    manifest_path: Optional[str] = None
    success: bool = True
    missing_required: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "templateKey": self.template_key,
            "targetRoot": self.target_root,
            "manifestPath": self.manifest_path,
            "success": self.success,
            "missingRequired": list(self.missing_required),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class DomainResult:
    """Outcome of one domain (source or destination) within an attempt."""

    domain_key: str
    root_path: str
    root_state: RootState
    provisioning: Optional[ProvisioningSummary] = None
    deliverables: tuple[DeliveryFileSummary, ...] = ()
    version_label: Optional[str] = None
    destination_path: Optional[str] = None
    notes: tuple[str, ...] = ()

    @property
    def has_error(self) -> bool:
        return is_error_state(self.root_state)

    def to_dict(self) -> dict:
        return {
            "domainKey": self.domain_key,
            "rootPath": self.root_path,
            "rootState": _state_value(self.root_state),
            "deliveryContainerProvisioning": self.provisioning.to_dict() if self.provisioning else None,
            "deliverables": [item.to_dict() for item in self.deliverables],
            "versionLabel": self.version_label,
            "destinationPath": self.destination_path,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class ShareLinkState:
    """Share link state as last recorded in project metadata."""

    url: Optional[str] = None
    share_id: Optional[str] = None
    status: Optional[str] = None
    last_verified_at_utc: Optional[datetime] = None


@dataclass(frozen=True)
class DeliveryShareOutcome:
    status: ShareStatus
    url: Optional[str] = None
    share_id: Optional[str] = None
    error: Optional[str] = None
    verified_at_utc: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status in {ShareStatus.CREATED, ShareStatus.REUSED}


@dataclass(frozen=True)
class DeliveryEmailResult:
    status: str
    provider: str = "smtp"
    from_address: Optional[str] = None
    to: tuple[str, ...] = ()
    subject: Optional[str] = None
    reply_to: Optional[str] = None
    sent_at_utc: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "provider": self.provider,
            "fromAddress": self.from_address,
            "to": list(self.to),
            "subject": self.subject,
            "replyTo": self.reply_to,
            "sentAtUtc": format_utc(self.sent_at_utc),
            "error": self.error,
        }


@dataclass(frozen=True)
class DeliveryHistory:
    current_version: Optional[str] = None
    last_files: tuple[DeliveryFileSummary, ...] = ()


@dataclass(frozen=True)
class ProjectInfo:
    project_id: str
    project_code: str
    project_name: str
    client_name: Optional[str] = None
    status: str = "ready_to_deliver"
    is_real: bool = True
    source_relpath: Optional[str] = None


@dataclass(frozen=True)
class DeliveryRequest:
    project_id: str
    editor_initials: tuple[str, ...] = ()
    recipient_emails: tuple[str, ...] = ()
    reply_to_email: Optional[str] = None
    test_mode: bool = False
    allow_test_cleanup: bool = False
    allow_non_real: bool = False
    force: bool = False
    refresh_share_link: bool = False


@dataclass(frozen=True)
class DeliveryRunResult:
    """Aggregated outcome of one delivery attempt."""

    job_id: str
    project_id: str
    editor_initials: tuple[str, ...]
    started_at_utc: datetime
    test_mode: bool
    allow_test_cleanup: bool
    allow_non_real: bool
    force: bool
    source_path: Optional[str]
    destination_path: Optional[str]
    api_stable_path: Optional[str]
    api_version_path: Optional[str]
    version_label: Optional[str]
    retention_until_utc: Optional[datetime]
    files: tuple[DeliveryFileSummary, ...]
    domains: tuple[DomainResult, ...]
    share: Optional[DeliveryShareOutcome] = None
    email: Optional[DeliveryEmailResult] = None

    @property
    def has_errors(self) -> bool:
        return any(domain.has_error for domain in self.domains)

    @property
    def last_error(self) -> Optional[str]:
        if not self.has_errors:
            return None
        for domain in self.domains:
            if domain.has_error and domain.notes:
                return domain.notes[0]
        return "Delivery completed with errors."

    def with_email(self, email: DeliveryEmailResult) -> "DeliveryRunResult":
        return replace(self, email=email)

    def to_dict(self) -> dict:
        share = self.share
        return {
            "jobId": self.job_id,
            "projectId": self.project_id,
            "editorInitials": list(self.editor_initials),
            "startedAtUtc": format_utc(self.started_at_utc),
            "testMode": self.test_mode,
            "allowTestCleanup": self.allow_test_cleanup,
            "allowNonReal": self.allow_non_real,
            "force": self.force,
            "sourcePath": self.source_path,
            "destinationPath": self.destination_path,
            "apiStablePath": self.api_stable_path,
            "apiVersionPath": self.api_version_path,
            "versionLabel": self.version_label,
            "retentionUntilUtc": format_utc(self.retention_until_utc),
            "files": [item.to_dict() for item in self.files],
            "domains": [domain.to_dict() for domain in self.domains],
            "hasErrors": self.has_errors,
            "lastError": self.last_error,
            "shareStatus": share.status.value if share else None,
            "shareUrl": share.url if share else None,
            "shareId": share.share_id if share else None,
            "shareError": share.error if share else None,
            "email": self.email.to_dict() if self.email else None,
        }


def _state_value(state) -> str:
    return state.value if isinstance(state, RootState) else str(state)


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's end."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
