"""Compose and send the delivery-ready email."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
import logging
from pathlib import Path
import re
import smtplib
from typing import Callable, Iterable, Optional, Protocol

from handoff.core.models import (
    DeliveryEmailResult,
    DeliveryFileSummary,
    DeliveryRequest,
    DeliveryRunResult,
    ProjectInfo,
    ShareStatus,
    utc_now,
)
from handoff.services.media_info import format_duration, human_size, probe_duration

logger = logging.getLogger(__name__)

PROVIDER_NAME = "smtp"
SHARE_MISSING_REASON = "Stable Dropbox share link is missing; delivery email skipped."
NO_RECIPIENTS_REASON = "No delivery email recipients were provided."
RUN_ERRORS_REASON = "Delivery completed with errors; delivery email skipped."

_LIST_SEPARATORS = re.compile(r"[,;]")


def parse_list(values) -> tuple[str, ...]:
    """Split a list or a comma/semicolon separated string into unique values.

    Duplicates are compared case-insensitively and the first spelling wins.
    """
    if values is None:
        return ()
    if isinstance(values, str):
        values = [values]
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        for part in _LIST_SEPARATORS.split(str(value or "")):
            text = part.strip()
            if not text or text.casefold() in seen:
                continue
            seen.add(text.casefold())
            result.append(text)
    return tuple(result)


@dataclass(frozen=True)
class EmailMessageData:
    from_address: str
    to: tuple[str, ...]
    subject: str
    body_text: str
    reply_to: Optional[str] = None


class EmailSender(Protocol):
    def send(self, message: EmailMessageData) -> None:
        ...


class SmtpEmailSender:
    """Send plain-text mail through an SMTP relay with STARTTLS."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30.0,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._timeout = timeout
        self._smtp_factory = smtp_factory

    def send(self, message: EmailMessageData) -> None:
        mail = EmailMessage()
        mail["From"] = message.from_address
        mail["To"] = ", ".join(message.to)
        mail["Subject"] = message.subject
        if message.reply_to:
            mail["Reply-To"] = message.reply_to
        mail.set_content(message.body_text)

        with self._smtp_factory(self._host, self._port, timeout=self._timeout) as client:
            client.starttls()
            if self._username:
                client.login(self._username, self._password or "")
            client.send_message(mail)


def build_subject(project_code: Optional[str], project_name: Optional[str]) -> str:
    code = project_code or "MGF"
    name = project_name or "Delivery"
    return f"Your deliverables are ready — {code} {name}"


def build_body(
    share_url: str,
    version_label: Optional[str],
    retention_until: Optional[datetime],
    files: Iterable[DeliveryFileSummary],
    *,
    source_path: Optional[Path] = None,
    contact: str,
) -> str:
    lines = [
        "Your deliverables are ready.",
        "",
        f"Download link: {share_url}",
        f"Current delivery version: {version_label or 'v1'}",
    ]
    if retention_until is not None:
        lines.append(f"This link remains active until {retention_until:%Y-%m-%d}.")
    lines.extend(["", "Files:"])
    for item in files:
        detail = human_size(item.size_bytes)
        if source_path is not None:
            duration = format_duration(probe_duration(source_path / item.relative_path))
            if duration:
                detail = f"{detail}, {duration}"
        lines.append(f"- {item.relative_path} ({detail})")
    lines.extend(
        [
            "",
            f"If you have any questions, contact {contact}.",
            "",
            "Thank you,",
            "MGF",
        ]
    )
    return "\n".join(lines)


class DeliveryEmailService:
    def __init__(
        self,
        sender: Optional[EmailSender],
        *,
        from_address: str,
        default_reply_to: str,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._sender = sender
        self._from_address = from_address
        self._default_reply_to = default_reply_to
        self._now_fn = now_fn or utc_now

    def send_if_ready(
        self,
        run: DeliveryRunResult,
        request: DeliveryRequest,
        project: ProjectInfo,
    ) -> DeliveryEmailResult:
        recipients = parse_list(request.recipient_emails)
        reply_to = (request.reply_to_email or "").strip() or self._default_reply_to
        subject = build_subject(project.project_code, project.project_name)

        def _skipped(reason: str) -> DeliveryEmailResult:
            logger.info("Delivery email for %s skipped: %s", run.project_id, reason)
            return DeliveryEmailResult(
                status="skipped",
                provider=PROVIDER_NAME,
                from_address=self._from_address,
                to=recipients,
                subject=subject,
                reply_to=reply_to,
                error=reason,
            )

        if run.has_errors:
            return _skipped(RUN_ERRORS_REASON)
        share = run.share
        if (
            share is None
            or share.status not in (ShareStatus.CREATED, ShareStatus.REUSED)
            or not share.url
        ):
            return _skipped(SHARE_MISSING_REASON)
        if not recipients:
            return _skipped(NO_RECIPIENTS_REASON)
        if self._sender is None:
            return _skipped("Email transport not configured.")

        message = EmailMessageData(
            from_address=self._from_address,
            to=recipients,
            subject=subject,
            body_text=build_body(
                share.url,
                run.version_label,
                run.retention_until_utc,
                run.files,
                source_path=Path(run.source_path) if run.source_path else None,
                contact=self._default_reply_to,
            ),
            reply_to=reply_to,
        )
        try:
            self._sender.send(message)
        except Exception as exc:
            logger.warning("Delivery email for %s failed: %s", run.project_id, exc)
            return DeliveryEmailResult(
                status="failed",
                provider=PROVIDER_NAME,
                from_address=self._from_address,
                to=recipients,
                subject=subject,
                reply_to=reply_to,
                error=f"Delivery email failed: {exc}",
            )

        logger.info("Delivery email for %s sent to %d recipients", run.project_id, len(recipients))
        return DeliveryEmailResult(
            status="sent",
            provider=PROVIDER_NAME,
            from_address=self._from_address,
            to=recipients,
            subject=subject,
            reply_to=reply_to,
            sent_at_utc=self._now_fn(),
        )
