"""Deliver command - run one delivery attempt for a project."""

from __future__ import annotations

from argparse import Namespace

from handoff.commands.output import emit_output
from handoff.core.models import DeliveryRequest, DeliveryRunResult
from handoff.errors import ValidationError
from handoff.services.email import parse_list


def build_request(args: Namespace) -> DeliveryRequest:
    project_id = (getattr(args, "project_id", "") or "").strip()
    if not project_id:
        raise ValidationError("project_id is required")
    return DeliveryRequest(
        project_id=project_id,
        editor_initials=parse_list(getattr(args, "editor", None)),
        recipient_emails=parse_list(getattr(args, "to", None)),
        reply_to_email=(getattr(args, "reply_to", None) or "").strip() or None,
        test_mode=bool(getattr(args, "test_mode", False)),
        allow_test_cleanup=bool(getattr(args, "allow_test_cleanup", False)),
        allow_non_real=bool(getattr(args, "allow_non_real", False)),
        force=bool(getattr(args, "force", False)),
        refresh_share_link=bool(getattr(args, "refresh_share_link", False)),
    )


def _human_lines(result: DeliveryRunResult) -> list[str]:
    lines = [f"deliver: project={result.project_id} job={result.job_id}"]
    for domain in result.domains:
        lines.append(f"deliver: {domain.domain_key} state={domain.root_state.value}")
        for note in domain.notes:
            lines.append(f"deliver:   {note}")
    if result.version_label:
        lines.append(f"deliver: version={result.version_label} path={result.destination_path}")
    if result.share is not None:
        lines.append(f"deliver: share={result.share.status.value} url={result.share.url or '-'}")
    if result.email is not None:
        lines.append(f"deliver: email={result.email.status}")
    if result.has_errors:
        lines.append(f"deliver: error={result.last_error}")
    return lines


def run_deliver(args: Namespace, *, app=None, output_sink=print) -> int:
    """Run a delivery attempt; exit code 1 when any domain ended in an error state."""
    if app is None:
        raise ValidationError("app is required; construct it in the CLI composition root")
    request = build_request(args)
    result = app.orchestrator.run(request)
    emit_output(
        command="deliver",
        payload=result.to_dict(),
        json_output=getattr(args, "json", False),
        output_sink=output_sink,
        human_lines=_human_lines(result),
    )
    return 1 if result.has_errors else 0
