"""Status command - show the current delivery projection for a project."""

from __future__ import annotations

from argparse import Namespace

from handoff.commands.output import emit_output
from handoff.errors import ValidationError


def run_status(args: Namespace, *, store=None, output_sink=print) -> int:
    if store is None:
        raise ValidationError("store is required; construct it in the CLI composition root")
    project = store.get_project(args.project_id)
    if project is None:
        raise ValidationError(f"Project not found: {args.project_id}")

    delivery = store.get_metadata(project.project_id).get("delivery") or {}
    current = delivery.get("current") or {}
    runs = delivery.get("runs") or []
    last_run = runs[-1] if runs else {}

    payload = {
        "project_id": project.project_id,
        "status": project.status,
        "run_count": len(runs),
        "current": current,
        "last_job_id": last_run.get("jobId"),
        "last_error": last_run.get("lastError"),
    }
    lines = [
        f"status: project={project.project_id} status={project.status} runs={len(runs)}",
        f"status: version={current.get('currentVersion') or '-'} path={current.get('stablePath') or '-'}",
        f"status: share={current.get('shareStatus') or '-'} url={current.get('stableShareUrl') or '-'}",
    ]
    if current.get("shareError"):
        lines.append(f"status: share_error={current['shareError']}")
    if last_run.get("lastError"):
        lines.append(f"status: last_error={last_run['lastError']}")
    emit_output(
        command="status",
        payload=payload,
        json_output=getattr(args, "json", False),
        output_sink=output_sink,
        human_lines=lines,
    )
    return 0
