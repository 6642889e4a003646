"""Add-project command - register or update a project row."""

from __future__ import annotations

from argparse import Namespace

from handoff.commands.output import emit_output
from handoff.core.models import ProjectInfo
from handoff.errors import ValidationError


def run_add_project(args: Namespace, *, store=None, output_sink=print) -> int:
    if store is None:
        raise ValidationError("store is required; construct it in the CLI composition root")
    project = ProjectInfo(
        project_id=args.project_id,
        project_code=args.code,
        project_name=args.name,
        client_name=args.client,
        status=args.status,
        is_real=not args.not_real,
        source_relpath=args.source_relpath,
    )
    store.add_project(project)
    emit_output(
        command="add-project",
        payload={
            "project_id": project.project_id,
            "project_code": project.project_code,
            "project_name": project.project_name,
            "client_name": project.client_name,
            "status": project.status,
            "is_real": project.is_real,
            "source_relpath": project.source_relpath,
        },
        json_output=getattr(args, "json", False),
        output_sink=output_sink,
        human_lines=(f"add-project: project={project.project_id} status={project.status}",),
    )
    return 0
