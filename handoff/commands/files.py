"""Files command - list the deliverables a source folder would yield."""

from __future__ import annotations

from argparse import Namespace
from pathlib import Path

from handoff.commands.output import emit_output
from handoff.errors import IOFailure
from handoff.infrastructure.scanner import DeliverableScanner
from handoff.services.media_info import format_duration, human_size, probe_duration


def run_files(args: Namespace, *, scanner: DeliverableScanner | None = None, output_sink=print) -> int:
    source_dir = Path(args.source_dir).resolve()
    if not source_dir.is_dir():
        raise IOFailure(f"Source folder does not exist: {source_dir}")

    scanner = scanner or DeliverableScanner()
    items = []
    lines = [f"files: source={source_dir}"]
    total_bytes = 0
    for item in scanner.iter_files(source_dir):
        duration = probe_duration(item.source_path)
        total_bytes += item.size_bytes
        items.append(
            {
                "relative_path": item.relative_path,
                "size_bytes": item.size_bytes,
                "last_modified_utc": item.last_modified_utc,
                "duration_seconds": round(duration, 3) if duration is not None else None,
            }
        )
        detail = human_size(item.size_bytes)
        if duration is not None:
            detail = f"{detail} {format_duration(duration)}"
        lines.append(f"files:   {item.relative_path} ({detail})")
    lines.append(f"files: count={len(items)} total={human_size(total_bytes)}")

    emit_output(
        command="files",
        payload={
            "source_dir": source_dir,
            "count": len(items),
            "total_bytes": total_bytes,
            "items": items,
        },
        json_output=getattr(args, "json", False),
        output_sink=output_sink,
        human_lines=lines,
    )
    return 0
