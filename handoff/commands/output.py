"""CLI output: a sorted JSON envelope or plain ``command: ...`` lines."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
import json
from pathlib import PurePath
from typing import Iterable

from handoff.core.models import format_utc

SCHEMA_VERSION = "v1"


def _encode_value(value):
    if isinstance(value, datetime):
        return format_utc(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Cannot encode {type(value).__name__} in CLI output")


def render_envelope(command: str, payload: dict) -> str:
    """Serialize ``payload`` under ``{schema_version, command, data}``.

    Timestamps are rendered as UTC ``...Z`` strings, paths as plain strings and
    enum members by value, so command handlers can hand over domain values.
    """
    return json.dumps(
        {"schema_version": SCHEMA_VERSION, "command": command, "data": payload},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
        default=_encode_value,
    )


def emit_output(
    *,
    command: str,
    payload: dict,
    json_output: bool,
    output_sink=print,
    human_lines: Iterable[str] = (),
) -> None:
    if json_output:
        output_sink(render_envelope(command, payload))
        return
    for line in human_lines:
        output_sink(line)
