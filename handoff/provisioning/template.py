"""Declarative folder templates: loading, token expansion and planning."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import hashlib
import json
from pathlib import Path
import re
from typing import Optional

from handoff.core.validation import ensure_safe_segment


EDITOR_TOKEN = "{EDITOR_INITIALS}"
EDITOR_PLACEHOLDER = "_EDITOR_INITIALS_HERE"
_TOKEN_PATTERN = re.compile(r"\{[A-Z_]+\}")

DEFAULT_DELIVERY_TEMPLATE = {
    "templateKey": "dropbox_delivery_container",
    "root": {
        "name": "{PROJECT_CODE}_{PROJECT_NAME}",
        "children": [
            {
                "name": "00_Admin",
                "children": [
                    {"name": ".mgf", "children": [{"name": "manifest"}]},
                ],
            },
            {
                "name": "01_Deliverables",
                "children": [{"name": "Final"}],
            },
        ],
    },
}


class NodeKind(str, Enum):
    FOLDER = "folder"
    FILE = "file"


@dataclass(frozen=True)
class TemplateNode:
    name: str
    kind: NodeKind = NodeKind.FOLDER
    optional: bool = False
    children: tuple["TemplateNode", ...] = ()


@dataclass(frozen=True)
class FolderTemplate:
    template_key: str
    root: TemplateNode
    template_hash: str


@dataclass(frozen=True)
class ProvisioningTokens:
    project_code: Optional[str] = None
    project_name: Optional[str] = None
    client_name: Optional[str] = None
    editor_initials: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "PROJECT_CODE": self.project_code,
            "PROJECT_NAME": self.project_name,
            "CLIENT_NAME": self.client_name,
            "EDITOR_INITIALS": ",".join(self.editor_initials) if self.editor_initials else None,
        }


@dataclass(frozen=True)
class PlanItem:
    kind: NodeKind
    relative_path: str
    optional: bool


@dataclass(frozen=True)
class FolderPlan:
    """Planned items relative to ``root_name`` (the expanded template root)."""

    root_name: str
    items: tuple[PlanItem, ...]

    def folder_paths(self) -> list[str]:
        return [item.relative_path for item in self.items if item.kind == NodeKind.FOLDER]


def load_template(path: Optional[Path]) -> FolderTemplate:
    """Load a JSON folder template, falling back to the built-in delivery container."""
    if path is None:
        raw = json.dumps(DEFAULT_DELIVERY_TEMPLATE, sort_keys=True)
    else:
        raw = path.read_text(encoding="utf-8")
    return parse_template(json.loads(raw))


def parse_template(data: dict) -> FolderTemplate:
    if not isinstance(data, dict):
        raise ValueError("Template must be a JSON object")
    template_key = data.get("templateKey")
    if not isinstance(template_key, str) or not template_key.strip():
        raise ValueError("Missing required field: templateKey")
    root_data = data.get("root")
    if not isinstance(root_data, dict):
        raise ValueError("Template root is required.")
    root = _parse_node(root_data)
    if not root.children:
        raise ValueError("Template root must contain at least one child.")
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    template_hash = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return FolderTemplate(template_key=template_key.strip(), root=root, template_hash=template_hash)


def _parse_node(data: dict) -> TemplateNode:
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Template node name is required")
    kind = NodeKind(data.get("kind", NodeKind.FOLDER.value))
    children = tuple(_parse_node(child) for child in data.get("children") or [])
    if kind == NodeKind.FILE and children:
        raise ValueError(f"File node '{name}' cannot have children.")
    return TemplateNode(name=name, kind=kind, optional=bool(data.get("optional", False)), children=children)


def expand_root_name(name: str, tokens: ProvisioningTokens) -> str:
    if EDITOR_TOKEN in name:
        if len(tokens.editor_initials) > 1:
            raise ValueError("Root name cannot contain {EDITOR_INITIALS} with multiple editors.")
        editor = tokens.editor_initials[0] if tokens.editor_initials else EDITOR_PLACEHOLDER
        return _replace_tokens(name, tokens, editor)
    return _replace_tokens(name, tokens, None)


def expand_node_name(name: str, tokens: ProvisioningTokens, optional: bool) -> list[str]:
    """Expand one node name; editor-token nodes fan out to one entry per editor."""
    if EDITOR_TOKEN not in name:
        return [_replace_tokens(name, tokens, None)]
    if tokens.editor_initials:
        return [_replace_tokens(name, tokens, editor) for editor in tokens.editor_initials]
    if optional:
        return []
    return [_replace_tokens(name, tokens, EDITOR_PLACEHOLDER)]


def _replace_tokens(text: str, tokens: ProvisioningTokens, editor: Optional[str]) -> str:
    values = {
        "{PROJECT_CODE}": tokens.project_code,
        "{PROJECT_NAME}": tokens.project_name,
        "{CLIENT_NAME}": tokens.client_name,
        EDITOR_TOKEN: editor,
    }
    output = text
    for token, value in values.items():
        if token not in output:
            continue
        if value is None or not str(value).strip():
            raise ValueError(f"Missing value for token {token}.")
        output = output.replace(token, str(value).strip())
    leftover = _TOKEN_PATTERN.search(output)
    if leftover:
        raise ValueError(f"Unknown template token {leftover.group(0)}.")
    return output


def plan_template(template: FolderTemplate, tokens: ProvisioningTokens) -> FolderPlan:
    """Expand a template into an ordered plan: folders first, then files, by path."""
    root_name = ensure_safe_segment(expand_root_name(template.root.name, tokens), "root name")
    items: list[PlanItem] = []
    for child in template.root.children:
        _expand(child, "", False, tokens, items)

    items.sort(key=lambda item: (0 if item.kind == NodeKind.FOLDER else 1, item.relative_path))
    seen: set[str] = set()
    for item in items:
        key = item.relative_path.casefold()
        if key in seen:
            raise ValueError(f"Duplicate planned path detected: {item.relative_path}")
        seen.add(key)
    return FolderPlan(root_name=root_name, items=tuple(items))


def _expand(
    node: TemplateNode,
    parent: str,
    parent_optional: bool,
    tokens: ProvisioningTokens,
    items: list[PlanItem],
) -> None:
    optional = parent_optional or node.optional
    for name in expand_node_name(node.name, tokens, optional):
        segment = ensure_safe_segment(name, "node name")
        relative = f"{parent}/{segment}" if parent else segment
        items.append(PlanItem(kind=node.kind, relative_path=relative, optional=optional))
        for child in node.children:
            _expand(child, relative, optional, tokens, items)
