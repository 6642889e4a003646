"""Resolve the deliverable file set for a project from the source volume."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Optional

from handoff.core.models import SOURCE_DOMAIN, DeliverableFile, DomainResult, RootState
from handoff.core.validation import ensure_safe_relative_path
from handoff.errors import PathSafetyError
from handoff.infrastructure.scanner import DeliverableScanner

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ("02_Renders", "Final_Masters")


@dataclass(frozen=True)
class SourceResolution:
    source_path: Optional[Path]
    files: tuple[DeliverableFile, ...]
    domain: DomainResult

    @property
    def ready(self) -> bool:
        return self.domain.root_state == RootState.SOURCE_READY


class SourceResolver:
    """Fail-soft resolver: every precondition maps to a root state, never an exception."""

    def __init__(self, scanner: DeliverableScanner) -> None:
        self._scanner = scanner

    def resolve(self, source_root: Optional[Path], project_relpath: Optional[str]) -> SourceResolution:
        if source_root is None or not str(source_root).strip():
            return self._result("", None, RootState.SKIPPED_UNCONFIGURED, "Source root not configured.")

        root_path = str(source_root)
        if not source_root.is_dir():
            return self._result(root_path, None, RootState.BLOCKED_MISSING_ROOT, "Source root missing.")

        if project_relpath is None or not project_relpath.strip():
            return self._result(
                root_path,
                None,
                RootState.CONTAINER_MISSING,
                "Source storage root not found; run bootstrap first.",
            )

        relpath = project_relpath.strip()
        try:
            ensure_safe_relative_path(relpath, "source storage relpath")
        except PathSafetyError:
            return self._result(
                root_path,
                None,
                RootState.CONTAINER_MISSING,
                f"Source storage relpath is invalid: {relpath}",
            )

        source_path = source_root.joinpath(*_split(relpath), *SOURCE_SUFFIX)
        if not source_path.is_dir():
            return self._result(
                root_path,
                source_path,
                RootState.NO_SOURCE_FOLDER,
                "Final_Masters folder not found.",
            )

        files = tuple(self._scanner.iter_files(source_path))
        if not files:
            return self._result(
                root_path,
                source_path,
                RootState.NO_DELIVERABLES_FOUND,
                "No deliverable files found in Final_Masters.",
            )

        logger.debug("Resolved %d deliverables under %s", len(files), source_path)
        domain = DomainResult(
            domain_key=SOURCE_DOMAIN,
            root_path=root_path,
            root_state=RootState.SOURCE_READY,
            deliverables=tuple(item.summary() for item in files),
            notes=(),
        )
        return SourceResolution(source_path=source_path, files=files, domain=domain)

    @staticmethod
    def _result(root_path: str, source_path: Optional[Path], state: RootState, note: str) -> SourceResolution:
        logger.debug("Source resolution stopped: %s (%s)", state.value, note)
        domain = DomainResult(
            domain_key=SOURCE_DOMAIN,
            root_path=root_path,
            root_state=state,
            notes=(note,),
        )
        return SourceResolution(source_path=source_path, files=(), domain=domain)


def _split(relpath: str) -> list[str]:
    return [part.strip() for part in relpath.replace("\\", "/").split("/") if part.strip()]
