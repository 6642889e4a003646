"""Project metadata: bounded run history and the ``current`` delivery projection.

Metadata layout::

    {"delivery": {"runs": [...newest last...], "current": {...}}}
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from handoff.core.models import (
    DeliveryFileSummary,
    DeliveryHistory,
    DeliveryRunResult,
    ShareLinkState,
    ShareStatus,
    format_utc,
    parse_utc,
)

SHARE_PROVIDER_KEY = "dropbox"


def append_and_truncate(runs: list, entry: dict, max_entries: int) -> list:
    """Append ``entry`` and keep only the newest ``max_entries`` runs."""
    if max_entries <= 0:
        raise ValueError("max_entries must be positive")
    updated = [run for run in runs if isinstance(run, dict)]
    updated.append(entry)
    return updated[-max_entries:]


def current_projection_updates(run: DeliveryRunResult, now: datetime) -> tuple[dict, tuple[str, ...]]:
    """Fields to upsert into ``delivery.current`` plus keys to remove.

    A field is written only when this run produced it, so an errored run never
    blanks a previously good stable path, version or share link.
    """
    updates: dict = {}
    removals: list[str] = []
    if run.destination_path:
        updates["stablePath"] = run.destination_path
    if run.api_stable_path:
        updates["apiStablePath"] = run.api_stable_path
    if run.api_version_path:
        updates["apiVersionPath"] = run.api_version_path
    if run.version_label:
        updates["currentVersion"] = run.version_label
    if run.retention_until_utc:
        updates["retentionUntilUtc"] = format_utc(run.retention_until_utc)

    share = run.share
    if share is not None:
        if share.url:
            updates["stableShareUrl"] = share.url
        if share.share_id:
            updates["stableShareId"] = share.share_id
        updates["shareProviderKey"] = SHARE_PROVIDER_KEY
        updates["shareStatus"] = share.status.value
        if share.status in (ShareStatus.CREATED, ShareStatus.REUSED):
            removals.append("shareError")
            updates["lastShareVerifiedAtUtc"] = format_utc(share.verified_at_utc or now)
        elif share.error:
            updates["shareError"] = share.error

    if run.email is not None:
        updates["lastEmail"] = run.email.to_dict()
    return updates, tuple(removals)


def apply_current_updates(current: Optional[dict], updates: dict, removals: tuple[str, ...] = ()) -> dict:
    merged = dict(current or {})
    for key in removals:
        merged.pop(key, None)
    merged.update(updates)
    return merged


def _delivery_section(metadata: Optional[dict]) -> dict:
    if not isinstance(metadata, dict):
        return {}
    delivery = metadata.get("delivery")
    return delivery if isinstance(delivery, dict) else {}


def read_share_state(metadata: Optional[dict]) -> ShareLinkState:
    current = _delivery_section(metadata).get("current")
    if not isinstance(current, dict):
        return ShareLinkState()
    url = current.get("stableShareUrl") or current.get("shareUrl")
    return ShareLinkState(
        url=url or None,
        share_id=current.get("stableShareId") or None,
        status=current.get("shareStatus") or None,
        last_verified_at_utc=parse_utc(current.get("lastShareVerifiedAtUtc")),
    )


def read_delivery_history(metadata: Optional[dict]) -> DeliveryHistory:
    delivery = _delivery_section(metadata)
    current = delivery.get("current") if isinstance(delivery.get("current"), dict) else {}
    runs = [run for run in delivery.get("runs") or [] if isinstance(run, dict)]

    current_version = current.get("currentVersion")
    if not current_version:
        current_version = next((run["versionLabel"] for run in reversed(runs) if run.get("versionLabel")), None)

    last_files: tuple[DeliveryFileSummary, ...] = ()
    for run in reversed(runs):
        # failed or blocked runs list source files that never reached a version folder
        if not run.get("versionLabel"):
            continue
        files = _parse_files(run.get("files"))
        if files:
            last_files = files
            break
    return DeliveryHistory(current_version=current_version or None, last_files=last_files)


def _parse_files(raw) -> tuple[DeliveryFileSummary, ...]:
    if not isinstance(raw, list):
        return ()
    files = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        relative_path = item.get("relativePath")
        modified = parse_utc(item.get("lastWriteTimeUtc"))
        if not relative_path or modified is None:
            continue
        try:
            size = int(item.get("sizeBytes") or 0)
        except (TypeError, ValueError):
            continue
        files.append(DeliveryFileSummary(relative_path, size, modified))
    return tuple(files)
