"""Read media durations using mutagen."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

try:
    from mutagen import File as MutagenFile
except ImportError:
    MutagenFile = None

logger = logging.getLogger(__name__)

_SIZE_UNITS = ("KB", "MB", "GB", "TB")


def probe_duration(path: Path) -> Optional[float]:
    """Return the media duration in seconds, or None when it cannot be read.

    Subtitle, XML and PDF deliverables have no duration; mutagen returns None
    for them and so does this function.
    """
    if not MutagenFile:
        return None
    try:
        media = MutagenFile(path)
    except Exception as exc:
        logger.debug("Could not probe %s: %s", path, exc)
        return None
    if media is None or media.info is None:
        return None
    length = getattr(media.info, "length", None)
    if not length or length <= 0:
        return None
    return float(length)


def format_duration(seconds: Optional[float]) -> Optional[str]:
    if seconds is None:
        return None
    total = int(round(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def human_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    value = float(size_bytes)
    for unit in _SIZE_UNITS:
        value /= 1024
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            return f"{value:.1f} {unit}"
    return f"{size_bytes} B"
