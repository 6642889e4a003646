"""Delivery settings: policy constants, roots and credentials."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
from typing import Optional


DEFAULT_ALLOWED_EXTENSIONS = frozenset(
    {
        ".mp4",
        ".mov",
        ".mxf",
        ".wav",
        ".mp3",
        ".m4a",
        ".aif",
        ".aiff",
        ".srt",
        ".vtt",
        ".xml",
        ".pdf",
    }
)
_DEFAULT_SHARE_LINK_TTL_DAYS = 7
_DEFAULT_RETENTION_MONTHS = 3
_DEFAULT_MAX_HISTORY_RUNS = 10
_DEFAULT_EMAIL_FROM = "deliveries@mgfilms.pro"
_DEFAULT_REPLY_TO = "info@mgfilms.pro"
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class DeliverySettings:
    source_root: Optional[Path] = None
    dropbox_root: Optional[Path] = None
    dropbox_delivery_relpath: str = ""
    dropbox_api_root: Optional[str] = None
    use_api_root: bool = False
    allowed_extensions: frozenset[str] = field(default=DEFAULT_ALLOWED_EXTENSIONS)
    share_link_ttl_days: int = _DEFAULT_SHARE_LINK_TTL_DAYS
    retention_months: int = _DEFAULT_RETENTION_MONTHS
    max_history_runs: int = _DEFAULT_MAX_HISTORY_RUNS
    template_path: Optional[Path] = None
    dropbox_access_token: Optional[str] = None
    dropbox_refresh_token: Optional[str] = None
    dropbox_app_key: Optional[str] = None
    dropbox_app_secret: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    email_from: str = _DEFAULT_EMAIL_FROM
    default_reply_to: str = _DEFAULT_REPLY_TO


def load_settings(path: Optional[Path]) -> DeliverySettings:
    """Load settings from JSON config file, with environment variable overrides.

    Priority order:
    1. Environment variables
    2. JSON config file
    3. Defaults

    Args:
        path: Path to JSON config file, or None to use defaults only

    Returns:
        DeliverySettings with resolved values
    """
    json_settings = {}
    if path and path.exists():
        json_settings = json.loads(path.read_text())

    def _value(env_name: str, key: str, default=None):
        env_value = os.getenv(env_name)
        if env_value is not None and env_value != "":
            return env_value
        return json_settings.get(key, default)

    extensions = json_settings.get("allowed_extensions")
    if extensions is None:
        allowed = DEFAULT_ALLOWED_EXTENSIONS
    else:
        allowed = normalize_extensions(extensions)

    template_path = json_settings.get("template_path")

    return DeliverySettings(
        source_root=_optional_path(_value("HANDOFF_SOURCE_ROOT", "source_root")),
        dropbox_root=_optional_path(_value("HANDOFF_DROPBOX_ROOT", "dropbox_root")),
        dropbox_delivery_relpath=(
            _value("HANDOFF_DROPBOX_DELIVERY_RELPATH", "dropbox_delivery_relpath", "") or ""
        ).strip(),
        dropbox_api_root=_value("HANDOFF_DROPBOX_API_ROOT", "dropbox_api_root") or None,
        use_api_root=_parse_bool(_value("HANDOFF_DROPBOX_USE_API", "use_api_root", False)),
        allowed_extensions=allowed,
        share_link_ttl_days=_positive_int(
            json_settings.get("share_link_ttl_days", _DEFAULT_SHARE_LINK_TTL_DAYS),
            "share_link_ttl_days",
        ),
        retention_months=_positive_int(
            json_settings.get("retention_months", _DEFAULT_RETENTION_MONTHS),
            "retention_months",
        ),
        max_history_runs=_positive_int(
            json_settings.get("max_history_runs", _DEFAULT_MAX_HISTORY_RUNS),
            "max_history_runs",
        ),
        template_path=Path(template_path) if template_path else None,
        dropbox_access_token=_value("DROPBOX_ACCESS_TOKEN", "dropbox_access_token"),
        dropbox_refresh_token=_value("DROPBOX_REFRESH_TOKEN", "dropbox_refresh_token"),
        dropbox_app_key=_value("DROPBOX_APP_KEY", "dropbox_app_key"),
        dropbox_app_secret=_value("DROPBOX_APP_SECRET", "dropbox_app_secret"),
        smtp_host=_value("HANDOFF_SMTP_HOST", "smtp_host"),
        smtp_port=_positive_int(_value("HANDOFF_SMTP_PORT", "smtp_port", 587), "smtp_port"),
        smtp_username=_value("HANDOFF_SMTP_USERNAME", "smtp_username"),
        smtp_password=_value("HANDOFF_SMTP_PASSWORD", "smtp_password"),
        email_from=json_settings.get("email_from", _DEFAULT_EMAIL_FROM),
        default_reply_to=json_settings.get("default_reply_to", _DEFAULT_REPLY_TO),
    )


def default_config_path() -> Path:
    return Path.home() / ".config" / "handoff" / "settings.json"


def normalize_extensions(values) -> frozenset[str]:
    normalized = set()
    for value in values:
        text = str(value).strip().lower()
        if not text:
            continue
        if not text.startswith("."):
            text = "." + text
        normalized.add(text)
    if not normalized:
        raise ValueError("allowed_extensions must not be empty")
    return frozenset(normalized)


def _optional_path(value) -> Optional[Path]:
    if value is None:
        return None
    text = str(value).strip()
    return Path(text) if text else None


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Unsupported boolean value: {value}")


def _positive_int(value, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer: {value}") from exc
    if number <= 0:
        raise ValueError(f"{name} must be positive: {value}")
    return number
