"""Dropbox HTTP clients: folders, uploads, shared links and OAuth tokens."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import json
import logging
from pathlib import Path
from threading import Lock
from typing import Callable, Optional
import urllib.error
import urllib.parse
import urllib.request

from handoff import __version__ as HANDOFF_VERSION
from handoff.core.models import utc_now
from handoff.errors import ProviderError

API_BASE = "https://api.dropboxapi.com/2"
CONTENT_BASE = "https://content.dropboxapi.com/2"
TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
SIMPLE_UPLOAD_LIMIT = 150 * 1024 * 1024
UPLOAD_CHUNK_SIZE = 8 * 1024 * 1024

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SharedLink:
    url: str
    share_id: Optional[str]
    is_new: bool


@dataclass(frozen=True)
class AccessTokenResult:
    access_token: Optional[str]
    auth_mode: str
    source: str
    error: Optional[str] = None


class _DropboxTransport:
    """Shared request plumbing for the RPC and content endpoints."""

    def __init__(self, *, timeout: Optional[float] = None, useragent: Optional[str] = None) -> None:
        self._timeout = timeout
        self._useragent = useragent or f"handoff/{HANDOFF_VERSION}"

    def _rpc(self, token: str, endpoint: str, payload: Optional[dict]) -> dict:
        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        headers = {"Authorization": f"Bearer {token}", "User-Agent": self._useragent}
        if body is not None:
            headers["Content-Type"] = "application/json"
        return self._send(f"{API_BASE}/{endpoint}", endpoint, body, headers)

    def _content(self, token: str, endpoint: str, api_arg: dict, data: bytes) -> dict:
        headers = {
            "Authorization": f"Bearer {token}",
            "User-Agent": self._useragent,
            "Content-Type": "application/octet-stream",
            "Dropbox-API-Arg": json.dumps(api_arg, ensure_ascii=True),
        }
        return self._send(f"{CONTENT_BASE}/{endpoint}", endpoint, data, headers)

    def _send(self, url: str, endpoint: str, body: Optional[bytes], headers: dict) -> dict:
        request = urllib.request.Request(url, data=body, headers=headers, method="POST")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            raise _provider_error(endpoint, exc) from exc
        except urllib.error.URLError as exc:
            raise ProviderError(f"Dropbox {endpoint} request failed: {exc.reason}") from exc
        if not raw:
            return {}
        text = raw.decode("utf-8")
        if not text.strip() or text.strip() == "null":
            return {}
        return json.loads(text)


def _provider_error(endpoint: str, exc: urllib.error.HTTPError) -> ProviderError:
    summary = None
    try:
        payload = json.loads(exc.read().decode("utf-8") or "{}")
        summary = payload.get("error_summary")
    except (ValueError, AttributeError, OSError):
        summary = None
    detail = summary or exc.reason
    return ProviderError(
        f"Dropbox {endpoint} failed ({exc.code}): {detail}",
        status=exc.code,
        summary=summary,
    )


class DropboxFilesClient(_DropboxTransport):
    """Folder creation and uploads. Uploads always overwrite by path."""

    def ensure_folder(self, token: str, path: str) -> None:
        try:
            self._rpc(token, "files/create_folder_v2", {"path": path, "autorename": False})
            logger.debug("Dropbox folder created: %s", path)
        except ProviderError as exc:
            if exc.status == 409 and "path/conflict" in (exc.summary or ""):
                logger.debug("Dropbox folder exists: %s", path)
                return
            raise

    def upload_bytes(self, token: str, path: str, data: bytes) -> dict:
        return self._content(token, "files/upload", _commit_arg(path), data)

    def upload_file(self, token: str, path: str, source_path: Path) -> dict:
        size = source_path.stat().st_size
        if size <= SIMPLE_UPLOAD_LIMIT:
            logger.debug("Uploading %s -> %s (%d bytes)", source_path, path, size)
            return self.upload_bytes(token, path, source_path.read_bytes())
        return self._upload_session(token, path, source_path)

    def _upload_session(self, token: str, path: str, source_path: Path) -> dict:
        logger.debug("Uploading %s -> %s via upload session", source_path, path)
        with source_path.open("rb") as handle:
            chunk = handle.read(UPLOAD_CHUNK_SIZE)
            started = self._content(token, "files/upload_session/start", {"close": False}, chunk)
            session_id = started.get("session_id")
            if not session_id:
                raise ProviderError("Dropbox upload session did not return a session_id")
            offset = len(chunk)
            while True:
                chunk = handle.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                cursor = {"session_id": session_id, "offset": offset}
                self._content(token, "files/upload_session/append_v2", {"cursor": cursor, "close": False}, chunk)
                offset += len(chunk)
        finish_arg = {"cursor": {"session_id": session_id, "offset": offset}, "commit": _commit_arg(path)}
        return self._content(token, "files/upload_session/finish", finish_arg, b"")


def _commit_arg(path: str) -> dict:
    return {"path": path, "mode": "overwrite", "autorename": False, "mute": True}


class DropboxShareLinkClient(_DropboxTransport):
    def validate_access_token(self, token: str) -> None:
        self._rpc(token, "users/get_current_account", None)

    def get_or_create_shared_link(self, token: str, path: str) -> SharedLink:
        existing = self._find_existing(token, path)
        if existing is not None:
            return existing
        try:
            created = self._rpc(
                token,
                "sharing/create_shared_link_with_settings",
                {"path": path, "settings": {"requested_visibility": "public"}},
            )
        except ProviderError as exc:
            if exc.status == 409 and "shared_link_already_exists" in (exc.summary or ""):
                existing = self._find_existing(token, path)
                if existing is not None:
                    return existing
            raise
        url = created.get("url")
        if not url:
            raise ProviderError("Dropbox did not return a shared link url")
        return SharedLink(url=url, share_id=created.get("id"), is_new=True)

    def _find_existing(self, token: str, path: str) -> Optional[SharedLink]:
        payload = self._rpc(token, "sharing/list_shared_links", {"path": path, "direct_only": True})
        for link in payload.get("links") or []:
            url = link.get("url")
            if url:
                return SharedLink(url=url, share_id=link.get("id"), is_new=False)
        return None


class DropboxAccessTokenProvider:
    """Resolves a usable access token.

    A configured long-lived access token wins. Otherwise the refresh-token
    grant is used and the short-lived token is cached until shortly before it
    expires.
    """

    def __init__(
        self,
        *,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        app_key: Optional[str] = None,
        app_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._access_token = (access_token or "").strip() or None
        self._refresh_token = (refresh_token or "").strip() or None
        self._app_key = (app_key or "").strip() or None
        self._app_secret = (app_secret or "").strip() or None
        self._timeout = timeout
        self._now_fn = now_fn or utc_now
        self._lock = Lock()
        self._cached: Optional[str] = None
        self._cached_until: Optional[datetime] = None

    def get_access_token(self) -> AccessTokenResult:
        if self._access_token:
            return AccessTokenResult(self._access_token, "access_token", "config")
        if not self._refresh_token:
            return AccessTokenResult(None, "none", "none", "Dropbox access token not configured.")
        if not self._app_key or not self._app_secret:
            return AccessTokenResult(
                None,
                "refresh_token",
                "config",
                "Dropbox refresh token configured without app key/secret.",
            )
        with self._lock:
            now = self._now_fn()
            if self._cached and self._cached_until and now < self._cached_until:
                return AccessTokenResult(self._cached, "refresh_token", "cache")
            try:
                token, expires_in = self._refresh()
            except ProviderError as exc:
                return AccessTokenResult(None, "refresh_token", "oauth", str(exc))
            lifetime = max(expires_in - 60, 30)
            self._cached = token
            self._cached_until = now + timedelta(seconds=lifetime)
            return AccessTokenResult(token, "refresh_token", "oauth")

    def _refresh(self) -> tuple[str, int]:
        body = urllib.parse.urlencode(
            {
                "grant_type": "refresh_token",
                "refresh_token": self._refresh_token,
                "client_id": self._app_key,
                "client_secret": self._app_secret,
            }
        ).encode("ascii")
        request = urllib.request.Request(
            TOKEN_URL,
            data=body,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as resp:
                payload = json.load(resp)
        except urllib.error.HTTPError as exc:
            raise ProviderError(f"Dropbox token refresh failed ({exc.code}).", status=exc.code) from exc
        except urllib.error.URLError as exc:
            raise ProviderError(f"Dropbox token refresh failed: {exc.reason}") from exc
        token = payload.get("access_token")
        if not token:
            raise ProviderError("Dropbox token refresh returned no access_token.")
        try:
            expires_in = int(payload.get("expires_in") or 14400)
        except (TypeError, ValueError):
            expires_in = 14400
        return token, expires_in
