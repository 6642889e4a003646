"""Unit tests for the Dropbox HTTP clients (no network; urlopen is patched)."""

from __future__ import annotations

import io
import json
from datetime import timedelta
from pathlib import Path
import urllib.error
import urllib.request

import pytest

from handoff.errors import ProviderError
from handoff.providers import dropbox
from handoff.providers.dropbox import DropboxAccessTokenProvider, DropboxFilesClient, DropboxShareLinkClient
from tests.helpers.fs import NOW


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False


def _http_error(url: str, status: int, summary: str) -> urllib.error.HTTPError:
    body = json.dumps({"error_summary": summary}).encode("utf-8")
    return urllib.error.HTTPError(url, status, "error", {}, io.BytesIO(body))


class _FakeUrlopen:
    """Replays queued responses and records every request."""

    def __init__(self, responses: list) -> None:
        self.responses = list(responses)
        self.requests: list[urllib.request.Request] = []

    def __call__(self, request, timeout=None):
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return _Response(json.dumps(item).encode("utf-8") if item is not None else b"")

    def endpoints(self) -> list[str]:
        return [request.full_url.split("/2/", 1)[-1] for request in self.requests]


@pytest.fixture
def urlopen(monkeypatch: pytest.MonkeyPatch):
    def install(responses: list) -> _FakeUrlopen:
        fake = _FakeUrlopen(responses)
        monkeypatch.setattr(urllib.request, "urlopen", fake)
        return fake

    return install


# ---------------------------------------------------------------------------
# Files client
# ---------------------------------------------------------------------------

def test_ensure_folder_tolerates_existing_folder(urlopen) -> None:
    fake = urlopen([_http_error("u", 409, "path/conflict/folder/..")])

    DropboxFilesClient().ensure_folder("tok", "/Root/Acme")

    request = fake.requests[0]
    assert fake.endpoints() == ["files/create_folder_v2"]
    assert request.get_header("Authorization") == "Bearer tok"
    assert json.loads(request.data) == {"path": "/Root/Acme", "autorename": False}


def test_ensure_folder_raises_other_errors(urlopen) -> None:
    urlopen([_http_error("u", 409, "path/insufficient_space/..")])

    with pytest.raises(ProviderError) as excinfo:
        DropboxFilesClient().ensure_folder("tok", "/Root")

    assert excinfo.value.status == 409
    assert excinfo.value.summary == "path/insufficient_space/.."


def test_small_file_uses_single_upload_with_overwrite(urlopen, tmp_path: Path) -> None:
    source = tmp_path / "a.mp4"
    source.write_bytes(b"abc")
    fake = urlopen([{"path_display": "/Root/v1/a.mp4"}])

    DropboxFilesClient().upload_file("tok", "/Root/v1/a.mp4", source)

    request = fake.requests[0]
    assert fake.endpoints() == ["files/upload"]
    assert request.data == b"abc"
    assert json.loads(request.get_header("Dropbox-api-arg"))["mode"] == "overwrite"


def test_large_file_uses_upload_session(urlopen, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(dropbox, "SIMPLE_UPLOAD_LIMIT", 4)
    monkeypatch.setattr(dropbox, "UPLOAD_CHUNK_SIZE", 4)
    source = tmp_path / "big.mov"
    source.write_bytes(b"0123456789")
    fake = urlopen([{"session_id": "s1"}, None, None, {"path_display": "/Root/big.mov"}])

    DropboxFilesClient().upload_file("tok", "/Root/big.mov", source)

    assert fake.endpoints() == [
        "files/upload_session/start",
        "files/upload_session/append_v2",
        "files/upload_session/append_v2",
        "files/upload_session/finish",
    ]
    finish_arg = json.loads(fake.requests[-1].get_header("Dropbox-api-arg"))
    assert finish_arg["cursor"] == {"session_id": "s1", "offset": 10}
    assert finish_arg["commit"]["path"] == "/Root/big.mov"


def test_network_failure_becomes_provider_error(urlopen) -> None:
    urlopen([urllib.error.URLError("connection refused")])

    with pytest.raises(ProviderError, match="connection refused"):
        DropboxFilesClient().upload_bytes("tok", "/Root/x.json", b"{}")


# ---------------------------------------------------------------------------
# Share-link client
# ---------------------------------------------------------------------------

def test_existing_direct_link_is_returned(urlopen) -> None:
    fake = urlopen([{"links": [{"url": "https://dropbox.test/s/1", "id": "id:1"}]}])

    link = DropboxShareLinkClient().get_or_create_shared_link("tok", "/Root/Final")

    assert link.url == "https://dropbox.test/s/1"
    assert not link.is_new
    assert json.loads(fake.requests[0].data) == {"path": "/Root/Final", "direct_only": True}


def test_missing_link_is_created_public(urlopen) -> None:
    fake = urlopen([{"links": []}, {"url": "https://dropbox.test/s/2", "id": "id:2"}])

    link = DropboxShareLinkClient().get_or_create_shared_link("tok", "/Root/Final")

    assert link.is_new
    assert link.share_id == "id:2"
    assert json.loads(fake.requests[1].data)["settings"] == {"requested_visibility": "public"}


def test_create_race_falls_back_to_listing(urlopen) -> None:
    urlopen(
        [
            {"links": []},
            _http_error("u", 409, "shared_link_already_exists/.."),
            {"links": [{"url": "https://dropbox.test/s/3", "id": "id:3"}]},
        ]
    )

    link = DropboxShareLinkClient().get_or_create_shared_link("tok", "/Root/Final")

    assert link.url == "https://dropbox.test/s/3"
    assert not link.is_new


def test_validate_access_token_surfaces_auth_failure(urlopen) -> None:
    urlopen([_http_error("u", 401, "expired_access_token/..")])

    with pytest.raises(ProviderError, match="401"):
        DropboxShareLinkClient().validate_access_token("tok")


# ---------------------------------------------------------------------------
# Access-token provider
# ---------------------------------------------------------------------------

def test_configured_access_token_wins(urlopen) -> None:
    fake = urlopen([])

    result = DropboxAccessTokenProvider(access_token=" sl.abc ", refresh_token="r").get_access_token()

    assert result.access_token == "sl.abc"
    assert result.auth_mode == "access_token"
    assert fake.requests == []


def test_nothing_configured_reports_error() -> None:
    result = DropboxAccessTokenProvider().get_access_token()

    assert result.access_token is None
    assert result.error == "Dropbox access token not configured."


def test_refresh_token_is_exchanged_and_cached(urlopen) -> None:
    clock = [NOW]
    fake = urlopen([{"access_token": "short-1", "expires_in": 3600}, {"access_token": "short-2", "expires_in": 3600}])
    provider = DropboxAccessTokenProvider(
        refresh_token="r", app_key="key", app_secret="secret", now_fn=lambda: clock[0]
    )

    first = provider.get_access_token()
    clock[0] = NOW + timedelta(minutes=30)
    second = provider.get_access_token()
    clock[0] = NOW + timedelta(minutes=59, seconds=30)
    third = provider.get_access_token()

    assert (first.access_token, first.source) == ("short-1", "oauth")
    assert (second.access_token, second.source) == ("short-1", "cache")
    assert third.access_token == "short-2"
    assert len(fake.requests) == 2
    assert b"grant_type=refresh_token" in fake.requests[0].data


def test_refresh_failure_is_reported_not_raised(urlopen) -> None:
    urlopen([_http_error(dropbox.TOKEN_URL, 400, "invalid_grant")])
    provider = DropboxAccessTokenProvider(refresh_token="r", app_key="key", app_secret="secret")

    result = provider.get_access_token()

    assert result.access_token is None
    assert "400" in result.error
