"""Unit tests for the share-link lifecycle.

Contract:
- TTL only applies outside test mode
- refresh always forces creation
- a version-folder path never reaches the API
- failures keep the previous url/id and never set a verification time
"""

from __future__ import annotations

from datetime import timedelta
import http.client

import pytest

from handoff.core.models import ShareLinkState, ShareStatus
from handoff.core.share_links import (
    MISSING_TOKEN_ERROR,
    VERSION_FOLDER_ERROR,
    ShareLinkManager,
    determine_share_link_decision,
)
from handoff.errors import DeliveryCancelled, ProviderError
from tests.helpers.fs import NOW
from tests.helpers.fakes import FakeShareClient, FakeTokenProvider

STABLE = "/Deliveries/Acme/MGF25-0001_Spring/01_Deliverables/Final"


def _existing(days_ago: int = 1, status: str = "created", url: str = "https://dropbox.test/s/old") -> ShareLinkState:
    return ShareLinkState(
        url=url,
        share_id="id:old",
        status=status,
        last_verified_at_utc=NOW - timedelta(days=days_ago),
    )


# ---------------------------------------------------------------------------
# Decision table
# ---------------------------------------------------------------------------

def test_expired_link_is_recreated_outside_test_mode() -> None:
    decision = determine_share_link_decision(_existing(10), refresh_requested=False, test_mode=False, now=NOW)

    assert decision.should_create
    assert decision.reason == "ttl_expired"


def test_expired_link_is_reused_in_test_mode() -> None:
    decision = determine_share_link_decision(_existing(10), refresh_requested=False, test_mode=True, now=NOW)

    assert decision.reuse_existing
    assert not decision.should_create


def test_fresh_link_is_reused() -> None:
    decision = determine_share_link_decision(_existing(2), refresh_requested=False, test_mode=False, now=NOW)

    assert decision.reason == "reuse_existing"


def test_link_without_verification_time_is_reused() -> None:
    existing = ShareLinkState(url="https://dropbox.test/s/x", status="created")

    decision = determine_share_link_decision(existing, refresh_requested=False, test_mode=False, now=NOW)

    assert decision.reuse_existing


@pytest.mark.parametrize("days_ago", [1, 30])
@pytest.mark.parametrize("test_mode", [True, False])
def test_refresh_always_forces_creation(days_ago: int, test_mode: bool) -> None:
    decision = determine_share_link_decision(
        _existing(days_ago), refresh_requested=True, test_mode=test_mode, now=NOW
    )

    assert decision.should_create
    assert decision.reason == "refresh_requested"


def test_missing_url_forces_creation() -> None:
    decision = determine_share_link_decision(ShareLinkState(), refresh_requested=False, test_mode=False, now=NOW)

    assert decision.reason == "missing_share"


def test_previous_failure_forces_creation() -> None:
    decision = determine_share_link_decision(
        _existing(1, status="failed"), refresh_requested=False, test_mode=False, now=NOW
    )

    assert decision.reason == "previous_failed"


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

def _manager(client: FakeShareClient, tokens: FakeTokenProvider | None = None) -> ShareLinkManager:
    return ShareLinkManager(client, tokens or FakeTokenProvider(), ttl_days=7, now_fn=lambda: NOW)


def test_version_folder_path_fails_without_api_calls() -> None:
    client = FakeShareClient()
    tokens = FakeTokenProvider()

    outcome = _manager(client, tokens).ensure(
        STABLE + "/v2", _existing(1), refresh_requested=True, test_mode=False
    )

    assert outcome.status == ShareStatus.FAILED
    assert outcome.error == VERSION_FOLDER_ERROR
    assert outcome.url == "https://dropbox.test/s/old"
    assert client.calls == 0
    assert tokens.calls == 0


def test_version_folder_check_runs_on_the_unresolved_path() -> None:
    client = FakeShareClient()

    outcome = _manager(client).ensure(
        "/local/Final/v1", ShareLinkState(), refresh_requested=False, test_mode=False,
        resolve_api_path=lambda path: "/Final",
    )

    assert outcome.error == VERSION_FOLDER_ERROR
    assert client.calls == 0


def test_missing_token_fails_and_keeps_previous_link() -> None:
    client = FakeShareClient()

    outcome = _manager(client, FakeTokenProvider(token=None)).ensure(
        STABLE, _existing(1), refresh_requested=False, test_mode=False
    )

    assert outcome.status == ShareStatus.FAILED
    assert outcome.error == MISSING_TOKEN_ERROR
    assert outcome.share_id == "id:old"
    assert outcome.verified_at_utc is None
    assert client.calls == 0


def test_reuse_marks_link_verified_without_api_calls() -> None:
    client = FakeShareClient()

    outcome = _manager(client).ensure(STABLE, _existing(1), refresh_requested=False, test_mode=False)

    assert outcome.status == ShareStatus.REUSED
    assert outcome.url == "https://dropbox.test/s/old"
    assert outcome.verified_at_utc == NOW
    assert client.calls == 0


def test_creation_uses_resolved_api_path() -> None:
    client = FakeShareClient(url="https://dropbox.test/s/new", is_new=True)

    outcome = _manager(client).ensure(
        "/home/u/Dropbox/Deliveries/Final",
        ShareLinkState(),
        refresh_requested=False,
        test_mode=False,
        resolve_api_path=lambda path: "/Deliveries/Final",
    )

    assert outcome.status == ShareStatus.CREATED
    assert outcome.url == "https://dropbox.test/s/new"
    assert client.validated == ["token-123"]
    assert client.requested_paths == ["/Deliveries/Final"]


def test_existing_remote_link_is_reported_as_reused() -> None:
    client = FakeShareClient(is_new=False)

    outcome = _manager(client).ensure(STABLE, ShareLinkState(), refresh_requested=False, test_mode=False)

    assert outcome.status == ShareStatus.REUSED


def test_provider_failure_becomes_failed_outcome() -> None:
    client = FakeShareClient()
    client.fail_with = ProviderError("Dropbox sharing/list_shared_links failed (401): expired", status=401)

    outcome = _manager(client).ensure(STABLE, _existing(30), refresh_requested=False, test_mode=False)

    assert outcome.status == ShareStatus.FAILED
    assert outcome.error.startswith("Dropbox share link failed: ")
    assert outcome.url == "https://dropbox.test/s/old"
    assert outcome.verified_at_utc is None


def test_transport_error_becomes_failed_outcome() -> None:
    client = FakeShareClient()
    client.fail_with = http.client.IncompleteRead(b"partial")

    outcome = _manager(client).ensure(STABLE, _existing(30), refresh_requested=False, test_mode=False)

    assert outcome.status == ShareStatus.FAILED
    assert outcome.error.startswith("Dropbox share link failed: ")
    assert outcome.share_id == "id:old"


def test_token_provider_error_becomes_failed_outcome() -> None:
    client = FakeShareClient()
    tokens = FakeTokenProvider()
    tokens.fail_with = RuntimeError("keyring locked")

    outcome = _manager(client, tokens).ensure(STABLE, _existing(1), refresh_requested=False, test_mode=False)

    assert outcome.status == ShareStatus.FAILED
    assert outcome.error == "Dropbox share link failed: keyring locked"
    assert outcome.url == "https://dropbox.test/s/old"
    assert outcome.verified_at_utc is None
    assert client.calls == 0


def test_cancellation_is_not_swallowed() -> None:
    client = FakeShareClient()
    client.fail_with = DeliveryCancelled("Delivery cancelled.")

    with pytest.raises(DeliveryCancelled):
        _manager(client).ensure(STABLE, ShareLinkState(), refresh_requested=False, test_mode=False)
