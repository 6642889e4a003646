"""Run-level guards, status transitions and metadata recording."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from handoff.app import DeliveryApp
from handoff.core.models import DeliveryRequest, RootState, ShareStatus
from handoff.core.orchestrator import DeliveryOrchestrator, SOURCE_NOT_READY_NOTE
from handoff.errors import ValidationError
from tests.helpers import FakeShareClient, FakeTokenProvider, RecordingSender
from tests.helpers.fs import write_deliverable, write_source_tree


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def share_client() -> FakeShareClient:
    return FakeShareClient()


@pytest.fixture
def app(local_settings, store, project, share_client, sender, now_fn) -> DeliveryApp:
    store.add_project(project)
    return DeliveryApp(
        local_settings,
        store,
        share_client=share_client,
        token_provider=FakeTokenProvider(),
        email_sender=sender,
        now_fn=now_fn,
    )


@pytest.fixture
def masters(roots, project) -> Path:
    source_root, _ = roots
    return write_source_tree(source_root, project.source_relpath, {"a.mp4": 10})


def _runs(store) -> list:
    return store.get_metadata("prj_0001").get("delivery", {}).get("runs", [])


# ----------------------------------------------------------------------
# Guards
# ----------------------------------------------------------------------


def test_unknown_project_raises(app) -> None:
    with pytest.raises(ValidationError, match="Project not found: prj_missing"):
        app.orchestrator.run(DeliveryRequest("prj_missing"))


def test_non_real_project_is_blocked_on_both_domains(app, store, project, masters) -> None:
    store.add_project(replace(project, is_real=False))

    result = app.orchestrator.run(DeliveryRequest("prj_0001"))

    assert [domain.root_state for domain in result.domains] == [RootState.BLOCKED_NON_REAL] * 2
    assert result.has_errors
    assert store.get_project("prj_0001").status == "ready_to_deliver"
    assert len(_runs(store)) == 1


def test_non_real_project_delivers_with_override(app, store, project, masters) -> None:
    store.add_project(replace(project, is_real=False))

    result = app.orchestrator.run(DeliveryRequest("prj_0001", allow_non_real=True))

    assert result.domains[1].root_state == RootState.DELIVERED


def test_already_delivering_is_blocked(app, store, masters) -> None:
    store.set_status("prj_0001", "delivering")

    result = app.orchestrator.run(DeliveryRequest("prj_0001"))

    assert result.domains[1].root_state == RootState.BLOCKED_ALREADY_DELIVERING
    assert result.last_error == "Project is already delivering."
    assert store.get_project("prj_0001").status == "delivering"


@pytest.mark.parametrize("status", ["active", "archived", ""])
def test_status_not_ready_is_blocked(app, store, masters, status: str) -> None:
    store.set_status("prj_0001", status)

    result = app.orchestrator.run(DeliveryRequest("prj_0001"))

    assert result.domains[1].root_state == RootState.BLOCKED_STATUS_NOT_READY


@pytest.mark.parametrize("status", ["ready_to_deliver", "delivered", "delivery_failed", "Delivered"])
def test_deliverable_statuses_pass_guard(app, store, masters, status: str) -> None:
    store.set_status("prj_0001", status)

    result = app.orchestrator.run(DeliveryRequest("prj_0001"))

    assert result.domains[1].root_state == RootState.DELIVERED


def test_force_allows_ineligible_status(app, store, masters) -> None:
    store.set_status("prj_0001", "archived")

    result = app.orchestrator.run(DeliveryRequest("prj_0001", force=True))

    assert result.domains[1].root_state == RootState.DELIVERED
    assert store.get_project("prj_0001").status == "delivered"


def test_force_does_not_override_delivering(app, store, masters) -> None:
    store.set_status("prj_0001", "delivering")

    result = app.orchestrator.run(DeliveryRequest("prj_0001", force=True))

    assert result.domains[1].root_state == RootState.BLOCKED_ALREADY_DELIVERING
    assert store.get_project("prj_0001").status == "delivering"


def test_missing_source_skips_destination(app, store, roots) -> None:
    _, dropbox_root = roots

    result = app.orchestrator.run(DeliveryRequest("prj_0001"))

    source, destination = result.domains
    assert source.root_state == RootState.NO_SOURCE_FOLDER
    assert destination.root_state == RootState.BLOCKED_SOURCE_MISSING
    assert destination.notes == (SOURCE_NOT_READY_NOTE,)
    assert result.last_error == "Final_Masters folder not found."
    assert list(dropbox_root.iterdir()) == []
    assert result.email is None
    assert store.get_project("prj_0001").status == "delivery_failed"


# ----------------------------------------------------------------------
# Recording
# ----------------------------------------------------------------------


def test_history_is_bounded(local_settings, store, project, masters, now_fn) -> None:
    store.add_project(project)
    settings = replace(local_settings, max_history_runs=3)
    app = DeliveryApp(settings, store, share_client=FakeShareClient(), token_provider=FakeTokenProvider(), now_fn=now_fn)

    job_ids = []
    for _ in range(5):
        job_ids.append(app.orchestrator.run(DeliveryRequest("prj_0001")).job_id)

    assert [run["jobId"] for run in _runs(store)] == job_ids[-3:]


def test_projection_survives_a_failed_run(app, store, masters) -> None:
    app.orchestrator.run(DeliveryRequest("prj_0001"))
    before = dict(store.get_metadata("prj_0001")["delivery"]["current"])
    for path in masters.iterdir():
        path.unlink()

    result = app.orchestrator.run(DeliveryRequest("prj_0001"))

    assert result.domains[0].root_state == RootState.NO_DELIVERABLES_FOUND
    current = store.get_metadata("prj_0001")["delivery"]["current"]
    assert current == before
    assert _runs(store)[-1]["lastError"] == "No deliverable files found in Final_Masters."


def test_share_error_is_cleared_once_a_link_succeeds(app, store, masters, share_client) -> None:
    from handoff.errors import ProviderError

    share_client.fail_with = ProviderError("boom")
    app.orchestrator.run(DeliveryRequest("prj_0001"))
    assert "shareError" in store.get_metadata("prj_0001")["delivery"]["current"]

    share_client.fail_with = None
    result = app.orchestrator.run(DeliveryRequest("prj_0001"))

    current = store.get_metadata("prj_0001")["delivery"]["current"]
    assert result.share.status == ShareStatus.CREATED
    assert "shareError" not in current
    assert current["shareStatus"] == "created"
    assert current["lastShareVerifiedAtUtc"] == "2026-03-15T09:30:00Z"


def test_email_result_is_recorded(app, store, masters, sender) -> None:
    result = app.orchestrator.run(
        DeliveryRequest("prj_0001", recipient_emails=("client@example.com",), reply_to_email="pm@mgfilms.pro")
    )

    assert result.email.status == "sent"
    assert "Download link: https://dropbox.test/s/stable" in sender.sent[0].body_text
    last_email = store.get_metadata("prj_0001")["delivery"]["current"]["lastEmail"]
    assert last_email["status"] == "sent"
    assert last_email["replyTo"] == "pm@mgfilms.pro"


def test_unexpected_exception_marks_failed_and_propagates(app, store, masters) -> None:
    class _Exploding:
        mode = "local"

        def deliver(self, context):
            raise OSError("disk gone")

    orchestrator = DeliveryOrchestrator(
        store, app.resolver, _Exploding(), app.recorder, None, app.settings, job_id_fn=lambda: "job-x"
    )

    with pytest.raises(OSError, match="disk gone"):
        orchestrator.run(DeliveryRequest("prj_0001"))

    assert store.get_project("prj_0001").status == "delivery_failed"
    assert _runs(store) == []


def test_changed_size_triggers_new_version_through_orchestrator(app, masters) -> None:
    app.orchestrator.run(DeliveryRequest("prj_0001"))
    write_deliverable(masters / "a.mp4", 12)

    result = app.orchestrator.run(DeliveryRequest("prj_0001"))

    assert result.version_label == "v2"
