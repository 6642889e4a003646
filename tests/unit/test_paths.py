"""Unit tests for delivery path conventions."""

from __future__ import annotations

from pathlib import Path

import pytest

from handoff.core.models import DeliveryHistory, DeliveryRequest, ProjectInfo, ShareLinkState
from handoff.core.paths import (
    DEFAULT_CLIENT_FOLDER,
    api_path_from_local_root,
    combine_remote_path,
    is_stable_share_path,
    local_container_root,
    local_manifest_path,
    local_stable_root,
    remote_manifest_path,
)
from handoff.destinations.base import DeliveryContext
from handoff.provisioning.template import ProvisioningTokens
from tests.helpers.fs import NOW


def test_combine_remote_path_normalizes_separators() -> None:
    assert combine_remote_path("/MG Films/", "04_Deliveries\\2026", "", " Acme ", "P_1") == (
        "/MG Films/04_Deliveries/2026/Acme/P_1"
    )


def test_combine_remote_path_of_nothing_is_root() -> None:
    assert combine_remote_path() == "/"


def test_is_stable_share_path() -> None:
    assert is_stable_share_path("/A/01_Deliverables/Final")
    assert not is_stable_share_path("/A/01_Deliverables/Final/v3")
    assert not is_stable_share_path("C:\\Dropbox\\Final\\V2\\")


def test_local_container_root_in_test_mode(tmp_path: Path) -> None:
    root = local_container_root(tmp_path, "04_Client_Deliveries", "Acme", "MGF25_Spring", test_mode=True)

    assert root == tmp_path / "99_TestRuns" / "04_Client_Deliveries" / "Acme" / "MGF25_Spring"
    assert local_stable_root(root) == root / "01_Deliverables" / "Final"
    assert local_manifest_path(root) == root / "00_Admin" / ".mgf" / "manifest" / "delivery_manifest.json"


def test_remote_manifest_path() -> None:
    assert remote_manifest_path("/Root/Acme/P") == "/Root/Acme/P/00_Admin/.mgf/manifest/delivery_manifest.json"


def test_api_path_from_local_root(tmp_path: Path) -> None:
    stable = tmp_path / "Deliveries" / "Acme" / "01_Deliverables" / "Final"

    assert api_path_from_local_root(tmp_path, stable) == "/Deliveries/Acme/01_Deliverables/Final"


def test_api_path_outside_local_root_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="outside Dropbox root"):
        api_path_from_local_root(tmp_path / "Dropbox", tmp_path / "Elsewhere" / "Final")


@pytest.mark.parametrize("client_name, expected", [("Acme", "Acme"), ("  ", DEFAULT_CLIENT_FOLDER), (None, DEFAULT_CLIENT_FOLDER)])
def test_context_client_folder_falls_back_to_default(tmp_path: Path, client_name, expected: str) -> None:
    project = ProjectInfo(project_id="prj_0001", project_code="MGF25-0001", project_name="Spring", client_name=client_name)
    context = DeliveryContext(
        run_id="run-1",
        request=DeliveryRequest("prj_0001"),
        project=project,
        tokens=ProvisioningTokens("MGF25-0001", "Spring", client_name),
        source_path=tmp_path,
        files=(),
        share_state=ShareLinkState(),
        history=DeliveryHistory(),
        started_at=NOW,
    )

    assert context.client_folder == expected
