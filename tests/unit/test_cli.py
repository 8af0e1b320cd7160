import json
from pathlib import Path

import pytest

from permisoria.application.services.actor_service import ActorService
from permisoria.application.services.owner_service import OwnerService
from permisoria.cli.main import main
from permisoria.core.config import load_paths
from permisoria.infrastructure.db.repos.actor_repo import ActorRepo
from permisoria.infrastructure.db.repos.owner_repo import OwnerRepo


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PERMISORIA_HOME", raising=False)
    monkeypatch.delenv("PERMISORIA_NEEDS_INFO_POLICY", raising=False)


def _run(root: Path, *argv: str) -> int:
    return main(["--project-root", str(root), *argv])


def test_commands_require_initialized_project(tmp_path: Path) -> None:
    assert _run(tmp_path, "actors", "add", "--name", "Maria Manager") == 1


def test_cli_verification_flow(tmp_path: Path) -> None:
    assert _run(tmp_path, "init") == 0
    assert _run(tmp_path, "init") == 0

    assert _run(tmp_path, "actors", "add", "--name", "Maria Manager", "--token", "manager-token") == 0
    paths = load_paths(tmp_path)
    manager = ActorService(ActorRepo(paths.db_path)).get_current_actor("manager-token")

    assert _run(tmp_path, "owners", "add", "--manager-id", manager.id, "--first-name", "Ana", "--last-name", "Rivera") == 0
    owners = OwnerService(OwnerRepo(paths.db_path), ActorRepo(paths.db_path)).list_owners(manager.id)
    assert [owner.display_name for owner in owners] == ["Ana Rivera"]
    owner_id = owners[0].id

    assert _run(tmp_path, "documents", "add", "--owner-id", owner_id, "--filename", "id.pdf", "--category", "identity") == 0
    assert _run(tmp_path, "owners", "list", "--manager-id", manager.id) == 0
    assert _run(tmp_path, "verification", "start", "--owner-id", owner_id, "--actor-id", manager.id) == 0

    status_owner = OwnerRepo(paths.db_path).get_by_id(owner_id)
    decision_file = tmp_path / "decision.json"
    decision_file.write_text(
        json.dumps(
            {
                "verificationId": status_owner.current_verification_attempt_id,
                "decision": "VERIFIED",
                "sections": {
                    "identity": {"status": "VERIFIED"},
                    "address": {"status": "VERIFIED"},
                    "businessAffiliation": {"status": "VERIFIED"},
                },
            }
        ),
        encoding="utf-8",
    )
    args = ("--owner-id", owner_id, "--actor-id", manager.id)
    assert _run(tmp_path, "verification", "decide", *args, "--file", str(decision_file)) == 0
    assert _run(tmp_path, "verification", "decide", *args, "--file", str(decision_file)) == 1
    assert _run(tmp_path, "verification", "decide", *args, "--file", str(tmp_path / "missing.json")) == 1
    assert _run(tmp_path, "verification", "status", *args, "--history") == 0
    assert _run(tmp_path, "certificate", "show", *args) == 0
    assert _run(tmp_path, "verification", "log", *args, "--entity-type", "certificate") == 0


def test_unknown_owner_fails_cleanly(tmp_path: Path) -> None:
    assert _run(tmp_path, "init") == 0
    assert _run(tmp_path, "actors", "add", "--name", "Maria Manager", "--token", "t") == 0
    manager = ActorService(ActorRepo(load_paths(tmp_path).db_path)).get_current_actor("t")
    assert _run(tmp_path, "verification", "status", "--owner-id", "nope", "--actor-id", manager.id) == 1
