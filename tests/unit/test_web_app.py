from pathlib import Path

from fastapi.testclient import TestClient

from permisoria.application.services.actor_service import ActorService
from permisoria.application.services.owner_service import OwnerService
from permisoria.core.config import AppPaths, AppSettings
from permisoria.infrastructure.db.repos.actor_repo import ActorRepo
from permisoria.infrastructure.db.repos.owner_repo import OwnerRepo
from permisoria.web.app import create_app
from permisoria.wizard.draft import new_draft

SECTIONS = {
    "identity": {"status": "VERIFIED"},
    "address": {"status": "VERIFIED"},
    "businessAffiliation": {"status": "VERIFIED"},
}


def _setup(tmp_path: Path):
    project_root = tmp_path / "proj"
    project_root.mkdir(parents=True, exist_ok=True)
    paths = AppPaths(
        project_root=project_root,
        data_dir=project_root / ".permisoria",
        db_path=project_root / ".permisoria" / "permisoria.db",
    )
    app = create_app(paths, AppSettings(public_base_url="https://permits.example.gov"))

    actor_repo = ActorRepo(paths.db_path)
    actors = ActorService(actor_repo)
    manager = actors.add_actor("Maria Manager", token="manager-token")
    actors.add_actor("Oscar Other", token="other-token")

    owners = OwnerService(OwnerRepo(paths.db_path), actor_repo)
    owner = owners.add_owner(manager.actor.id, first_name="Ana", last_name="Rivera")
    document = owners.add_document(owner.id, "passport.pdf", "identity")
    return TestClient(app), owner, document


def _auth(token: str = "manager-token") -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_health_is_public(tmp_path: Path) -> None:
    client, _, _ = _setup(tmp_path)
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_requests_without_valid_token_are_unauthorized(tmp_path: Path) -> None:
    client, owner, _ = _setup(tmp_path)
    url = f"/api/owners/{owner.id}/verification"

    r = client.get(url)
    assert r.status_code == 401
    assert r.json()["error"]

    r = client.get(url, headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 401

    r = client.get(url, headers={"Authorization": "Basic manager-token"})
    assert r.status_code == 401


def test_unmanaged_owner_is_not_found(tmp_path: Path) -> None:
    client, owner, _ = _setup(tmp_path)
    r = client.get(f"/api/owners/{owner.id}/verification", headers=_auth("other-token"))
    assert r.status_code == 404
    assert set(r.json()) >= {"error", "details"}


def test_verification_flow_end_to_end(tmp_path: Path) -> None:
    client, owner, document = _setup(tmp_path)
    url = f"/api/owners/{owner.id}/verification"

    r = client.post(url, headers=_auth())
    assert r.status_code == 201
    attempt_id = r.json()["attempt"]["id"]

    draft = new_draft(owner.id, {"first_name": "Ana", "last_name": "Rivera"}, [document.id]).to_payload()
    r = client.post(url, headers=_auth(), json={"isDraft": True, "draftData": draft})
    assert r.status_code == 200
    assert r.json()["attemptId"] == attempt_id
    assert r.json()["savedAt"]

    r = client.post(url, headers=_auth(), json={"isDraft": True, "draftData": {"currentStep": "x"}})
    assert r.status_code == 400
    assert r.json()["details"]

    r = client.get(url, headers=_auth())
    assert r.status_code == 200
    body = r.json()
    assert body["currentAttempt"]["draftData"] == draft
    assert "history" not in body["currentAttempt"]
    assert "documents" not in body

    r = client.get(url, headers=_auth(), params={"includeDocuments": "true", "includeHistory": "true"})
    assert r.status_code == 200
    body = r.json()
    assert [event["action"] for event in body["currentAttempt"]["history"]] == ["DRAFT_SAVED", "STARTED"]
    assert body["documents"]["totals"]["total"] == 1

    r = client.post(
        f"{url}/documents",
        headers=_auth(),
        json={"verificationId": attempt_id, "documentId": document.id, "status": "OTHER_ISSUE"},
    )
    assert r.status_code == 400

    r = client.post(
        f"{url}/documents",
        headers=_auth(),
        json={"verificationId": attempt_id, "documentId": document.id, "status": "VERIFIED"},
    )
    assert r.status_code == 200
    assert r.json()["documentVerification"]["status"] == "VERIFIED"

    r = client.get(f"{url}/documents", headers=_auth(), params={"verificationId": attempt_id})
    assert r.status_code == 200
    assert r.json()["totals"]["verified"] == 1

    decision = {"verificationId": attempt_id, "decision": "VERIFIED", "sections": SECTIONS}
    r = client.put(url, headers=_auth(), json=decision)
    assert r.status_code == 200
    assert r.json()["ownerStatus"] == "VERIFIED"
    certificate = r.json()["certificate"]
    assert certificate["validationUrl"].startswith("https://permits.example.gov/verify/")

    r = client.put(url, headers=_auth(), json=decision)
    assert r.status_code == 409

    r = client.put(url, headers=_auth(), json={"verificationId": attempt_id, "decision": "VERIFIED"})
    assert r.status_code == 400

    r = client.get(f"{url}/certificate", headers=_auth())
    assert r.status_code == 200
    assert r.json()["certificate"]["id"] == certificate["id"]

    r = client.get(f"/api/certificates/verify/{certificate['verificationHash']}")
    assert r.status_code == 200
    assert r.json()["valid"] is True

    r = client.delete(
        f"{url}/certificate",
        headers=_auth(),
        params={"certificateId": certificate["id"], "reason": "Issued in error"},
    )
    assert r.status_code == 200
    assert r.json()["certificate"]["isRevoked"] is True

    r = client.delete(
        f"{url}/certificate",
        headers=_auth(),
        params={"certificateId": certificate["id"], "reason": "Again"},
    )
    assert r.status_code == 409

    r = client.delete(
        f"{url}/certificate",
        headers=_auth(),
        params={"certificateId": "missing", "reason": "x"},
    )
    assert r.status_code == 404

    r = client.get(f"/api/certificates/verify/{certificate['verificationHash']}")
    assert r.json()["status"] == "REVOKED"


def test_certificate_missing_before_verification(tmp_path: Path) -> None:
    client, owner, _ = _setup(tmp_path)
    r = client.get(f"/api/owners/{owner.id}/verification/certificate", headers=_auth())
    assert r.status_code == 404


def test_activity_logs_are_paged_and_filtered(tmp_path: Path) -> None:
    client, owner, document = _setup(tmp_path)
    url = f"/api/owners/{owner.id}/verification"

    attempt_id = client.post(url, headers=_auth()).json()["attempt"]["id"]
    client.post(
        f"{url}/documents",
        headers=_auth(),
        json={"verificationId": attempt_id, "documentId": document.id, "status": "VERIFIED"},
    )
    client.put(url, headers=_auth(), json={"verificationId": attempt_id, "decision": "VERIFIED", "sections": SECTIONS})
    client.get(url, headers=_auth())

    logs_url = f"/api/owners/{owner.id}/activity-logs"
    r = client.get(logs_url, headers=_auth())
    assert r.status_code == 200
    body = r.json()
    actions = [entry["action"] for entry in body["data"]]
    assert {"VERIFICATION_STARTED", "DOCUMENT_VERIFICATION_UPDATED", "CERTIFICATE_GENERATED"} <= set(actions)
    assert "VERIFICATION_STATUS_VIEWED" in actions
    assert body["pagination"]["total"] == len(actions)
    assert body["stats"]["total"] == len(actions)
    assert body["stats"]["recentActivity"] == len(actions)

    r = client.get(logs_url, headers=_auth(), params={"entityType": "certificate"})
    assert [entry["action"] for entry in r.json()["data"]] == ["CERTIFICATE_GENERATED"]

    r = client.get(logs_url, headers=_auth(), params={"limit": 2, "page": 2})
    assert r.json()["pagination"]["current"] == 2
    assert len(r.json()["data"]) == min(2, len(actions) - 2)

    r = client.get(logs_url, headers=_auth(), params={"limit": 500})
    assert r.json()["pagination"]["limit"] == 100

    r = client.get(logs_url, headers=_auth(), params={"startDate": "2999-01-01"})
    assert r.json()["data"] == []

    r = client.get(logs_url, headers=_auth(), params={"startDate": "not-a-date"})
    assert r.status_code == 400

    r = client.get(logs_url, headers=_auth("other-token"))
    assert r.status_code == 404


def test_revoke_without_reason_succeeds(tmp_path: Path) -> None:
    client, owner, _ = _setup(tmp_path)
    url = f"/api/owners/{owner.id}/verification"
    attempt_id = client.post(url, headers=_auth()).json()["attempt"]["id"]
    certificate = client.put(
        url, headers=_auth(), json={"verificationId": attempt_id, "decision": "VERIFIED", "sections": SECTIONS}
    ).json()["certificate"]

    r = client.delete(f"{url}/certificate", headers=_auth(), params={"certificateId": certificate["id"]})
    assert r.status_code == 200
    assert r.json()["certificate"]["revokedReason"] == "No reason provided"
