import logging
from pathlib import Path

import pytest

from permisoria.application.services.actor_service import ActorService
from permisoria.application.services.audit_service import AuditService, describe_action
from permisoria.application.services.owner_service import OwnerService
from permisoria.infrastructure.db.repos.activity_log_repo import ActivityLogRepo
from permisoria.infrastructure.db.repos.actor_repo import ActorRepo
from permisoria.infrastructure.db.repos.owner_repo import OwnerRepo
from permisoria.infrastructure.db.sqlite import initialize_schema


class _BrokenRepo:
    def insert_entry(self, entry) -> None:
        raise RuntimeError("disk full")


def test_describe_action_adds_decision_and_status() -> None:
    assert describe_action("VERIFICATION_DECISION_SUBMITTED", {"decision": "REJECTED"}).endswith(": REJECTED")
    assert describe_action("DOCUMENT_VERIFICATION_UPDATED", {"status": "EXPIRED"}).endswith("to EXPIRED")
    assert describe_action("SOMETHING_NEW") == "Something new"


def test_log_event_persists_entry(tmp_path: Path) -> None:
    db_path = tmp_path / "permisoria.db"
    initialize_schema(db_path)
    actor_repo = ActorRepo(db_path)
    manager = ActorService(actor_repo).add_actor("Maria Manager").actor
    owner = OwnerService(OwnerRepo(db_path), actor_repo).add_owner(manager.id, first_name="Ana", last_name="Rivera")
    audit = AuditService(ActivityLogRepo(db_path))

    assert audit.log_event(
        owner_id=owner.id,
        entity_type="verification",
        entity_id="attempt-1",
        action="VERIFICATION_STARTED",
        performed_by=manager.id,
        details={"attempt": 1},
    )

    page = audit.list_events(owner.id)
    (entry,) = page["data"]
    assert entry["action"] == "VERIFICATION_STARTED"
    assert entry["actionDescription"] == "Started a verification attempt"
    assert entry["details"] == {"attempt": 1}
    assert page["pagination"] == {"total": 1, "pages": 1, "current": 1, "limit": 20}
    assert page["stats"]["byAction"] == {"VERIFICATION_STARTED": 1}


def test_log_event_failure_is_swallowed(caplog: pytest.LogCaptureFixture) -> None:
    audit = AuditService(_BrokenRepo())
    with caplog.at_level(logging.ERROR):
        ok = audit.log_event(
            owner_id="owner-1",
            entity_type="certificate",
            entity_id=None,
            action="CERTIFICATE_VIEWED",
            performed_by="actor-1",
        )
    assert ok is False
    assert "CERTIFICATE_VIEWED" in caplog.text
