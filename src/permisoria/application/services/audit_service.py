from __future__ import annotations

import json
import logging
import math
from datetime import timedelta, timezone
from typing import Any

from permisoria.core.errors import ValidationError
from permisoria.core.ids import new_uuid
from permisoria.core.time import now_utc, now_utc_iso, parse_iso
from permisoria.domain.models.verification import ActivityLogEntry
from permisoria.infrastructure.db.repos.activity_log_repo import ActivityLogRepo

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
RECENT_ACTIVITY_DAYS = 30

ACTION_DESCRIPTIONS = {
    "VERIFICATION_STARTED": "Started a verification attempt",
    "DOCUMENT_VERIFICATION_UPDATED": "Updated a document verification status",
    "VERIFICATION_DECISION_SUBMITTED": "Submitted a verification decision",
    "VERIFICATION_STATUS_VIEWED": "Viewed verification status",
    "CERTIFICATE_GENERATED": "Generated a verification certificate",
    "CERTIFICATE_VIEWED": "Viewed a verification certificate",
    "CERTIFICATE_REVOKED": "Revoked a verification certificate",
}


def describe_action(action: str, details: dict[str, Any] | None = None) -> str:
    base = ACTION_DESCRIPTIONS.get(action, action.replace("_", " ").capitalize())
    if action == "VERIFICATION_DECISION_SUBMITTED" and details and details.get("decision"):
        return f"{base}: {details['decision']}"
    if action == "DOCUMENT_VERIFICATION_UPDATED" and details and details.get("status"):
        return f"{base} to {details['status']}"
    return base


class AuditService:
    """Best-effort activity log writer.

    Failures are logged and swallowed; an audit write never undoes the
    operation it describes.
    """

    def __init__(self, activity_log_repo: ActivityLogRepo) -> None:
        self.activity_log_repo = activity_log_repo

    def log_event(
        self,
        *,
        owner_id: str,
        entity_type: str,
        entity_id: str | None,
        action: str,
        performed_by: str,
        details: dict[str, Any] | None = None,
    ) -> bool:
        try:
            self.activity_log_repo.insert_entry(
                ActivityLogEntry(
                    id=new_uuid(),
                    business_owner_id=owner_id,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    action=action,
                    action_description=describe_action(action, details),
                    performed_by=performed_by,
                    details_json=json.dumps(details or {}, ensure_ascii=True, sort_keys=True, default=str),
                    performed_at=now_utc_iso(),
                )
            )
        except Exception:
            logger.exception("Failed to write activity log %s for owner %s", action, owner_id)
            return False
        return True

    def list_events(
        self,
        owner_id: str,
        *,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        entity_type: str | None = None,
        action: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict[str, Any]:
        """Return one page of an owner's activity trail, newest first, with summary stats."""
        page = max(1, page)
        limit = min(max(1, limit), MAX_PAGE_SIZE)
        filters = {
            "entity_type": entity_type or None,
            "action": action or None,
            "since": _normalize_bound(start_date, "startDate"),
            "until": _normalize_bound(end_date, "endDate"),
        }
        entries = self.activity_log_repo.list_for_owner(owner_id, limit, (page - 1) * limit, **filters)
        total = self.activity_log_repo.count_for_owner(owner_id, **filters)
        stats = self.activity_log_repo.summarize_owner(
            owner_id, (now_utc() - timedelta(days=RECENT_ACTIVITY_DAYS)).isoformat()
        )
        return {
            "data": [activity_payload(entry) for entry in entries],
            "pagination": {
                "total": total,
                "pages": math.ceil(total / limit),
                "current": page,
                "limit": limit,
            },
            "stats": stats,
        }


def activity_payload(entry: ActivityLogEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "entityType": entry.entity_type,
        "entityId": entry.entity_id,
        "action": entry.action,
        "actionDescription": entry.action_description,
        "performedBy": entry.performed_by,
        "performedAt": entry.performed_at,
        "details": json.loads(entry.details_json or "{}"),
    }


def _normalize_bound(value: str | None, name: str) -> str | None:
    if not value:
        return None
    try:
        parsed = parse_iso(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {name}: {value!r}", details={"field": name}) from exc
    return parsed.astimezone(timezone.utc).isoformat()
