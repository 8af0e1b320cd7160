from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Protocol

from permisoria.core.errors import (
    ConflictError,
    NotFoundError,
    PermisoriaError,
    TransientIOError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_ERRORS_BY_STATUS: dict[int, type[PermisoriaError]] = {
    400: ValidationError,
    401: UnauthorizedError,
    404: NotFoundError,
    409: ConflictError,
}


class HttpDraftPersister:
    """Saves wizard drafts through the JSON API as the given bearer-token actor."""

    def __init__(self, base_url: str, token: str, *, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def __call__(self, owner_id: str, snapshot: dict[str, Any]) -> dict[str, Any]:
        return self.save_draft(owner_id, snapshot)

    def save_draft(self, owner_id: str, snapshot: dict[str, Any]) -> dict[str, Any]:
        return self._request(
            "POST",
            self._verification_url(owner_id),
            {"isDraft": True, "draftData": snapshot},
        )

    def _verification_url(self, owner_id: str) -> str:
        return f"{self.base_url}/api/owners/{urllib.parse.quote(owner_id, safe='')}/verification"

    def _request(self, method: str, url: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        data = json.dumps(body).encode("utf-8") if body is not None else None
        request = urllib.request.Request(url, data=data, method=method)
        request.add_header("Authorization", f"Bearer {self.token}")
        request.add_header("Accept", "application/json")
        if data is not None:
            request.add_header("Content-Type", "application/json")

        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            raise _error_from_response(exc) from exc
        except (urllib.error.URLError, TimeoutError, ConnectionError) as exc:
            raise TransientIOError(f"Could not reach {self.base_url}: {exc}") from exc

        if not raw:
            return {}
        return json.loads(raw.decode("utf-8"))


def _error_from_response(exc: urllib.error.HTTPError) -> PermisoriaError:
    message = exc.reason if isinstance(exc.reason, str) else f"HTTP {exc.code}"
    details: Any = None
    try:
        payload = json.loads(exc.read().decode("utf-8") or "{}")
    except (ValueError, OSError):
        payload = {}
    if isinstance(payload, dict):
        message = str(payload.get("error") or message)
        details = payload.get("details")

    if exc.code >= 500:
        return TransientIOError(message, details=details)
    error_cls = _ERRORS_BY_STATUS.get(exc.code, PermisoriaError)
    return error_cls(message, details=details)


class DraftSaver(Protocol):
    def save_draft(self, owner_id: str, actor_id: str, draft_payload: Any) -> dict[str, Any]: ...


class ServiceDraftPersister:
    """Saves drafts by calling the verification service in-process."""

    def __init__(self, service: DraftSaver, actor_id: str) -> None:
        self.service = service
        self.actor_id = actor_id

    def __call__(self, owner_id: str, snapshot: dict[str, Any]) -> dict[str, Any]:
        return self.service.save_draft(owner_id, self.actor_id, snapshot)
