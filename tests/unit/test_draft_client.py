import io
import json
import urllib.error
import urllib.request

import pytest

from permisoria.core.errors import ConflictError, TransientIOError, ValidationError
from permisoria.wizard.client import HttpDraftPersister


class _FakeResponse:
    def __init__(self, payload: dict) -> None:
        self._raw = json.dumps(payload).encode("utf-8")
        self.status = 200

    def read(self) -> bytes:
        return self._raw

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        return None


def test_save_draft_posts_envelope_with_bearer_token(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = {}

    def fake_urlopen(request, timeout):
        seen["url"] = request.full_url
        seen["method"] = request.get_method()
        seen["auth"] = request.get_header("Authorization")
        seen["body"] = json.loads(request.data.decode("utf-8"))
        return _FakeResponse({"ok": True, "attemptId": "a-1", "savedAt": "2026-01-01T00:00:00+00:00"})

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    persister = HttpDraftPersister("http://127.0.0.1:8765/", "secret")

    result = persister("owner 1", {"currentStep": 2})

    assert result["attemptId"] == "a-1"
    assert seen["url"] == "http://127.0.0.1:8765/api/owners/owner%201/verification"
    assert seen["method"] == "POST"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {"isDraft": True, "draftData": {"currentStep": 2}}


def test_network_failure_is_transient(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(request, timeout):
        raise urllib.error.URLError("connection refused")

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(TransientIOError):
        HttpDraftPersister("http://127.0.0.1:1", "secret").save_draft("owner-1", {})


@pytest.mark.parametrize(
    ("code", "expected"),
    [(400, ValidationError), (409, ConflictError), (503, TransientIOError)],
)
def test_http_errors_map_to_domain_errors(monkeypatch: pytest.MonkeyPatch, code: int, expected) -> None:
    body = json.dumps({"error": "nope", "details": {"field": "x"}}).encode("utf-8")

    def fake_urlopen(request, timeout):
        raise urllib.error.HTTPError(request.full_url, code, "error", {}, io.BytesIO(body))

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(expected) as excinfo:
        HttpDraftPersister("http://127.0.0.1:8765", "secret").save_draft("owner-1", {})
    assert str(excinfo.value) == "nope"
    assert excinfo.value.details == {"field": "x"}
