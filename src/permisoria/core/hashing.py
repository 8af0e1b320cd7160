from __future__ import annotations

import hashlib
import json
from typing import Any


def compute_bytes_digest(data: bytes, alg: str = "sha256") -> str:
    h = hashlib.new(alg)
    h.update(data)
    return h.hexdigest()


def compute_text_digest(text: str, alg: str = "sha256") -> str:
    return compute_bytes_digest(text.encode("utf-8"), alg)


def compute_json_digest(payload: Any, alg: str = "sha256") -> str:
    canonical = json.dumps(payload, ensure_ascii=True, sort_keys=True, separators=(",", ":"))
    return compute_text_digest(canonical, alg)
