import re

from permisoria.core.hashing import compute_bytes_digest, compute_json_digest
from permisoria.core.ids import new_certificate_number, new_token


def test_compute_bytes_digest_sha256() -> None:
    assert (
        compute_bytes_digest(b"permisoria")
        == "d8990a1233ae63d3e60278a3c6c3c968da22a267be02c59d512101f0a0c81334"
    )


def test_json_digest_ignores_key_order() -> None:
    assert compute_json_digest({"a": 1, "b": "x"}) == compute_json_digest({"b": "x", "a": 1})
    assert compute_json_digest({"a": 1}) != compute_json_digest({"a": 2})


def test_certificate_number_format() -> None:
    for _ in range(50):
        assert re.fullmatch(r"PR-BO-2026-\d{6}", new_certificate_number(2026))


def test_tokens_are_unique() -> None:
    assert len({new_token() for _ in range(20)}) == 20
