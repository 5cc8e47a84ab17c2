from __future__ import annotations

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from backend.lti_advantage.keys import LTIKeySet


def _generate_key_set(key_id: str) -> LTIKeySet:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return LTIKeySet.from_private_key(private_key, key_id=key_id)


@pytest.fixture(scope="session")
def key_set() -> LTIKeySet:
    return _generate_key_set("kid-primary")


@pytest.fixture(scope="session")
def other_key_set() -> LTIKeySet:
    return _generate_key_set("kid-rotated")


@pytest.fixture(autouse=True)
def _clean_lti_env(monkeypatch):
    for name in (
        "LTI_PRIVATE_KEY",
        "LTI_PRIVATE_KEY_PATH",
        "LTI_PUBLIC_KEY",
        "LTI_PUBLIC_KEY_PATH",
        "LTI_KEY_ID",
        "LTI_REGISTRATIONS_PATH",
        "LTI_REGISTRATIONS_JSON",
        "LTI_ASSERTION_TTL",
    ):
        monkeypatch.delenv(name, raising=False)
