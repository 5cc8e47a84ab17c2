"""Signing keys used by the tool to authenticate against LTI platforms.

The tool signs its client assertions with a single active RSA key. Platforms
verify them against the JWKS published by the tool, so the ``kid`` placed in
the assertion header must match the one rendered by :meth:`LTIKeySet.jwks_document`.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from .errors import LTIConfigurationError


logger = logging.getLogger(__name__)


def compute_key_id(public_key: RSAPublicKey) -> str:
    """Derive a stable ``kid`` from the RSA modulus, unless ``LTI_KEY_ID`` overrides it."""

    modulus = public_key.public_numbers().n
    digest = hashlib.sha256(modulus.to_bytes((modulus.bit_length() + 7) // 8, "big")).hexdigest()
    return os.getenv("LTI_KEY_ID") or digest[:16]


def encode_jwk_int(value: int) -> str:
    """Unpadded base64url big-endian encoding used for the JWK ``n`` and ``e`` members."""

    raw = value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _public_pem(public_key: RSAPublicKey) -> str:
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


@dataclass(frozen=True, slots=True)
class LTIKeySet:
    private_key_pem: str
    public_key_pem: str
    key_id: str

    @classmethod
    def from_private_key(cls, private_key: RSAPrivateKey, key_id: str | None = None) -> "LTIKeySet":
        public_key = private_key.public_key()
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("utf-8")
        return cls(
            private_key_pem=private_pem,
            public_key_pem=_public_pem(public_key),
            key_id=key_id or compute_key_id(public_key),
        )

    def public_jwk(self) -> dict[str, str]:
        public_key = serialization.load_pem_public_key(self.public_key_pem.encode("utf-8"))
        if not isinstance(public_key, RSAPublicKey):
            raise LTIConfigurationError("La clé publique LTI doit être de type RSA.")
        numbers = public_key.public_numbers()
        return {
            "kid": self.key_id,
            "kty": "RSA",
            "alg": "RS256",
            "use": "sig",
            "n": encode_jwk_int(numbers.n),
            "e": encode_jwk_int(numbers.e),
        }

    def jwks_document(self) -> dict[str, Any]:
        return {"keys": [self.public_jwk()]}


class KeyProvider(Protocol):
    def active_key(self) -> LTIKeySet:
        """Return the key currently used to sign client assertions."""


class StaticKeyProvider:
    """Holds one active key set; ``set_active`` swaps it at runtime."""

    def __init__(self, key_set: LTIKeySet) -> None:
        self._key_set = key_set

    def active_key(self) -> LTIKeySet:
        return self._key_set

    def set_active(self, key_set: LTIKeySet) -> None:
        logger.info("Clé LTI active remplacée (kid=%s)", key_set.key_id)
        self._key_set = key_set


class EnvKeyProvider:
    """Loads the active key from the environment on first use.

    The private key comes from ``LTI_PRIVATE_KEY`` (PEM, ``\\n`` escapes
    allowed) or the file named by ``LTI_PRIVATE_KEY_PATH``. An explicit public
    key (``LTI_PUBLIC_KEY``/``LTI_PUBLIC_KEY_PATH``) is only needed when the
    published key differs from the one derived from the private key.
    """

    def __init__(self) -> None:
        self._key_set: LTIKeySet | None = None

    def active_key(self) -> LTIKeySet:
        if self._key_set is None:
            self._key_set = self._load()
            logger.debug("Clé LTI chargée depuis l'environnement (kid=%s)", self._key_set.key_id)
        return self._key_set

    def reload(self) -> None:
        """Drop the cached key so the next call reads the environment again."""

        self._key_set = None

    @staticmethod
    def _pem(value_env: str, path_env: str) -> bytes | None:
        inline = os.getenv(value_env)
        if inline:
            return inline.replace("\\n", "\n").strip().encode("utf-8")
        location = os.getenv(path_env)
        if not location:
            return None
        path = Path(location)
        if not path.is_file():
            raise LTIConfigurationError(f"{path_env} pointe vers {location!r}, fichier introuvable.")
        return path.read_bytes()

    def _load(self) -> LTIKeySet:
        private_pem = self._pem("LTI_PRIVATE_KEY", "LTI_PRIVATE_KEY_PATH")
        if private_pem is None:
            raise LTIConfigurationError(
                "Aucune clé privée LTI: définir LTI_PRIVATE_KEY ou LTI_PRIVATE_KEY_PATH."
            )
        try:
            private_key = serialization.load_pem_private_key(private_pem, password=None)
        except ValueError as exc:
            raise LTIConfigurationError("Clé privée LTI illisible (PEM invalide).") from exc
        if not isinstance(private_key, RSAPrivateKey):
            raise LTIConfigurationError("La clé privée LTI doit être de type RSA.")

        key_set = LTIKeySet.from_private_key(private_key)
        public_pem = self._pem("LTI_PUBLIC_KEY", "LTI_PUBLIC_KEY_PATH")
        if public_pem is None:
            return key_set

        try:
            public_key = serialization.load_pem_public_key(public_pem)
        except ValueError as exc:
            raise LTIConfigurationError("Clé publique LTI illisible (PEM invalide).") from exc
        if not isinstance(public_key, RSAPublicKey):
            raise LTIConfigurationError("La clé publique LTI doit être de type RSA.")
        if public_key.public_numbers() != private_key.public_key().public_numbers():
            logger.warning("La clé publique LTI configurée ne correspond pas à la clé privée.")
        return LTIKeySet(
            private_key_pem=key_set.private_key_pem,
            public_key_pem=_public_pem(public_key),
            key_id=compute_key_id(public_key),
        )


__all__ = [
    "EnvKeyProvider",
    "KeyProvider",
    "LTIKeySet",
    "StaticKeyProvider",
    "compute_key_id",
    "encode_jwk_int",
]
