"""OAuth2 client-credentials access tokens for LTI Advantage services.

The tool authenticates to the platform's token endpoint with a client
assertion signed by its active key (``private_key_jwt``) instead of a client
secret:

* :func:`create_client_assertion` builds and signs the JWT
* :func:`request_token` posts the grant and parses the platform's answer
* :class:`LTIAccessTokenService` composes both, and requests the AGS grade
  passback scopes for a resource

Tokens are not cached; every call signs a new assertion and performs one
round trip. ``expires_in`` is returned as reported by the platform.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol

import httpx
import jwt
from jwt import PyJWTError

from .errors import (
    LTIConfigurationError,
    LTIInvalidResponseFormat,
    LTISigningError,
    LTITokenFetchFailed,
)
from .keys import EnvKeyProvider, KeyProvider
from .registrations import LTIRegistration, LTIResource


logger = logging.getLogger(__name__)


GRANT_TYPE = "client_credentials"
CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

LINEITEM_SCOPE = "https://purl.imsglobal.org/spec/lti-ags/scope/lineitem"
SCORE_SCOPE = "https://purl.imsglobal.org/spec/lti-ags/scope/score"
AGS_GRADE_PASSBACK_SCOPES: tuple[str, ...] = (LINEITEM_SCOPE, SCORE_SCOPE)

_ERROR_BODY_LIMIT = 500


@dataclass(frozen=True, slots=True)
class AccessToken:
    access_token: str | None
    token_type: str | None
    expires_in: int | None
    scope: str | None

    @property
    def scopes(self) -> list[str]:
        return self.scope.split() if self.scope else []

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AccessToken":
        return cls(
            access_token=_as_str(payload.get("access_token")),
            token_type=_as_str(payload.get("token_type")),
            expires_in=_as_int(payload.get("expires_in")),
            scope=_as_str(payload.get("scope")),
        )


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status_code: int
    text: str


class Signer(Protocol):
    def sign(self, claims: Mapping[str, Any], headers: Mapping[str, Any], private_key_pem: str) -> str:
        """Return the compact RS256 JWT for ``claims``."""


class HttpClient(Protocol):
    async def post(self, url: str, headers: Mapping[str, str], data: Mapping[str, str]) -> HttpResponse:
        """Send a form-encoded POST and return the raw response."""


class PyJWTSigner:
    algorithm = "RS256"

    def sign(self, claims: Mapping[str, Any], headers: Mapping[str, Any], private_key_pem: str) -> str:
        return jwt.encode(dict(claims), private_key_pem, algorithm=self.algorithm, headers=dict(headers))


class HttpxClient:
    """Form POSTs through :class:`httpx.AsyncClient`, one client per request."""

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    async def post(self, url: str, headers: Mapping[str, str], data: Mapping[str, str]) -> HttpResponse:
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            response = await client.post(url, data=dict(data), headers=dict(headers))
            return HttpResponse(status_code=response.status_code, text=response.text)


def create_client_assertion(
    registration: LTIRegistration,
    key_provider: KeyProvider,
    signer: Signer,
    *,
    lifetime: int | None = None,
) -> str:
    """Sign the client assertion identifying this tool to ``registration``'s platform.

    ``iss`` and ``sub`` are the client id and ``aud`` is the registration's
    audience override, falling back to the token endpoint. ``iat``, ``exp`` and
    ``jti`` are only added when ``lifetime`` is given.
    """

    try:
        key_set = key_provider.active_key()
    except Exception as exc:
        raise LTISigningError(f"Aucune clé de signature LTI active: {exc}") from exc

    claims: dict[str, Any] = {
        "iss": registration.client_id,
        "sub": registration.client_id,
        "aud": registration.assertion_audience,
    }
    if lifetime is not None:
        now = int(time.time())
        claims.update({"iat": now, "exp": now + lifetime, "jti": secrets.token_urlsafe(16)})

    headers = {"kid": key_set.key_id, "alg": "RS256", "typ": "JWT"}
    try:
        return signer.sign(claims, headers, key_set.private_key_pem)
    except (PyJWTError, ValueError, TypeError, AttributeError) as exc:
        raise LTISigningError(
            f"Impossible de signer l'assertion client LTI (kid={key_set.key_id})."
        ) from exc


def _truncate(text: str) -> str:
    text = text.strip()
    if len(text) <= _ERROR_BODY_LIMIT:
        return text
    return text[:_ERROR_BODY_LIMIT] + "…"


async def request_token(
    token_endpoint: str,
    client_assertion: str,
    scopes: Iterable[str],
    http_client: HttpClient,
) -> AccessToken:
    form_data = {
        "grant_type": GRANT_TYPE,
        "client_assertion_type": CLIENT_ASSERTION_TYPE,
        "client_assertion": client_assertion,
        "scope": " ".join(scopes),
    }
    headers = {"Content-Type": FORM_CONTENT_TYPE}
    logger.debug("Demande de jeton LTI à %s (scope=%s)", token_endpoint, form_data["scope"])

    try:
        response = await http_client.post(token_endpoint, headers=headers, data=form_data)
    except (httpx.HTTPError, OSError) as exc:
        logger.warning("Échec réseau vers le token_endpoint %s: %s", token_endpoint, exc)
        raise LTITokenFetchFailed(token_endpoint, cause=exc) from exc

    if response.status_code != 200:
        logger.warning("Le token_endpoint %s a répondu %s", token_endpoint, response.status_code)
        raise LTITokenFetchFailed(
            token_endpoint,
            status_code=response.status_code,
            body=_truncate(response.text),
        )

    try:
        payload = json.loads(response.text)
    except ValueError as exc:
        logger.warning("Réponse non JSON du token_endpoint %s", token_endpoint)
        raise LTIInvalidResponseFormat() from exc
    if not isinstance(payload, dict):
        raise LTIInvalidResponseFormat()

    return AccessToken.from_payload(payload)


class LTIAccessTokenService:
    """Obtains AGS access tokens with an injected key provider, signer and HTTP client."""

    def __init__(
        self,
        key_provider: KeyProvider | None = None,
        *,
        signer: Signer | None = None,
        http_client: HttpClient | None = None,
        assertion_lifetime: int | None = None,
    ) -> None:
        self.key_provider = key_provider or EnvKeyProvider()
        self.signer = signer or PyJWTSigner()
        self.http_client = http_client or HttpxClient()
        self.assertion_lifetime = assertion_lifetime

    def create_client_assertion(self, registration: LTIRegistration) -> str:
        return create_client_assertion(
            registration,
            self.key_provider,
            self.signer,
            lifetime=self.assertion_lifetime,
        )

    async def fetch_access_token(self, registration: LTIRegistration, scopes: Iterable[str]) -> AccessToken:
        client_assertion = self.create_client_assertion(registration)
        token = await request_token(registration.token_endpoint, client_assertion, scopes, self.http_client)
        logger.info(
            "Jeton d'accès LTI obtenu pour %s (client_id=%s, expires_in=%s)",
            registration.token_endpoint,
            registration.client_id,
            token.expires_in,
        )
        return token

    async def fetch_resource_access_token(self, resource: LTIResource) -> AccessToken:
        """Request the line item and score scopes for ``resource``'s registration."""

        return await self.fetch_access_token(resource.registration, AGS_GRADE_PASSBACK_SCOPES)


def _assertion_lifetime_from_env() -> int | None:
    raw_value = os.getenv("LTI_ASSERTION_TTL")
    if not raw_value:
        return None
    try:
        lifetime = int(raw_value)
    except ValueError as exc:
        raise LTIConfigurationError(f"LTI_ASSERTION_TTL doit être un entier (reçu {raw_value!r}).") from exc
    return lifetime if lifetime > 0 else None


_access_token_service: LTIAccessTokenService | None = None
_access_token_error: Exception | None = None


def get_access_token_service() -> LTIAccessTokenService:
    global _access_token_service, _access_token_error
    if _access_token_service is None:
        try:
            _access_token_service = LTIAccessTokenService(
                assertion_lifetime=_assertion_lifetime_from_env(),
            )
        except Exception as exc:  # configuration errors only
            _access_token_error = exc
            raise
    return _access_token_service


def get_access_token_boot_error() -> Exception | None:
    return _access_token_error


__all__ = [
    "AGS_GRADE_PASSBACK_SCOPES",
    "AccessToken",
    "HttpClient",
    "HttpResponse",
    "HttpxClient",
    "LTIAccessTokenService",
    "PyJWTSigner",
    "Signer",
    "create_client_assertion",
    "get_access_token_boot_error",
    "get_access_token_service",
    "request_token",
]
