"""LTI 1.3 Advantage platform authentication for the tool's service calls."""

from .access_token import (
    AGS_GRADE_PASSBACK_SCOPES,
    AccessToken,
    LTIAccessTokenService,
    create_client_assertion,
    get_access_token_service,
    request_token,
)
from .errors import (
    LTIAccessTokenError,
    LTIConfigurationError,
    LTIInvalidResponseFormat,
    LTISigningError,
    LTITokenFetchFailed,
)
from .keys import EnvKeyProvider, KeyProvider, LTIKeySet, StaticKeyProvider
from .registrations import LTIRegistration, LTIResource, RegistrationStore

__all__ = [
    "AGS_GRADE_PASSBACK_SCOPES",
    "AccessToken",
    "EnvKeyProvider",
    "KeyProvider",
    "LTIAccessTokenError",
    "LTIAccessTokenService",
    "LTIConfigurationError",
    "LTIInvalidResponseFormat",
    "LTIKeySet",
    "LTIRegistration",
    "LTIResource",
    "LTISigningError",
    "LTITokenFetchFailed",
    "RegistrationStore",
    "StaticKeyProvider",
    "create_client_assertion",
    "get_access_token_service",
    "request_token",
]
