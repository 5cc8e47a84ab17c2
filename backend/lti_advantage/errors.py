from __future__ import annotations


class LTIAccessTokenError(RuntimeError):
    """Base class for failures while obtaining an LTI Advantage access token."""


class LTIConfigurationError(LTIAccessTokenError):
    """Raised when mandatory LTI configuration is missing."""


class LTISigningError(LTIAccessTokenError):
    """Raised when the client assertion cannot be signed."""


class LTIInvalidResponseFormat(LTIAccessTokenError):
    """Raised when the token endpoint answers 200 with a body that is not a JSON object."""

    def __init__(self, message: str = "Réponse JSON invalide du token_endpoint.") -> None:
        super().__init__(message)


class LTITokenFetchFailed(LTIAccessTokenError):
    """Raised for any other token endpoint failure (HTTP status, transport, timeout)."""

    def __init__(
        self,
        url: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        self.body = body
        self.cause = cause
        super().__init__(self._render())

    def _render(self) -> str:
        if self.status_code is not None:
            detail = f"statut {self.status_code}"
            if self.body:
                detail = f"{detail}: {self.body}"
        elif self.cause is not None:
            detail = f"{type(self.cause).__name__}: {self.cause}"
        else:
            detail = "erreur inconnue"
        return f"Erreur lors de la récupération du jeton d'accès ({self.url}, {detail})"


__all__ = [
    "LTIAccessTokenError",
    "LTIConfigurationError",
    "LTIInvalidResponseFormat",
    "LTISigningError",
    "LTITokenFetchFailed",
]
