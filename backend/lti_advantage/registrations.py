"""Platform registrations the tool requests access tokens from."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .errors import LTIConfigurationError


logger = logging.getLogger(__name__)


_ANY_URL = TypeAdapter(AnyUrl)


class LTIRegistration(BaseModel):
    token_endpoint: str
    client_id: str
    audience: str | None = Field(default=None, alias="auth_server")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("token_endpoint")
    @classmethod
    def _validate_token_endpoint(cls, value: str) -> str:
        # keep the caller's exact string, it is also the default assertion audience
        try:
            _ANY_URL.validate_python(value)
        except ValidationError as exc:
            raise ValueError(f"token_endpoint invalide: {value!r}") from exc
        return value

    @property
    def assertion_audience(self) -> str:
        if self.audience:
            return self.audience
        return self.token_endpoint

    def cache_key(self) -> tuple[str, str]:
        return (self.token_endpoint, self.client_id)


class LTIResource(BaseModel):
    """Any LTI object (resource link, line item) that knows its platform registration."""

    registration: LTIRegistration
    resource_id: str | None = None

    model_config = ConfigDict(frozen=True)


def _read_registration_data() -> Any:
    config_path_env = os.getenv("LTI_REGISTRATIONS_PATH")
    raw_json_env = os.getenv("LTI_REGISTRATIONS_JSON")

    try:
        if config_path_env:
            path = Path(config_path_env)
            if not path.exists():
                raise LTIConfigurationError(
                    f"Le fichier d'enregistrements LTI {config_path_env!r} est introuvable."
                )
            return json.loads(path.read_text(encoding="utf-8"))
        if raw_json_env:
            return json.loads(raw_json_env)
    except json.JSONDecodeError as exc:
        raise LTIConfigurationError(f"Configuration des enregistrements LTI illisible: {exc}") from exc
    return []


def load_registrations() -> dict[tuple[str, str], LTIRegistration]:
    data = _read_registration_data()

    if isinstance(data, dict):
        values = data.values()
    elif isinstance(data, list):
        values = data
    else:
        raise LTIConfigurationError("La configuration des enregistrements LTI doit être une liste ou un mapping.")

    registrations: dict[tuple[str, str], LTIRegistration] = {}
    for item in values:
        try:
            registration = LTIRegistration.model_validate(item)
        except ValidationError as exc:
            raise LTIConfigurationError(f"Entrée d'enregistrement LTI invalide: {exc}") from exc
        registrations[registration.cache_key()] = registration
    logger.debug("%d enregistrement(s) LTI chargé(s)", len(registrations))
    return registrations


class RegistrationStore:
    """Read-only lookup over the configured registrations."""

    def __init__(self, registrations: dict[tuple[str, str], LTIRegistration] | None = None) -> None:
        self._registrations = registrations if registrations is not None else load_registrations()

    def get(self, token_endpoint: str, client_id: str) -> LTIRegistration:
        registration = self._registrations.get((token_endpoint, client_id))
        if registration is None:
            raise LTIConfigurationError(
                f"Aucun enregistrement LTI pour {token_endpoint} (client_id={client_id})."
            )
        return registration

    def for_client(self, client_id: str) -> list[LTIRegistration]:
        return [item for item in self._registrations.values() if item.client_id == client_id]

    def __len__(self) -> int:
        return len(self._registrations)


__all__ = [
    "LTIRegistration",
    "LTIResource",
    "RegistrationStore",
    "load_registrations",
]
