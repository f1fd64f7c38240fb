"""
Pydantic models for the JSON request bodies.

Wire names are camelCase (``applicationName``, ``clientID``, ...). The
PascalCase names used by earlier clients (``ApplicationName``,
``ClientID``, ...) are accepted as aliases.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from policyforge.exceptions import ValidationError
from policyforge.types import AccessRequest, PolicySpec

logger = logging.getLogger(__name__)


def _wire(camel: str) -> Any:
    pascal = camel[0].upper() + camel[1:]
    return Field(validation_alias=AliasChoices(camel, pascal), serialization_alias=camel)


def _first_error(error: PydanticValidationError) -> ValidationError:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or None
    return ValidationError(first.get("msg", "invalid value"), field=location)


class _RequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @classmethod
    def parse_payload(cls, payload: Any):
        """
        Validate a decoded JSON payload.

        Raises:
            ValidationError: If the payload does not match the model.
        """
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as e:
            raise _first_error(e) from e


class AccessRequestBody(_RequestBody):
    """Body of POST /evaluate."""

    application_name: str = _wire("applicationName")
    environment: str = _wire("environment")
    client_id: str = _wire("clientID")
    api_name: str = _wire("apiName")
    api_version: str = _wire("apiVersion")
    action: str = _wire("action")
    attributes: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("attributes", "Attributes"),
    )

    def to_domain(self) -> AccessRequest:
        return AccessRequest(
            application_name=self.application_name,
            environment=self.environment,
            client_id=self.client_id,
            api_name=self.api_name,
            api_version=self.api_version,
            action=self.action,
            attributes=frozenset(self.attributes),
        )


class PolicySpecBody(_RequestBody):
    """Body of POST /generate-policy."""

    application_name: str = _wire("applicationName")
    environment: str = _wire("environment")
    client_id: str = _wire("clientID")
    api_name: str = _wire("apiName")
    api_version: str = _wire("apiVersion")
    allowed_actions: list[str] = _wire("allowedActions")
    allowed_attributes: list[str] = _wire("allowedAttributes")

    def to_domain(self) -> PolicySpec:
        return PolicySpec(
            application_name=self.application_name,
            environment=self.environment,
            client_id=self.client_id,
            api_name=self.api_name,
            api_version=self.api_version,
            allowed_actions=tuple(self.allowed_actions),
            allowed_attributes=tuple(self.allowed_attributes),
        )
