"""
Core type definitions for policyforge.

This module defines the data structures that flow through the service:
access requests, policy specifications, rendered documents, compiled
policy snapshots and the results of decisions and authoring.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from policyforge.exceptions import ValidationError

# Fields that end up in the storage key and must be path-safe.
KEY_FIELDS = ("application_name", "api_name", "api_version")

IDENTITY_FIELDS = (
    "application_name",
    "environment",
    "client_id",
    "api_name",
    "api_version",
)

# Wire names used in JSON payloads and in the engine input document.
WIRE_NAMES = {
    "application_name": "applicationName",
    "environment": "environment",
    "client_id": "clientID",
    "api_name": "apiName",
    "api_version": "apiVersion",
    "action": "action",
    "attributes": "attributes",
    "allowed_actions": "allowedActions",
    "allowed_attributes": "allowedAttributes",
}


def _utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def source_revision(source: str) -> str:
    """Return the content revision (SHA-256 hex digest) of policy source text."""
    return hashlib.sha256(source.encode("utf-8")).hexdigest()


class Decision(Enum):
    """Outcome of an access decision."""
    ALLOW = "allow"
    DENY = "deny"

    @property
    def allowed(self) -> bool:
        return self is Decision.ALLOW


@dataclass(frozen=True)
class AccessRequest:
    """
    A structured access-control request to be decided.

    Attributes:
        application_name: Calling application.
        environment: Deployment environment (e.g. "prod").
        client_id: Identity of the calling client.
        api_name: Target API.
        api_version: Target API version.
        action: Requested action (e.g. "read").
        attributes: Requested attributes; an empty set is always permitted
            on the attribute dimension.

    Example:
        >>> request = AccessRequest(
        ...     application_name="billing",
        ...     environment="prod",
        ...     client_id="c1",
        ...     api_name="invoices",
        ...     api_version="v1",
        ...     action="read",
        ...     attributes=frozenset({"amount"}),
        ... )
    """
    application_name: str
    environment: str
    client_id: str
    api_name: str
    api_version: str
    action: str
    attributes: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not isinstance(self.attributes, frozenset):
            object.__setattr__(self, "attributes", frozenset(self.attributes))

    def to_input(self) -> dict[str, Any]:
        """Build the engine input document."""
        return {
            "applicationName": self.application_name,
            "environment": self.environment,
            "clientID": self.client_id,
            "apiName": self.api_name,
            "apiVersion": self.api_version,
            "action": self.action,
            "attributes": sorted(self.attributes),
        }


@dataclass(frozen=True)
class PolicySpec:
    """
    Structured description of one application's access rules.

    Attributes:
        application_name: Application the policy governs.
        environment: Environment the policy applies to.
        client_id: Client allowed by the policy.
        api_name: API the policy governs.
        api_version: API version the policy governs.
        allowed_actions: Actions the client may perform, in order.
        allowed_attributes: Attributes the client may request, in order.
    """
    application_name: str
    environment: str
    client_id: str
    api_name: str
    api_version: str
    allowed_actions: tuple[str, ...]
    allowed_attributes: tuple[str, ...]

    def __post_init__(self) -> None:
        # Accept any iterable but store tuples so the spec stays hashable.
        for name in ("allowed_actions", "allowed_attributes"):
            value = getattr(self, name)
            if isinstance(value, str):
                raise ValidationError("must be a list of strings", field=WIRE_NAMES[name])
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))

    def validate(self) -> None:
        """
        Check completeness and literal safety.

        Raises:
            ValidationError: On the first offending field.
        """
        for name in IDENTITY_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, str):
                raise ValidationError("must be a string", field=WIRE_NAMES[name])
            if not value.strip():
                raise ValidationError("must not be empty", field=WIRE_NAMES[name])

        for name in KEY_FIELDS:
            value = getattr(self, name)
            if "/" in value or value in (".", ".."):
                raise ValidationError(
                    "must not contain '/' or be a relative path segment",
                    field=WIRE_NAMES[name],
                )

        for name in ("allowed_actions", "allowed_attributes"):
            values = getattr(self, name)
            if not values:
                raise ValidationError("must contain at least one entry", field=WIRE_NAMES[name])
            for item in values:
                if not isinstance(item, str):
                    raise ValidationError(
                        f"entries must be strings, got {type(item).__name__}",
                        field=WIRE_NAMES[name],
                    )
                if not item.strip():
                    raise ValidationError("entries must not be empty", field=WIRE_NAMES[name])

    def template_context(self) -> dict[str, Any]:
        """Return the variables available to policy templates."""
        return {
            "application_name": self.application_name,
            "environment": self.environment,
            "client_id": self.client_id,
            "api_name": self.api_name,
            "api_version": self.api_version,
            "allowed_actions": list(self.allowed_actions),
            "allowed_attributes": list(self.allowed_attributes),
        }


@dataclass(frozen=True)
class RenderedPolicy:
    """Rego source text produced from a PolicySpec."""
    source: str
    spec: PolicySpec

    @property
    def revision(self) -> str:
        return source_revision(self.source)

    def to_bytes(self) -> bytes:
        return self.source.encode("utf-8")


@dataclass(frozen=True)
class PreparedQuery:
    """
    Engine handle for a compiled module plus its query path.

    Only the engine that produced the handle knows how to evaluate it.
    """
    engine_name: str
    module_id: str
    query_path: str
    revision: str


@dataclass(frozen=True)
class CompiledPolicy:
    """
    Immutable snapshot of the policy used to answer decisions.

    Attributes:
        prepared: The engine handle.
        query_path: Rule queried for the decision, e.g. "data.api.access.allow".
        revision: SHA-256 of the compiled source.
        source_key: Where the source came from (store key or "rendered:<key>").
        compiled_at: When compilation finished.
    """
    prepared: PreparedQuery
    query_path: str
    revision: str
    source_key: str | None = None
    compiled_at: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query_path": self.query_path,
            "revision": self.revision,
            "source_key": self.source_key,
            "compiled_at": self.compiled_at.isoformat(),
            "engine": self.prepared.engine_name,
        }


@dataclass(frozen=True)
class DecisionResult:
    """Result of evaluating an AccessRequest."""
    decision: Decision
    revision: str
    duration_ms: float = 0.0

    @property
    def allowed(self) -> bool:
        return self.decision.allowed


@dataclass(frozen=True)
class AuthoringResult:
    """
    Result of authoring a policy.

    Attributes:
        key: Store key the rendered document was written to.
        revision: SHA-256 of the rendered document.
        bytes_written: Size of the persisted object.
        hot_reloaded: Whether the active policy now serves this document.
        warning: Set when hot-reload was attempted and failed.
    """
    key: str
    revision: str
    bytes_written: int
    hot_reloaded: bool = False
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "revision": self.revision,
            "bytesWritten": self.bytes_written,
            "hotReloaded": self.hot_reloaded,
            "warning": self.warning,
        }
