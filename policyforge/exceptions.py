"""
Custom exceptions for policyforge.

This module defines the exception hierarchy for the service. Every error
that can reach the HTTP layer derives from PolicyForgeError so handlers
can map it to a status code without inspecting messages.
"""

from __future__ import annotations

from typing import Any


class PolicyForgeError(Exception):
    """
    Base exception for all policyforge errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context about the error.

    Example:
        >>> try:
        ...     service.author_policy(spec)
        ... except PolicyForgeError as e:
        ...     logger.error(f"Authoring failed: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PolicyForgeError):
    """
    Raised when client input is malformed or incomplete.

    Attributes:
        field: Name of the offending field, if a single one is to blame.

    Example:
        >>> raise ValidationError("must not be empty", field="apiName")
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        text = f"Invalid '{field}': {message}" if field else message
        super().__init__(text, {"field": field} if field else None)


class RenderError(PolicyForgeError):
    """Raised when a policy template cannot be parsed or executed."""

    def __init__(self, message: str, template_name: str | None = None) -> None:
        self.template_name = template_name
        super().__init__(
            message,
            {"template": template_name} if template_name else None,
        )


class CompileError(PolicyForgeError):
    """
    Raised when the rule engine rejects a policy document.

    Attributes:
        diagnostics: Messages reported by the engine, one per problem.
        engine_name: Name of the engine that produced them.
    """

    def __init__(
        self,
        message: str,
        diagnostics: list[str] | None = None,
        engine_name: str | None = None,
    ) -> None:
        self.diagnostics = diagnostics or []
        self.engine_name = engine_name
        details: dict[str, Any] = {}
        if engine_name:
            details["engine"] = engine_name
        if self.diagnostics:
            details["diagnostics"] = self.diagnostics
        super().__init__(message, details)


class StoreError(PolicyForgeError):
    """
    Raised when the policy store is unreachable or an operation fails.

    Callers may retry: puts overwrite a single key.

    Attributes:
        key: Object key involved in the failed operation.
        operation: "fetch" or "put".
    """

    def __init__(
        self,
        message: str,
        key: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.key = key
        self.operation = operation
        details = {"key": key, "operation": operation}
        super().__init__(message, {k: v for k, v in details.items() if v})


class PolicyNotFoundError(StoreError):
    """Raised when a requested policy object does not exist in the store."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Policy object not found: {key}", key=key, operation="fetch")


class EvaluationError(PolicyForgeError):
    """
    Raised when the engine yields no result or a non-boolean result.

    This is never interpreted as a denial.
    """

    def __init__(self, message: str, revision: str | None = None) -> None:
        self.revision = revision
        super().__init__(message, {"revision": revision} if revision else None)


class NoActivePolicyError(PolicyForgeError):
    """Raised when a decision is requested before any policy was published."""

    def __init__(self, message: str = "No policy has been loaded") -> None:
        super().__init__(message)


class ConfigurationError(PolicyForgeError):
    """
    Raised when the service configuration is missing or inconsistent.

    Attributes:
        config_key: The configuration key that has an issue.
        expected: What was expected for this configuration.
        received: What was actually provided.

    Example:
        >>> raise ConfigurationError(
        ...     config_key="s3.bucketName",
        ...     expected="a non-empty bucket name",
        ... )
    """

    def __init__(
        self,
        config_key: str,
        expected: str | None = None,
        received: Any = None,
    ) -> None:
        self.config_key = config_key
        self.expected = expected
        self.received = received

        message = f"Configuration error for '{config_key}'"
        if expected:
            message += f": expected {expected}"
        if received is not None:
            message += f", got {received!r}"

        details = {
            "config_key": config_key,
            "expected": expected,
            "received": str(received) if received is not None else None,
        }
        super().__init__(message, details)


class EngineNotAvailableError(PolicyForgeError):
    """Raised when a requested rule engine type is not registered."""

    def __init__(self, engine_type: str, available: list[str]) -> None:
        self.engine_type = engine_type
        super().__init__(
            f"Unknown engine type: '{engine_type}'. "
            f"Available engines: {', '.join(available)}",
            {"engine_type": engine_type},
        )
