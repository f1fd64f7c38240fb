"""
Rule engine base classes for policyforge.

A rule engine turns policy source text into a prepared query and
evaluates prepared queries against input documents. The service treats
the engine as a black box: the Rego language itself is the engine's
business.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from policyforge.types import PreparedQuery


class RuleEngine(ABC):
    """
    Abstract base class for rule engines.

    Attributes:
        name: Human-readable name for the engine.
        config: Configuration dictionary passed during initialization.

    Example:
        >>> class EchoEngine(RuleEngine):
        ...     name = "echo"
        ...     def compile(self, source, query_path):
        ...         return PreparedQuery("echo", "m", query_path, source_revision(source))
        ...     def evaluate(self, prepared, input_data):
        ...         return [True]
    """

    name: str = "base"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = config or {}

    @abstractmethod
    def compile(self, source: str, query_path: str) -> PreparedQuery:
        """
        Compile policy source and prepare a query against it.

        Args:
            source: Policy source text.
            query_path: Rule to query, e.g. "data.api.access.allow".

        Returns:
            A handle usable with evaluate().

        Raises:
            CompileError: If the engine rejects the source.
        """

    @abstractmethod
    def evaluate(self, prepared: PreparedQuery, input_data: dict[str, Any]) -> list[Any]:
        """
        Evaluate a prepared query.

        Args:
            prepared: Handle returned by compile().
            input_data: The input document.

        Returns:
            The values produced at the query path; empty when the rule is
            undefined for this input.

        Raises:
            EvaluationError: If the engine cannot evaluate the query.
        """

    def health_check(self) -> bool:
        """Check whether the engine is reachable."""
        return True

    def get_config(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self.config.get(key, default)
