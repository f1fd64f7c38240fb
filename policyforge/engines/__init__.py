"""
Rule engines for policyforge.

Available engines:

- OPARuleEngine: Open Policy Agent over its REST API (requires an OPA server)

Further engines can be registered with EngineFactory.register().

Quick Start:
    >>> from policyforge.engines import create_engine
    >>>
    >>> engine = create_engine("opa", {"opa_url": "http://localhost:8181"})
"""

from __future__ import annotations

import logging
from typing import Any

from policyforge.engines.base import RuleEngine
from policyforge.engines.opa_engine import OPARuleEngine
from policyforge.exceptions import EngineNotAvailableError

logger = logging.getLogger(__name__)


class EngineFactory:
    """
    Factory for creating rule engine instances by type name.

    Example:
        >>> engine = EngineFactory.create("opa", {
        ...     "opa_url": "http://localhost:8181",
        ...     "timeout": 2.0,
        ... })
    """

    _engines: dict[str, type[RuleEngine]] = {
        "opa": OPARuleEngine,
    }

    @classmethod
    def create(
        cls,
        engine_type: str = "opa",
        config: dict[str, Any] | None = None,
    ) -> RuleEngine:
        """
        Create a rule engine instance.

        Raises:
            EngineNotAvailableError: If the engine type is not registered.
        """
        engine_type = engine_type.lower()
        if engine_type not in cls._engines:
            raise EngineNotAvailableError(engine_type, cls.get_available_engines())
        return cls._engines[engine_type](config)

    @classmethod
    def register(cls, engine_type: str, engine_class: type[RuleEngine]) -> None:
        """Register a custom engine type."""
        cls._engines[engine_type.lower()] = engine_class
        logger.debug(f"Registered engine type: {engine_type}")

    @classmethod
    def unregister(cls, engine_type: str) -> bool:
        """
        Unregister an engine type. The built-in "opa" engine stays.

        Returns:
            True if the engine was unregistered.
        """
        engine_type = engine_type.lower()
        if engine_type in cls._engines and engine_type != "opa":
            del cls._engines[engine_type]
            return True
        return False

    @classmethod
    def get_available_engines(cls) -> list[str]:
        return sorted(cls._engines)


def create_engine(engine_type: str = "opa", config: dict[str, Any] | None = None) -> RuleEngine:
    """Convenience function that delegates to EngineFactory.create()."""
    return EngineFactory.create(engine_type, config)


__all__ = [
    "RuleEngine",
    "OPARuleEngine",
    "EngineFactory",
    "create_engine",
]
