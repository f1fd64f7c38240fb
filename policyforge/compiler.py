"""
Policy compilation and publication.

The PolicyCompiler turns policy source into a CompiledPolicy through the
rule engine and publishes it as the process-wide active policy. Readers
take a snapshot of the active policy with ActivePolicy.get(); writers
replace it wholesale with ActivePolicy.publish().

Two locks are involved:

- ActivePolicy._lock guards the reference itself and is held only for
  the read or the swap.
- PolicyCompiler._reload_lock serializes writers across the whole
  compile-and-publish sequence so that the published snapshot always
  matches the module the engine compiled last. Readers never take it.
"""

from __future__ import annotations

import logging
import threading
import time

from policyforge.engines.base import RuleEngine
from policyforge.exceptions import CompileError, ConfigurationError, NoActivePolicyError
from policyforge.storage.base import PolicyStore
from policyforge.types import CompiledPolicy

logger = logging.getLogger(__name__)

DEFAULT_QUERY_PATH = "data.api.access.allow"


class ActivePolicy:
    """
    Holder for the single active CompiledPolicy.

    Example:
        >>> active = ActivePolicy()
        >>> active.get() is None
        True
        >>> active.publish(compiled)
        >>> active.require().revision == compiled.revision
        True
    """

    def __init__(self, initial: CompiledPolicy | None = None) -> None:
        self._lock = threading.Lock()
        self._current = initial

    def get(self) -> CompiledPolicy | None:
        """Return a snapshot of the active policy, or None."""
        with self._lock:
            return self._current

    def require(self) -> CompiledPolicy:
        """
        Return a snapshot of the active policy.

        Raises:
            NoActivePolicyError: If no policy has been published yet.
        """
        current = self.get()
        if current is None:
            raise NoActivePolicyError()
        return current

    def publish(self, policy: CompiledPolicy) -> CompiledPolicy | None:
        """
        Replace the active policy.

        Returns:
            The previously active policy.
        """
        with self._lock:
            previous = self._current
            self._current = policy
        return previous

    @property
    def revision(self) -> str | None:
        current = self.get()
        return current.revision if current else None


class PolicyCompiler:
    """
    Compiles policy source through a rule engine and publishes the result.

    Attributes:
        engine: The rule engine.
        active_policy: Holder read by the decision engine.
        query_path: Rule queried for decisions.
        store: Store the active policy is loaded from.
        active_policy_key: Store key of the active policy.
    """

    def __init__(
        self,
        engine: RuleEngine,
        active_policy: ActivePolicy | None = None,
        query_path: str = DEFAULT_QUERY_PATH,
        store: PolicyStore | None = None,
        active_policy_key: str | None = None,
    ) -> None:
        self.engine = engine
        self.active_policy = active_policy or ActivePolicy()
        self.query_path = query_path
        self.store = store
        self.active_policy_key = active_policy_key
        self._reload_lock = threading.Lock()

    def _prepare(self, source: str, source_key: str | None) -> CompiledPolicy:
        """
        Compile policy source without publishing it. Callers hold the
        reload lock.

        Args:
            source: Policy source text.
            source_key: Where the source came from, kept for diagnostics.

        Raises:
            CompileError: If the engine rejects the source.
        """
        if not source.strip():
            raise CompileError("Policy source is empty", engine_name=self.engine.name)

        start = time.perf_counter()
        prepared = self.engine.compile(source, self.query_path)
        duration_ms = (time.perf_counter() - start) * 1000

        compiled = CompiledPolicy(
            prepared=prepared,
            query_path=self.query_path,
            revision=prepared.revision,
            source_key=source_key,
        )
        logger.debug(
            f"Compiled policy {compiled.revision[:12]} from {source_key or '<inline>'} "
            f"in {duration_ms:.1f}ms"
        )
        return compiled

    def compile_and_publish(self, source: str, source_key: str | None = None) -> CompiledPolicy:
        """
        Compile policy source and make it the active policy.

        On failure the previously active policy stays in effect.

        Raises:
            CompileError: If the engine rejects the source.
        """
        with self._reload_lock:
            compiled = self._prepare(source, source_key)
            previous = self.active_policy.publish(compiled)

        logger.info(
            f"Active policy is now {compiled.revision[:12]} from {source_key or '<inline>'}"
            + (f" (replaced {previous.revision[:12]})" if previous else "")
        )
        return compiled

    def load_from_store(self) -> CompiledPolicy:
        """
        Fetch the active policy from the store, compile and publish it.

        Raises:
            ConfigurationError: If no store or active policy key is set.
            StoreError: If the policy cannot be fetched.
            CompileError: If the policy does not compile.
        """
        if self.store is None or not self.active_policy_key:
            raise ConfigurationError(
                "s3.policyObjectKey", expected="a store and active policy key to load from"
            )

        source = self.store.fetch_text(self.active_policy_key)
        logger.info(f"Fetched active policy {self.active_policy_key} ({len(source)} chars)")
        return self.compile_and_publish(source, source_key=self.active_policy_key)
