"""
Access decisions against the active policy.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from policyforge.compiler import ActivePolicy
from policyforge.engines.base import RuleEngine
from policyforge.exceptions import EvaluationError
from policyforge.schemas import AccessRequestBody
from policyforge.types import AccessRequest, Decision, DecisionResult

logger = logging.getLogger(__name__)


class DecisionEngine:
    """
    Evaluates AccessRequests against the active CompiledPolicy.

    Each call reads the active policy once and uses that snapshot for the
    whole evaluation, so a concurrent reload is observed either entirely
    or not at all on this side.

    The revision reported with a decision (and with an EvaluationError) is
    the one of that snapshot. With a server-side engine such as OPA the
    new module is live as soon as it is uploaded, slightly before the
    compiler publishes its snapshot, so a decision made during a reload
    may be answered by the new module while reporting the previous
    revision.

    Example:
        >>> engine = DecisionEngine(compiler.active_policy, rule_engine)
        >>> engine.decide(request).decision
        <Decision.ALLOW: 'allow'>
    """

    def __init__(self, active_policy: ActivePolicy, engine: RuleEngine) -> None:
        self.active_policy = active_policy
        self.engine = engine

    def decide(self, request: AccessRequest) -> DecisionResult:
        """
        Decide an access request.

        Raises:
            NoActivePolicyError: If no policy was ever published.
            EvaluationError: If the engine fails or returns no result or a
                non-boolean result.
        """
        snapshot = self.active_policy.require()

        start = time.perf_counter()
        results = self.engine.evaluate(snapshot.prepared, request.to_input())
        duration_ms = (time.perf_counter() - start) * 1000

        if not results:
            raise EvaluationError(
                f"No result from policy evaluation at {snapshot.query_path}",
                revision=snapshot.revision,
            )

        value = results[0]
        if not isinstance(value, bool):
            raise EvaluationError(
                f"Policy returned a non-boolean result at {snapshot.query_path}: "
                f"{type(value).__name__}",
                revision=snapshot.revision,
            )

        decision = Decision.ALLOW if value else Decision.DENY
        logger.debug(
            f"{decision.value} {request.client_id} {request.action} on "
            f"{request.application_name}/{request.api_name}/{request.api_version} "
            f"(policy {snapshot.revision[:12]}, {duration_ms:.1f}ms)"
        )
        return DecisionResult(
            decision=decision,
            revision=snapshot.revision,
            duration_ms=duration_ms,
        )

    def decide_input(self, payload: dict[str, Any]) -> DecisionResult:
        """
        Decide a raw JSON payload.

        Raises:
            ValidationError: If the payload is not a valid access request.
        """
        return self.decide(AccessRequestBody.parse_payload(payload).to_domain())
