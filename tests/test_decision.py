"""Tests for DecisionEngine."""

from __future__ import annotations

import dataclasses
from unittest.mock import MagicMock, patch

import pytest

from policyforge.compiler import PolicyCompiler
from policyforge.decision import DecisionEngine
from policyforge.engines.opa_engine import OPARuleEngine
from policyforge.exceptions import EvaluationError, NoActivePolicyError, ValidationError
from policyforge.types import AccessRequest, Decision

from tests.fakes import TemplatePolicyEngine


@pytest.fixture
def loaded(compiler: PolicyCompiler, billing_source: str) -> PolicyCompiler:
    compiler.compile_and_publish(billing_source)
    return compiler


class TestDecide:
    """Tests for DecisionEngine.decide()."""

    def test_allow(
        self, loaded: PolicyCompiler, decisions: DecisionEngine, request_allowed: AccessRequest
    ):
        result = decisions.decide(request_allowed)
        assert result.decision is Decision.ALLOW
        assert result.allowed is True
        assert result.revision == loaded.active_policy.revision
        assert result.duration_ms >= 0

    @pytest.mark.parametrize(
        "field_name,value",
        [
            ("application_name", "payroll"),
            ("environment", "dev"),
            ("client_id", "c2"),
            ("api_name", "receipts"),
            ("api_version", "v2"),
            ("action", "delete"),
        ],
    )
    def test_single_field_mismatch_denies(
        self,
        loaded: PolicyCompiler,
        decisions: DecisionEngine,
        request_allowed: AccessRequest,
        field_name: str,
        value: str,
    ):
        request = dataclasses.replace(request_allowed, **{field_name: value})
        assert decisions.decide(request).decision is Decision.DENY

    def test_attribute_subset_allowed(
        self, loaded: PolicyCompiler, decisions: DecisionEngine, request_allowed: AccessRequest
    ):
        request = dataclasses.replace(request_allowed, attributes={"amount", "dueDate"})
        assert decisions.decide(request).allowed is True

    def test_attribute_outside_allowed_set_denies(
        self, loaded: PolicyCompiler, decisions: DecisionEngine, request_allowed: AccessRequest
    ):
        request = dataclasses.replace(request_allowed, attributes={"amount", "ssn"})
        assert decisions.decide(request).allowed is False

    def test_empty_attributes_allowed(
        self, loaded: PolicyCompiler, decisions: DecisionEngine, request_allowed: AccessRequest
    ):
        request = dataclasses.replace(request_allowed, attributes=frozenset())
        assert decisions.decide(request).allowed is True

    def test_no_active_policy(self, decisions: DecisionEngine, request_allowed: AccessRequest):
        with pytest.raises(NoActivePolicyError):
            decisions.decide(request_allowed)

    def test_undefined_result_is_error_not_denial(
        self,
        loaded: PolicyCompiler,
        decisions: DecisionEngine,
        rule_engine: TemplatePolicyEngine,
        request_allowed: AccessRequest,
    ):
        rule_engine.forced_result = []
        with pytest.raises(EvaluationError, match="No result") as exc_info:
            decisions.decide(request_allowed)
        assert exc_info.value.revision == loaded.active_policy.revision

    def test_non_boolean_result_is_error(
        self,
        loaded: PolicyCompiler,
        decisions: DecisionEngine,
        rule_engine: TemplatePolicyEngine,
        request_allowed: AccessRequest,
    ):
        rule_engine.forced_result = ["yes"]
        with pytest.raises(EvaluationError, match="non-boolean"):
            decisions.decide(request_allowed)

    def test_uses_snapshot_of_active_policy(
        self,
        loaded: PolicyCompiler,
        decisions: DecisionEngine,
        request_allowed: AccessRequest,
        billing_source: str,
    ):
        before = decisions.decide(request_allowed)
        loaded.compile_and_publish(billing_source.replace('"c1"', '"c9"'))
        after = decisions.decide(request_allowed)
        assert before.allowed is True
        assert after.allowed is False
        assert before.revision != after.revision

    def test_reports_revision_of_snapshot_read(
        self, billing_source: str, request_allowed: AccessRequest
    ):
        response = MagicMock()
        response.read.return_value = b'{"result": true}'
        response.__enter__ = MagicMock(return_value=response)
        response.__exit__ = MagicMock(return_value=False)
        engine = OPARuleEngine({"retry_count": 1})
        compiler = PolicyCompiler(engine)
        decisions = DecisionEngine(compiler.active_policy, engine)

        with patch("urllib.request.urlopen", return_value=response) as urlopen:
            published = compiler.compile_and_publish(billing_source)
            # OPA already serves this module; the compiler has not published it
            engine.compile(billing_source.replace('"c1"', '"c9"'), published.query_path)
            result = decisions.decide(request_allowed)

        assert result.revision == published.revision
        assert urlopen.call_args[0][0].full_url.endswith("/v1/data/api/access/allow")


class TestDecideInput:
    """Tests for DecisionEngine.decide_input()."""

    def test_camel_case_payload(
        self, loaded: PolicyCompiler, decisions: DecisionEngine, request_payload: dict
    ):
        assert decisions.decide_input(request_payload).allowed is True

    def test_pascal_case_payload(
        self, loaded: PolicyCompiler, decisions: DecisionEngine, request_payload: dict
    ):
        payload = {key[0].upper() + key[1:]: value for key, value in request_payload.items()}
        assert decisions.decide_input(payload).allowed is True

    def test_missing_attributes_defaults_to_empty(
        self, loaded: PolicyCompiler, decisions: DecisionEngine, request_payload: dict
    ):
        del request_payload["attributes"]
        assert decisions.decide_input(request_payload).allowed is True

    def test_missing_field_rejected(
        self, loaded: PolicyCompiler, decisions: DecisionEngine, request_payload: dict
    ):
        del request_payload["clientID"]
        with pytest.raises(ValidationError, match="clientID|client_id"):
            decisions.decide_input(request_payload)

    def test_wrong_type_rejected(
        self, loaded: PolicyCompiler, decisions: DecisionEngine, request_payload: dict
    ):
        request_payload["attributes"] = "amount"
        with pytest.raises(ValidationError):
            decisions.decide_input(request_payload)

    def test_not_an_object(self, decisions: DecisionEngine):
        with pytest.raises(ValidationError):
            decisions.decide_input(["not", "an", "object"])  # type: ignore[arg-type]
