"""
Pytest fixtures for policyforge tests.

Provides common fixtures used across all test modules.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from policyforge.authoring import PolicyAuthoringService
from policyforge.compiler import PolicyCompiler
from policyforge.config import PolicyConfig, ServiceConfig, StoreConfig
from policyforge.decision import DecisionEngine
from policyforge.rendering import TemplateRenderer, load_template
from policyforge.server import ServiceComponents, build_components, create_app
from policyforge.types import AccessRequest, PolicySpec

from tests.fakes import ACTIVE_KEY, InMemoryPolicyStore, TemplatePolicyEngine


# ============================================================================
# Domain Fixtures
# ============================================================================


@pytest.fixture
def spec() -> PolicySpec:
    """Policy spec for the billing invoices API."""
    return PolicySpec(
        application_name="billing",
        environment="prod",
        client_id="c1",
        api_name="invoices",
        api_version="v1",
        allowed_actions=("read", "write"),
        allowed_attributes=("amount", "dueDate"),
    )


@pytest.fixture
def request_allowed() -> AccessRequest:
    """Access request that the billing policy allows."""
    return AccessRequest(
        application_name="billing",
        environment="prod",
        client_id="c1",
        api_name="invoices",
        api_version="v1",
        action="read",
        attributes=frozenset({"amount"}),
    )


@pytest.fixture
def request_payload() -> dict:
    """JSON body of an allowed /evaluate call."""
    return {
        "applicationName": "billing",
        "environment": "prod",
        "clientID": "c1",
        "apiName": "invoices",
        "apiVersion": "v1",
        "action": "read",
        "attributes": ["amount"],
    }


@pytest.fixture
def spec_payload() -> dict:
    """JSON body of a /generate-policy call."""
    return {
        "applicationName": "billing",
        "environment": "prod",
        "clientID": "c1",
        "apiName": "invoices",
        "apiVersion": "v1",
        "allowedActions": ["read", "write"],
        "allowedAttributes": ["amount", "dueDate"],
    }


@pytest.fixture(scope="session")
def template() -> str:
    """The bundled policy template."""
    return load_template()


@pytest.fixture
def renderer() -> TemplateRenderer:
    return TemplateRenderer()


@pytest.fixture
def billing_source(renderer: TemplateRenderer, spec: PolicySpec, template: str) -> str:
    """Rendered billing policy source."""
    return renderer.render(spec, template).source


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def store(billing_source: str) -> InMemoryPolicyStore:
    """Store pre-loaded with the billing policy as the active policy."""
    return InMemoryPolicyStore({ACTIVE_KEY: billing_source.encode("utf-8")})


@pytest.fixture
def rule_engine() -> TemplatePolicyEngine:
    return TemplatePolicyEngine()


@pytest.fixture
def compiler(rule_engine: TemplatePolicyEngine, store: InMemoryPolicyStore) -> PolicyCompiler:
    return PolicyCompiler(rule_engine, store=store, active_policy_key=ACTIVE_KEY)


@pytest.fixture
def decisions(compiler: PolicyCompiler, rule_engine: TemplatePolicyEngine) -> DecisionEngine:
    return DecisionEngine(compiler.active_policy, rule_engine)


@pytest.fixture
def authoring(
    renderer: TemplateRenderer,
    store: InMemoryPolicyStore,
    template: str,
) -> PolicyAuthoringService:
    return PolicyAuthoringService(renderer, store, template)


# ============================================================================
# Server Fixtures
# ============================================================================


@pytest.fixture
def service_config() -> ServiceConfig:
    return ServiceConfig(
        policy=PolicyConfig(hot_reload=False),
        s3=StoreConfig(bucket_name="policies", policy_object_key=ACTIVE_KEY),
    )


@pytest.fixture
def components(
    service_config: ServiceConfig,
    store: InMemoryPolicyStore,
    rule_engine: TemplatePolicyEngine,
    template: str,
) -> ServiceComponents:
    return build_components(service_config, store=store, engine=rule_engine, template=template)


@pytest.fixture
def client(components: ServiceComponents) -> Iterator[TestClient]:
    """Test client; entering it runs startup, which loads the active policy."""
    with TestClient(create_app(components=components)) as test_client:
        yield test_client
