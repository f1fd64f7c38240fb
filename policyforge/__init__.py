"""
policyforge: Rego policy authoring and access decision service.

policyforge renders per-application Rego policies from a template,
stores them in S3, and answers access decisions against the active
policy through Open Policy Agent.

Basic Usage:
    >>> from policyforge import PolicySpec, TemplateRenderer, load_template
    >>>
    >>> spec = PolicySpec(
    ...     application_name="billing",
    ...     environment="prod",
    ...     client_id="c1",
    ...     api_name="invoices",
    ...     api_version="v1",
    ...     allowed_actions=("read", "write"),
    ...     allowed_attributes=("amount", "dueDate"),
    ... )
    >>> rendered = TemplateRenderer().render(spec, load_template())

Running the service:
    $ policyforge-server            # reads ./config.yaml and POLICYFORGE_* variables
"""

__version__ = "0.1.0"

from policyforge.authoring import PolicyAuthoringService
from policyforge.compiler import ActivePolicy, PolicyCompiler
from policyforge.config import ServiceConfig, load_config
from policyforge.decision import DecisionEngine
from policyforge.exceptions import (
    CompileError,
    ConfigurationError,
    EngineNotAvailableError,
    EvaluationError,
    NoActivePolicyError,
    PolicyForgeError,
    PolicyNotFoundError,
    RenderError,
    StoreError,
    ValidationError,
)
from policyforge.rendering import TemplateRenderer, load_template, render_policy
from policyforge.types import (
    AccessRequest,
    AuthoringResult,
    CompiledPolicy,
    Decision,
    DecisionResult,
    PolicySpec,
    RenderedPolicy,
)

__all__ = [
    "__version__",
    # Types
    "AccessRequest",
    "AuthoringResult",
    "CompiledPolicy",
    "Decision",
    "DecisionResult",
    "PolicySpec",
    "RenderedPolicy",
    # Components
    "ActivePolicy",
    "DecisionEngine",
    "PolicyAuthoringService",
    "PolicyCompiler",
    "TemplateRenderer",
    "load_template",
    "render_policy",
    # Configuration
    "ServiceConfig",
    "load_config",
    # Exceptions
    "CompileError",
    "ConfigurationError",
    "EngineNotAvailableError",
    "EvaluationError",
    "NoActivePolicyError",
    "PolicyForgeError",
    "PolicyNotFoundError",
    "RenderError",
    "StoreError",
    "ValidationError",
]
