"""
Policy authoring: validate, render, persist and optionally hot-reload.
"""

from __future__ import annotations

import logging

from policyforge.compiler import PolicyCompiler
from policyforge.exceptions import PolicyForgeError
from policyforge.rendering import TemplateRenderer
from policyforge.storage.base import (
    DEFAULT_KEY_PREFIX,
    POLICY_CONTENT_TYPE,
    PolicyStore,
    authored_policy_key,
)
from policyforge.types import AuthoringResult, PolicySpec

logger = logging.getLogger(__name__)


class PolicyAuthoringService:
    """
    Generates a policy document from a PolicySpec and persists it.

    The document is stored under a key derived from the spec's
    application, API name and API version, so authoring the same spec
    again overwrites the same object with identical bytes.

    When hot_reload is enabled the rendered document is also compiled and
    published as the active policy. The store write is the authoritative
    outcome: a failed hot-reload is reported in AuthoringResult.warning
    and the previously active policy keeps serving decisions.

    Example:
        >>> service = PolicyAuthoringService(TemplateRenderer(), store, load_template())
        >>> service.author_policy(spec).key
        'policies/billing_invoices_v1.rego'
    """

    def __init__(
        self,
        renderer: TemplateRenderer,
        store: PolicyStore,
        template: str,
        compiler: PolicyCompiler | None = None,
        hot_reload: bool = False,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        if hot_reload and compiler is None:
            raise ValueError("hot_reload requires a compiler")
        self.renderer = renderer
        self.store = store
        self.template = template
        self.compiler = compiler
        self.hot_reload = hot_reload
        self.key_prefix = key_prefix

    def policy_key(self, spec: PolicySpec) -> str:
        return authored_policy_key(
            spec.application_name,
            spec.api_name,
            spec.api_version,
            prefix=self.key_prefix,
        )

    def author_policy(self, spec: PolicySpec) -> AuthoringResult:
        """
        Author and persist a policy.

        Raises:
            ValidationError: If the spec is incomplete.
            RenderError: If the template cannot be rendered.
            StoreError: If the document cannot be persisted. Retrying is safe.
        """
        spec.validate()
        rendered = self.renderer.render(spec, self.template)
        key = self.policy_key(spec)
        data = rendered.to_bytes()

        self.store.put(key, data, POLICY_CONTENT_TYPE)
        logger.info(f"Policy successfully stored: {key} (revision {rendered.revision[:12]})")

        hot_reloaded = False
        warning = None
        if self.hot_reload and self.compiler is not None:
            try:
                self.compiler.compile_and_publish(rendered.source, source_key=key)
                hot_reloaded = True
            except PolicyForgeError as e:
                warning = f"Policy stored but hot-reload failed: {e.message}"
                logger.warning(f"{warning} | details: {e.details}")

        return AuthoringResult(
            key=key,
            revision=rendered.revision,
            bytes_written=len(data),
            hot_reloaded=hot_reloaded,
            warning=warning,
        )
