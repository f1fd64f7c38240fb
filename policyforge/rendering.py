"""
Policy template rendering for policyforge.

Templates are Jinja2 documents producing Rego source. Every value a
template prints goes through a finalize hook that serializes it as a Rego
literal: strings become quoted string literals and sequences become array
literals of quoted strings. Template authors therefore never quote or join
values themselves:

    package api.access

    allowed_actions := {{ allowed_actions }}

    allow if {
        input.applicationName == {{ application_name }}
        input.action in allowed_actions
    }

JSON string and array syntax is a subset of Rego's literal syntax, so the
literals are produced with the json module.
"""

from __future__ import annotations

import functools
import json
import logging
from collections.abc import Set
from importlib import resources
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined, Template, TemplateSyntaxError, Undefined
from jinja2.exceptions import TemplateError, UndefinedError

from policyforge.exceptions import ConfigurationError, RenderError, ValidationError
from policyforge.types import PolicySpec, RenderedPolicy

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_NAME = "policy.rego.j2"


def to_rego_literal(value: Any) -> str:
    """
    Serialize a template value as a Rego literal.

    Args:
        value: A string or a sequence of strings.

    Returns:
        The quoted literal text.

    Raises:
        TypeError: If the value is neither a string nor a sequence of strings.
    """
    if isinstance(value, Undefined):
        # StrictUndefined raises UndefinedError here.
        str(value)
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, (list, tuple, Set)):
        items = sorted(value) if isinstance(value, Set) else list(value)
        for item in items:
            if not isinstance(item, str):
                raise TypeError(
                    f"cannot render {type(item).__name__} inside a list literal"
                )
        return json.dumps(items)
    raise TypeError(f"cannot render value of type {type(value).__name__}")


class TemplateRenderer:
    """
    Renders PolicySpecs into Rego documents.

    The renderer is stateless apart from a cache of parsed templates keyed
    by template text, so one instance is shared by all requests.

    Example:
        >>> renderer = TemplateRenderer()
        >>> rendered = renderer.render(spec, load_template())
        >>> rendered.source.startswith("package api.access")
        True
    """

    def __init__(self, cache_size: int = 32) -> None:
        self._env = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            finalize=to_rego_literal,
        )
        self._parse = functools.lru_cache(maxsize=cache_size)(self._env.from_string)

    def parse(self, template: str) -> Template:
        """
        Parse template text.

        Raises:
            RenderError: If the template syntax is malformed.
        """
        try:
            return self._parse(template)
        except TemplateSyntaxError as e:
            raise RenderError(
                f"Malformed policy template (line {e.lineno}): {e.message}",
                template_name=e.name,
            ) from e

    def render(self, spec: PolicySpec, template: str) -> RenderedPolicy:
        """
        Render a policy document.

        Args:
            spec: The policy specification. Validated before rendering.
            template: Jinja2 template text.

        Returns:
            The rendered document.

        Raises:
            ValidationError: If the spec is incomplete or the template uses a
                variable the spec does not provide.
            RenderError: If the template is malformed or cannot be executed
                against the spec.
        """
        spec.validate()
        compiled = self.parse(template)

        try:
            source = compiled.render(spec.template_context())
        except UndefinedError as e:
            raise ValidationError(
                f"template references a value the policy spec does not provide: {e.message}"
            ) from e
        except TypeError as e:
            raise RenderError(f"Failed to execute policy template: {e}") from e
        except TemplateError as e:
            raise RenderError(f"Failed to execute policy template: {e}") from e

        logger.debug(
            f"Rendered policy for {spec.application_name}/{spec.api_name}/"
            f"{spec.api_version} ({len(source)} chars)"
        )
        return RenderedPolicy(source=source, spec=spec)


def load_template(path: str | Path | None = None) -> str:
    """
    Load policy template text.

    Args:
        path: Template file. When omitted, the template bundled with the
            package is used.

    Raises:
        ConfigurationError: If the file cannot be read.
    """
    if path is None:
        return (
            resources.files("policyforge")
            .joinpath("templates", DEFAULT_TEMPLATE_NAME)
            .read_text(encoding="utf-8")
        )

    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            config_key="policy.templatePath",
            expected="a readable template file",
            received=str(path),
        ) from e


def render_policy(spec: PolicySpec, template: str) -> RenderedPolicy:
    """Render a policy document with a default TemplateRenderer."""
    return _default_renderer().render(spec, template)


@functools.lru_cache(maxsize=1)
def _default_renderer() -> TemplateRenderer:
    return TemplateRenderer()
