"""
Open Policy Agent (OPA) rule engine for policyforge.

Policies are compiled by uploading them to an OPA server through its
policy API and evaluated through its data API. OPA parses and compiles
a module on upload and rejects invalid modules without touching the one
already loaded under the same id, so replacing the module is atomic on
the server side.

This implementation uses urllib (stdlib) to talk to the OPA server,
avoiding external HTTP library dependencies.
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from policyforge.engines.base import RuleEngine
from policyforge.exceptions import CompileError, EvaluationError
from policyforge.resilience import RetryPolicy, retry_call
from policyforge.types import PreparedQuery, source_revision

logger = logging.getLogger(__name__)


def _is_transient(error: Exception) -> bool:
    """Server errors and connection problems are retried, client errors are not."""
    if isinstance(error, urllib.error.HTTPError):
        return error.code >= 500
    return isinstance(error, (urllib.error.URLError, TimeoutError, ConnectionError))


def query_path_to_url_path(query_path: str) -> str:
    """
    Convert a Rego reference into an OPA data API path.

    Example:
        >>> query_path_to_url_path("data.api.access.allow")
        'api/access/allow'
    """
    parts = query_path.split(".")
    if parts and parts[0] == "data":
        parts = parts[1:]
    if not parts or not all(parts):
        raise ValueError(f"Invalid query path: {query_path!r}")
    return "/".join(urllib.parse.quote(p, safe="") for p in parts)


class OPARuleEngine(RuleEngine):
    """
    Rule engine backed by an OPA server's REST API.

    Configuration:
        - opa_url: Base URL of the OPA server (default: http://localhost:8181)
        - module_id: Policy id the active module is uploaded under
          (default: policyforge)
        - timeout: Request timeout in seconds (default: 5.0)
        - retry_count: Attempts per request (default: 3)
        - retry_delay: Base delay between attempts in seconds (default: 0.5)

    Example:
        >>> engine = OPARuleEngine({"opa_url": "http://localhost:8181"})
        >>> prepared = engine.compile(source, "data.api.access.allow")
        >>> engine.evaluate(prepared, {"action": "read"})
        [True]
    """

    name = "opa"

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        super().__init__(config)

        self.opa_url = self.get_config("opa_url", "http://localhost:8181").rstrip("/")
        self.module_id = self.get_config("module_id", "policyforge")
        self.timeout = self.get_config("timeout", 5.0)
        self.retry_count = self.get_config("retry_count", 3)
        self.retry_delay = self.get_config("retry_delay", 0.5)

        self._retry_policy = RetryPolicy(
            max_attempts=max(1, self.retry_count),
            base_delay=self.retry_delay,
            max_delay=max(self.retry_delay * 8, self.retry_delay),
            retry_on=_is_transient,
        )

        logger.debug(f"OPA engine initialized with URL: {self.opa_url}")

    def _request(
        self,
        method: str,
        url: str,
        body: bytes | None = None,
        content_type: str = "application/json",
    ) -> dict[str, Any]:
        req = urllib.request.Request(
            url,
            data=body,
            headers={"Content-Type": content_type, "Accept": "application/json"},
            method=method,
        )
        with urllib.request.urlopen(req, timeout=self.timeout) as response:
            payload = response.read().decode("utf-8")
        return json.loads(payload) if payload.strip() else {}

    def compile(self, source: str, query_path: str) -> PreparedQuery:
        """
        Upload a module to OPA.

        Raises:
            CompileError: If OPA rejects the module, cannot be reached or
                answers with something other than its API response.
        """
        try:
            url_path = query_path_to_url_path(query_path)
        except ValueError as e:
            raise CompileError(str(e), engine_name=self.name) from e

        url = f"{self.opa_url}/v1/policies/{urllib.parse.quote(self.module_id, safe='')}"

        try:
            retry_call(
                self._request,
                "PUT",
                url,
                source.encode("utf-8"),
                "text/plain",
                policy=self._retry_policy,
                description="OPA policy upload",
            )
        except urllib.error.HTTPError as e:
            diagnostics = self._read_diagnostics(e)
            raise CompileError(
                f"OPA rejected policy module (HTTP {e.code})",
                diagnostics=diagnostics,
                engine_name=self.name,
            ) from e
        except (urllib.error.URLError, TimeoutError, ConnectionError) as e:
            reason = getattr(e, "reason", e)
            raise CompileError(
                f"Failed to reach OPA at {self.opa_url}: {reason}",
                engine_name=self.name,
            ) from e
        except (ValueError, http.client.HTTPException) as e:
            raise CompileError(
                f"Unexpected response from OPA: {e}",
                engine_name=self.name,
            ) from e

        revision = source_revision(source)
        logger.info(f"Uploaded policy module '{self.module_id}' (revision {revision[:12]})")
        return PreparedQuery(
            engine_name=self.name,
            module_id=self.module_id,
            query_path=url_path,
            revision=revision,
        )

    @staticmethod
    def _read_diagnostics(error: urllib.error.HTTPError) -> list[str]:
        """
        Extract compiler messages from an OPA error response.

        OPA reports compile failures as
        {"code": ..., "message": ..., "errors": [{"message", "location"}]}.
        """
        try:
            body = json.loads(error.read().decode("utf-8"))
        except (ValueError, OSError, AttributeError):
            return [f"HTTP {error.code}: {error.reason}"]

        diagnostics = []
        for item in body.get("errors") or []:
            message = item.get("message", "")
            location = item.get("location") or {}
            if location:
                message = f"{location.get('file', '')}:{location.get('row', '?')}: {message}"
            diagnostics.append(message)
        if not diagnostics and body.get("message"):
            diagnostics.append(body["message"])
        return diagnostics

    def evaluate(self, prepared: PreparedQuery, input_data: dict[str, Any]) -> list[Any]:
        """
        Query OPA's data API for the prepared rule.

        Returns:
            [value] when the rule is defined, [] when it is undefined.

        Raises:
            EvaluationError: If the query fails after retries.
        """
        url = f"{self.opa_url}/v1/data/{prepared.query_path}"
        body = json.dumps({"input": input_data}).encode("utf-8")

        try:
            response = retry_call(
                self._request,
                "POST",
                url,
                body,
                policy=self._retry_policy,
                description="OPA query",
            )
        except urllib.error.HTTPError as e:
            raise EvaluationError(
                f"OPA query failed: HTTP {e.code}: {e.reason}",
                revision=prepared.revision,
            ) from e
        except (urllib.error.URLError, TimeoutError, ConnectionError) as e:
            raise EvaluationError(
                f"OPA query failed: {getattr(e, 'reason', e)}",
                revision=prepared.revision,
            ) from e
        except (ValueError, http.client.HTTPException) as e:
            raise EvaluationError(
                f"OPA returned an unparseable response: {e}",
                revision=prepared.revision,
            ) from e

        if not isinstance(response, dict):
            raise EvaluationError(
                "OPA returned an unparseable response",
                revision=prepared.revision,
            )
        if "result" not in response:
            return []
        return [response["result"]]

    def health_check(self) -> bool:
        """
        Check if the OPA server is healthy.

        Returns:
            True if OPA is reachable and healthy.
        """
        req = urllib.request.Request(f"{self.opa_url}/health", method="GET")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return response.status == 200
        except (urllib.error.URLError, TimeoutError, ConnectionError, http.client.HTTPException) as e:
            logger.warning(f"OPA health check failed: {e}")
            return False
