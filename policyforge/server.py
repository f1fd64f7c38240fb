"""
HTTP API for policyforge.

Endpoints:
    POST /evaluate         Decide an access request.
    POST /generate-policy  Render and persist a policy from a PolicySpec.
    GET  /health           Liveness and active policy revision.

Handlers are plain ``def`` functions, so FastAPI runs each request on its
worker thread pool and a slow store or engine call never blocks other
requests.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from policyforge.authoring import PolicyAuthoringService
from policyforge.compiler import PolicyCompiler
from policyforge.config import ServiceConfig, load_config
from policyforge.decision import DecisionEngine
from policyforge.engines import RuleEngine, create_engine
from policyforge.exceptions import (
    CompileError,
    EvaluationError,
    NoActivePolicyError,
    PolicyForgeError,
    RenderError,
    StoreError,
    ValidationError,
)
from policyforge.logging_setup import configure_logging
from policyforge.rendering import TemplateRenderer, load_template
from policyforge.schemas import AccessRequestBody, PolicySpecBody
from policyforge.storage import PolicyStore, S3PolicyStore

logger = logging.getLogger(__name__)

# Generic messages returned to callers; diagnostics go to the log.
_ERROR_RESPONSES: list[tuple[type[PolicyForgeError], int, str]] = [
    (ValidationError, 400, "Invalid request payload"),
    (NoActivePolicyError, 500, "Failed to evaluate policy"),
    (EvaluationError, 500, "Failed to evaluate policy"),
    (RenderError, 500, "Failed to render policy template"),
    (CompileError, 500, "Failed to compile policy"),
    (StoreError, 500, "Failed to store policy"),
]


@dataclass
class ServiceComponents:
    """The wired service objects shared by all requests."""
    config: ServiceConfig
    store: PolicyStore
    engine: RuleEngine
    compiler: PolicyCompiler
    decisions: DecisionEngine
    authoring: PolicyAuthoringService


def build_components(
    config: ServiceConfig,
    store: PolicyStore | None = None,
    engine: RuleEngine | None = None,
    template: str | None = None,
) -> ServiceComponents:
    """
    Wire store, engine, compiler, decision engine and authoring service.

    Args:
        config: Resolved configuration.
        store: Policy store; an S3PolicyStore is built when omitted.
        engine: Rule engine; created from config.engine when omitted.
        template: Template text; loaded from config.policy.template_path
            (or the bundled template) when omitted.
    """
    store = store or S3PolicyStore(config.store)
    engine = engine or create_engine(config.engine.type, config.engine.to_engine_config())
    if template is None:
        template = load_template(config.policy.template_path)

    compiler = PolicyCompiler(
        engine,
        query_path=config.policy.query_path,
        store=store,
        active_policy_key=config.store.policy_object_key,
    )
    decisions = DecisionEngine(compiler.active_policy, engine)
    authoring = PolicyAuthoringService(
        TemplateRenderer(),
        store,
        template,
        compiler=compiler,
        hot_reload=config.policy.hot_reload,
        key_prefix=config.policy.key_prefix,
    )
    return ServiceComponents(
        config=config,
        store=store,
        engine=engine,
        compiler=compiler,
        decisions=decisions,
        authoring=authoring,
    )


def load_active_policy(components: ServiceComponents) -> bool:
    """
    Load the active policy at startup.

    Failures are logged, not raised: the server starts anyway and
    answers decisions with 500 until a policy is published.
    """
    try:
        components.compiler.load_from_store()
        return True
    except (StoreError, CompileError) as e:
        logger.error(f"Failed to load or prepare policy: {e}")
        return False


def create_app(
    config: ServiceConfig | None = None,
    components: ServiceComponents | None = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Resolved configuration; loaded with load_config() when
            neither argument is given.
        components: Pre-wired components (tests inject fakes here).
    """
    if components is None:
        components = build_components(config or load_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        load_active_policy(components)
        yield

    app = FastAPI(title="policyforge", lifespan=lifespan)
    app.state.components = components

    @app.exception_handler(RequestValidationError)
    async def invalid_payload(request: Request, exc: RequestValidationError) -> PlainTextResponse:
        logger.error(f"Invalid JSON payload on {request.url.path}: {exc.errors()}")
        return PlainTextResponse("Invalid JSON payload", status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
        if exc.status_code == 405:
            return PlainTextResponse(
                "Only POST method is allowed", status_code=405, headers=exc.headers
            )
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(PolicyForgeError)
    async def service_error(request: Request, exc: PolicyForgeError) -> PlainTextResponse:
        for error_type, status_code, message in _ERROR_RESPONSES:
            if isinstance(exc, error_type):
                break
        else:
            status_code, message = 500, "Internal server error"

        if status_code >= 500:
            logger.error(f"{message} on {request.url.path}: {exc}", extra={"error": exc.to_dict()})
        else:
            logger.info(f"Rejected request on {request.url.path}: {exc}")
        return PlainTextResponse(message, status_code=status_code)

    @app.post("/evaluate", response_class=PlainTextResponse)
    def evaluate(body: AccessRequestBody) -> PlainTextResponse:
        result = components.decisions.decide(body.to_domain())
        if result.allowed:
            return PlainTextResponse("Access granted", status_code=200)
        return PlainTextResponse("Access denied", status_code=403)

    @app.post("/generate-policy")
    def generate_policy(body: PolicySpecBody) -> JSONResponse:
        result = components.authoring.author_policy(body.to_domain())
        content = {"message": "Policy generated and stored successfully", **result.to_dict()}
        return JSONResponse(content, status_code=200)

    @app.get("/health")
    def health() -> dict[str, object]:
        return {
            "status": "ok",
            "activePolicy": components.compiler.active_policy.revision,
        }

    return app


def main() -> None:
    """Run the server with uvicorn."""
    config = load_config()
    configure_logging(config.server.log_level)
    app = create_app(config)
    logger.info(f"Server starting on {config.server.host}:{config.server.port}")
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_config=None)


if __name__ == "__main__":
    main()
