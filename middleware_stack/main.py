"""
Middleware Stack - Host Application Factory
============================================

What:  Wires configuration, environment, registry and pipeline into a
       runnable ASGI application.
How:   Factory pattern: create_app() returns a configured ``PipelineApp``.
Who:   Called by uvicorn (``uvicorn middleware_stack.main:app``) or by
       ``serve()``; tests call create_app() directly.

Application Architecture:
    ┌──────────────────────────────────────────────────────┐
    │                   PipelineApp (ASGI)                 │
    │                                                      │
    │  Built-ins (DEFAULT_ORDER):                          │
    │  timer → cookies → session → body → gzip → override  │
    │  → poweredBy → router → www → favicon                │
    │                                                      │
    │  Terminal stages:                                    │
    │  404 → emits router:request:404                      │
    │  500 → emits router:request:500                      │
    │                                                      │
    │  Default responders (subscribed on the bus):         │
    │  404 → "Not Found" │ 500 → status + maybe details    │
    └──────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   configure logging, log the installed pipeline
    Shutdown:  log shutdown
"""

import logging
import sys
from typing import Any, Dict, Iterable, Optional

from starlette.exceptions import HTTPException
from starlette.routing import BaseRoute, Router

from middleware_stack.config import ProcessSettings, StackConfig
from middleware_stack.environment import (
    EnvironmentContext,
    SessionHandler,
    resolve_environment,
)
from middleware_stack.events import REQUEST_ERRORED, REQUEST_UNMATCHED, EventBus
from middleware_stack.http import describe_error
from middleware_stack.pipeline import PipelineApp, build_pipeline
from middleware_stack.registry import BUILTIN_NAMES, assemble
from middleware_stack.routes import health

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the whole process.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Default 404/500 Responders
# ══════════════════════════════════════════════════════════════════════════

def register_default_responders(
    events: EventBus, config: StackConfig, environment: EnvironmentContext
) -> None:
    """
    Subscribe the host's default presentation of unmatched and failed requests.

    Both responders leave the exchange alone when a response already started.
    Detailed 500 bodies are hidden in production unless keep_response_errors.
    """
    hide_details = environment.production and not config.keep_response_errors

    async def respond_not_found(request, response):
        if response.headers_sent:
            return
        await response.status(404).send("Not Found")

    async def respond_server_error(error, request, response):
        status = error.status_code if isinstance(error, HTTPException) else 500
        if status >= 500:
            logger.error(
                "Request %s %s failed :: %s",
                request.method,
                request.url.path,
                describe_error(error),
            )
        if response.headers_sent:
            logger.warning(
                "Response for %s already started; not sending error response",
                request.url.path,
            )
            return

        if isinstance(error, HTTPException) and status < 500:
            await response.status(status).send(error.detail)
        elif hide_details:
            await response.status(status).send("Internal Server Error")
        else:
            await response.status(status).send(describe_error(error))

    events.subscribe(REQUEST_UNMATCHED, respond_not_found)
    events.subscribe(REQUEST_ERRORED, respond_server_error)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    config: Optional[StackConfig] = None,
    routes: Optional[Iterable[BaseRoute]] = None,
    session: Optional[SessionHandler] = None,
    events: Optional[EventBus] = None,
    settings: Optional[ProcessSettings] = None,
    default_responders: bool = True,
) -> PipelineApp:
    """
    Create the host application.

    Args:
        config:              Configuration snapshot (read from STACK_* when omitted)
        routes:              Application routes, mounted at the ``router`` slot
        session:             Configured session handler; enables the session built-in
        events:              Event bus for the 404/500 stages
        settings:            Process settings (PYTHON_ENV, LOG_LEVEL)
        default_responders:  Subscribe the default 404/500 responders

    Raises:
        ConfigurationError: the configuration cannot produce a pipeline
    """
    config = config if config is not None else StackConfig()
    settings = settings if settings is not None else ProcessSettings()
    events = events if events is not None else EventBus()

    environment = resolve_environment(events, session=session, settings=settings)
    registry = assemble(config.http.middleware, config, environment)

    router = Router(routes=health.build_routes(environment) + list(routes or []))
    extra: Dict[str, Any] = {
        name: value
        for name, value in config.http.middleware.items()
        if name not in BUILTIN_NAMES
    }
    pipeline = build_pipeline(registry, order=config.http.order, router=router, extra=extra)

    if default_responders:
        register_default_responders(events, config, environment)

    def on_startup() -> None:
        setup_logging(settings.log_level)
        logger.info("=" * 60)
        logger.info(
            "Middleware stack starting (environment=%s, production=%s)",
            config.environment,
            environment.production,
        )
        logger.info("Pipeline: %s", " → ".join(pipeline.names))
        logger.info("=" * 60)

    def on_shutdown() -> None:
        logger.info("Shutdown complete.")

    return PipelineApp(pipeline, on_startup=[on_startup], on_shutdown=[on_shutdown])


def serve() -> None:
    """Run the default application with uvicorn."""
    import uvicorn

    settings = ProcessSettings()
    uvicorn.run(
        "middleware_stack.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


# uvicorn expects `middleware_stack.main:app` to be importable
app = create_app()
