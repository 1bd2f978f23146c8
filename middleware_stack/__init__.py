"""
Middleware Stack - Package Initializer
=======================================

What: Built-in HTTP middleware for a host server: decides which middleware
      are active, in what configured form, and how their failures surface.

Architecture Note:

    ┌─────────────────────────────────────┐
    │   main.py (host bootstrap, ASGI)    │  ← create_app(), serve()
    ├─────────────────────────────────────┤
    │   pipeline.py (ordering, runner)    │  ← build_pipeline(), PipelineApp
    ├─────────────────────────────────────┤
    │   registry.py (override/defaults)   │  ← assemble()
    ├─────────────────────────────────────┤
    │   middleware/ (built-in factories)  │  ← session, bodyParser, cookies, ...
    ├─────────────────────────────────────┤
    │   config.py / environment.py        │  ← StackConfig, EnvironmentContext
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"

from middleware_stack.config import ProcessSettings, StackConfig  # noqa: E402
from middleware_stack.environment import (  # noqa: E402
    EnvironmentContext,
    is_production,
    resolve_environment,
)
from middleware_stack.events import REQUEST_ERRORED, REQUEST_UNMATCHED, EventBus  # noqa: E402
from middleware_stack.exceptions import (  # noqa: E402
    BodyParseError,
    ConfigurationError,
    MiddlewareStackError,
    ResponseAlreadyStartedError,
)
from middleware_stack.pipeline import (  # noqa: E402
    DEFAULT_ORDER,
    Pipeline,
    PipelineApp,
    build_pipeline,
    mount_router,
)
from middleware_stack.registry import (  # noqa: E402
    BUILTIN_NAMES,
    MiddlewareEntry,
    MiddlewareRegistry,
    assemble,
)

__all__ = [
    "BUILTIN_NAMES",
    "DEFAULT_ORDER",
    "REQUEST_ERRORED",
    "REQUEST_UNMATCHED",
    "BodyParseError",
    "ConfigurationError",
    "EnvironmentContext",
    "EventBus",
    "MiddlewareEntry",
    "MiddlewareRegistry",
    "MiddlewareStackError",
    "Pipeline",
    "PipelineApp",
    "ProcessSettings",
    "ResponseAlreadyStartedError",
    "StackConfig",
    "assemble",
    "build_pipeline",
    "is_production",
    "mount_router",
    "resolve_environment",
]
