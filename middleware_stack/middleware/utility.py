"""
Middleware Stack - Small Built-ins
===================================

What:  Request timer, compression, HTTP method override and the
       X-Powered-By header.

Gating:
    startRequestTimer  → only outside production
    compress           → only in production
    methodOverride     → only when http.methodOverride is configured
    poweredBy          → always
"""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable, Optional

from starlette.middleware.gzip import GZipMiddleware

from middleware_stack import __version__
from middleware_stack.http import Middleware

if TYPE_CHECKING:
    from middleware_stack.config import StackConfig
    from middleware_stack.environment import EnvironmentContext

logger = logging.getLogger(__name__)

POWERED_BY = f"middleware-stack/{__version__}"

# Responses smaller than this are sent uncompressed
COMPRESSION_MINIMUM_SIZE = 1024

OVERRIDABLE_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")


async def start_request_timer(request, response, proceed):
    request.state.start_time = datetime.now(timezone.utc)
    await proceed()


async def powered_by(request, response, proceed):
    response.set_header("X-Powered-By", POWERED_BY)
    await proceed()


def compress(minimum_size: int = COMPRESSION_MINIMUM_SIZE) -> Middleware:
    """Gzip whatever response the rest of the chain produces."""

    async def compression(request, response, proceed):
        response.wrap(lambda app: GZipMiddleware(app, minimum_size=minimum_size))
        await proceed()

    return compression


def method_override(
    key: str = "_method",
    header: str = "X-HTTP-Method-Override",
    methods: Iterable[str] = ("POST",),
) -> Middleware:
    """
    Let clients that can only POST simulate PUT, DELETE, ...

    The override comes from the ``header`` first, then the ``key`` query
    parameter. Only requests whose real method is in ``methods`` qualify.
    """
    methods = tuple(m.upper() for m in methods)

    async def override(request, response, proceed):
        if request.method in methods:
            requested = request.headers.get(header) or request.query_params.get(key)
            if requested and requested.upper() in OVERRIDABLE_METHODS:
                request.state.original_method = request.method
                request.scope["method"] = requested.upper()
                logger.debug(
                    "Method override %s → %s for %s",
                    request.state.original_method,
                    request.scope["method"],
                    request.url.path,
                )
        await proceed()

    return override


def build_start_request_timer(
    config: "StackConfig", environment: "EnvironmentContext"
) -> Optional[Middleware]:
    if environment.production:
        return None
    return start_request_timer


def build_compress(
    config: "StackConfig", environment: "EnvironmentContext"
) -> Optional[Middleware]:
    if not environment.production:
        return None
    return compress()


def build_method_override(
    config: "StackConfig", environment: "EnvironmentContext"
) -> Optional[Middleware]:
    factory = config.http.method_override
    if factory:
        return factory()
    return None


def build_powered_by(config: "StackConfig", environment: "EnvironmentContext") -> Middleware:
    return powered_by
