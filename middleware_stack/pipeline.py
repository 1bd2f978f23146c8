"""
Middleware Stack - Pipeline Runner
===================================

What:  Runs an ordered list of middleware for each request and adapts the
       result to ASGI.
How:   Continuation passing. Each stage receives its own ``proceed``
       continuation; calling it resumes the chain at the next stage. With an
       error argument, the chain resumes at the next *error-shaped* stage
       (four required positional parameters) instead.

Pipeline Layout (defaults):
    startRequestTimer → cookieParser → session → bodyParser → compress
    → methodOverride → poweredBy → router → www → favicon → 404 → 500

    404 and 500 are always appended last, in that order.

Failure rules:
    - A stage that raises before proceeding is treated as ``proceed(exc)``.
    - A second call to the same ``proceed`` is logged and ignored.
    - Running off the end answers 500 (with an error) or 404 (without).
    - Synchronous stages may call ``proceed()`` without awaiting it; the chain
      resumes once the stage returns.
"""

import inspect
import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Router
from starlette.types import Receive, Scope, Send

from middleware_stack.exceptions import ConfigurationError
from middleware_stack.http import HttpResponse, Middleware, describe_error, replay_receive
from middleware_stack.registry import TERMINAL_NAMES, MiddlewareRegistry

logger = logging.getLogger(__name__)

ROUTER = "router"

DEFAULT_ORDER: Tuple[str, ...] = (
    "startRequestTimer",
    "cookieParser",
    "session",
    "bodyParser",
    "compress",
    "methodOverride",
    "poweredBy",
    ROUTER,
    "www",
    "favicon",
)

# Scope flag set when the wrapped router found no matching route
_UNMATCHED_KEY = "middleware_stack.unmatched"


def handles_errors(middleware: Middleware) -> bool:
    """True for error-shaped middleware: ``(error, request, response, proceed)``."""
    try:
        signature = inspect.signature(middleware)
    except (TypeError, ValueError):
        return False
    required = [
        p
        for p in signature.parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        and p.default is p.empty
    ]
    return len(required) == 4


class Stage:
    """A named middleware with its shape resolved once."""

    def __init__(self, name: str, middleware: Middleware):
        self.name = name
        self.middleware = middleware
        self.handles_errors = handles_errors(middleware)

    def __repr__(self) -> str:
        return f"Stage({self.name!r}, handles_errors={self.handles_errors})"


class _Continuation:
    """
    ``proceed`` handed to one stage; resumes the chain at most once.

    Calling it only records the request to continue. The chain resumes when
    the returned object is awaited, or, for synchronous stages that never
    await it, as soon as the stage returns.
    """

    def __init__(self, pipeline: "Pipeline", stage: Stage, index: int,
                 request: Request, response: HttpResponse):
        self._pipeline = pipeline
        self._stage = stage
        self._index = index
        self._request = request
        self._response = response
        self._error: Optional[BaseException] = None
        self.called = False
        self.resumed = False

    def __call__(self, error: Optional[BaseException] = None) -> "_Continuation":
        if self.called:
            logger.warning(
                "Middleware '%s' called proceed() more than once; ignoring",
                self._stage.name,
            )
            return self
        self.called = True
        self._error = error
        return self

    def __await__(self):
        return self.resume().__await__()

    async def resume(self) -> None:
        if self.resumed:
            return
        self.resumed = True
        await self._pipeline.dispatch(
            self._index, self._request, self._response, self._error
        )


class Pipeline:
    """Ordered middleware chain."""

    def __init__(self, stages: Iterable[Tuple[str, Middleware]]):
        self.stages: List[Stage] = [Stage(name, mw) for name, mw in stages]

    @property
    def names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    async def __call__(self, request: Request, response: HttpResponse) -> None:
        await self.dispatch(0, request, response, None)

    async def dispatch(
        self,
        start: int,
        request: Request,
        response: HttpResponse,
        error: Optional[BaseException],
    ) -> None:
        for index in range(start, len(self.stages)):
            stage = self.stages[index]
            if stage.handles_errors != (error is not None):
                continue

            proceed = _Continuation(self, stage, index + 1, request, response)
            try:
                if error is None:
                    result = stage.middleware(request, response, proceed)
                else:
                    result = stage.middleware(error, request, response, proceed)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                if not proceed.called:
                    logger.debug("Middleware '%s' raised %r", stage.name, exc)
                    proceed(exc)
                else:
                    logger.error(
                        "Middleware '%s' raised after passing control on :: %s",
                        stage.name,
                        describe_error(exc),
                    )

            if proceed.called:
                await proceed.resume()
            return

        await self._finish(request, response, error)

    async def _finish(
        self, request: Request, response: HttpResponse, error: Optional[BaseException]
    ) -> None:
        if error is not None:
            logger.error(
                "Unhandled error in %s %s :: %s",
                request.method,
                request.url.path,
                describe_error(error),
            )
            if not response.headers_sent:
                await response.status(500).send("Internal Server Error")
            return

        if not response.headers_sent:
            await response.status(404).send(
                f"Cannot {request.method} {request.url.path}"
            )


def mount_router(router: Router) -> Middleware:
    """
    Adapt a Starlette ``Router`` into a pipeline stage.

    Matched routes respond through the ``HttpResponse`` (so pending headers
    and compression apply); unmatched requests fall through to ``proceed()``.
    """

    async def fall_through(scope: Scope, receive: Receive, send: Send) -> None:
        scope[_UNMATCHED_KEY] = True

    wrapped = Router(
        routes=list(router.routes),
        redirect_slashes=router.redirect_slashes,
        default=fall_through,
    )

    async def route_request(request, response, proceed):
        await response.respond(wrapped, receive=replay_receive(request))
        if request.scope.pop(_UNMATCHED_KEY, False):
            await proceed()

    return route_request


def build_pipeline(
    registry: MiddlewareRegistry,
    order: Optional[Sequence[str]] = None,
    router: Optional[Router] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> Pipeline:
    """
    Turn an assembled registry into an ordered ``Pipeline``.

    Args:
        registry:  Output of ``assemble``
        order:     Activation order; defaults to ``DEFAULT_ORDER``
        router:    Application routes, installed at the ``router`` slot
        extra:     Custom named middleware that ``order`` may refer to

    Raises:
        ConfigurationError: on unknown names, a repeated ``router`` slot, or
            404/500 anywhere in ``order`` (they are always appended last)
    """
    order = tuple(DEFAULT_ORDER if order is None else order)
    extra = extra or {}

    misplaced = [name for name in order if name in TERMINAL_NAMES]
    if misplaced:
        raise ConfigurationError(
            "The 404 and 500 middleware are always installed last and must not "
            "appear in the middleware order",
            setting="http.order",
            context={"misplaced": misplaced},
        )
    if order.count(ROUTER) > 1:
        raise ConfigurationError(
            "The router can only be installed once", setting="http.order"
        )

    stages: List[Tuple[str, Middleware]] = []
    for name in order:
        if name == ROUTER:
            if router is not None:
                stages.append((ROUTER, mount_router(router)))
            continue

        if name in registry:
            entry = registry[name]
            if not entry.enabled:
                logger.debug("Skipping disabled middleware '%s'", name)
                continue
            stages.append((name, entry.middleware))
        elif name in extra:
            if extra[name]:
                stages.append((name, extra[name]))
        else:
            raise ConfigurationError(
                f"Unknown middleware '{name}' in the middleware order",
                setting="http.order",
            )

    for name in TERMINAL_NAMES:
        entry = registry[name]
        if entry.enabled:
            stages.append((name, entry.middleware))

    pipeline = Pipeline(stages)
    logger.debug("Middleware pipeline: %s", " → ".join(pipeline.names))
    return pipeline


class PipelineApp:
    """ASGI application that runs a ``Pipeline`` for every HTTP request."""

    def __init__(self, pipeline: Pipeline, on_startup=None, on_shutdown=None):
        self.pipeline = pipeline
        self._on_startup = list(on_startup or [])
        self._on_shutdown = list(on_shutdown or [])

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._lifespan(receive, send)
            return
        if scope["type"] != "http":
            logger.warning("Unsupported ASGI scope type: %s", scope["type"])
            if scope["type"] == "websocket":
                await send({"type": "websocket.close", "code": 1000})
            return

        request = Request(scope, receive)
        response = HttpResponse(scope, receive, send)
        try:
            await self.pipeline(request, response)

            if not response.headers_sent:
                logger.warning(
                    "No middleware responded to %s %s", request.method, request.url.path
                )
                await PlainTextResponse("Internal Server Error", status_code=500)(
                    scope, receive, send
                )
        finally:
            # Closes uploaded files from a parsed multipart form
            await request.close()

    async def _lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                for hook in self._on_startup:
                    result = hook()
                    if inspect.isawaitable(result):
                        await result
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                for hook in self._on_shutdown:
                    result = hook()
                    if inspect.isawaitable(result):
                        await result
                await send({"type": "lifespan.shutdown.complete"})
                return
