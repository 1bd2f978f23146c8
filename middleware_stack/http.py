"""
Middleware Stack - Request/Response Primitives
===============================================

What:  The response object every middleware writes through, the continuation
       type, and small helpers shared by the built-ins.
How:   Requests are plain Starlette ``Request`` objects. Responses are an
       ``HttpResponse`` wrapper around the ASGI ``send`` callable that:
         - remembers whether headers went out (``headers_sent``)
         - carries pending headers, merged into whatever response starts
         - carries response wrappers (e.g. gzip) applied at send time
         - refuses to start a second response

Middleware shapes:
    async def stage(request, response, proceed): ...
    async def on_error(error, request, response, proceed): ...

    ``proceed()`` passes control to the next stage; ``proceed(error)`` skips
    to the next error-shaped stage.
"""

import traceback
from typing import Any, Awaitable, Callable, List, Optional

from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from middleware_stack.exceptions import ResponseAlreadyStartedError

# Scope key holding the raw body once a parser has consumed the stream
RAW_BODY_KEY = "middleware_stack.raw_body"

Proceed = Callable[..., Awaitable[None]]
Middleware = Callable[..., Any]
ResponseWrapper = Callable[[ASGIApp], ASGIApp]


def describe_error(error: BaseException) -> str:
    """Formatted traceback when the error has one, else its repr."""
    if error.__traceback__ is not None:
        return "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        ).rstrip()
    return repr(error)


def replay_receive(request: Request) -> Receive:
    """
    ``receive`` callable for handing the request to another ASGI app.

    If a body parser already drained the stream, the cached body is replayed
    as a single ``http.request`` message; later calls fall back to the real
    channel (which only reports disconnects at that point).
    """
    body = request.scope.get(RAW_BODY_KEY)
    if body is None:
        return request.receive

    replayed = False

    async def receive() -> Message:
        nonlocal replayed
        if not replayed:
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await request.receive()

    return receive


class HttpResponse:
    """Response handle passed to every stage of the pipeline."""

    def __init__(self, scope: Scope, receive: Receive, send: Send):
        self.scope = scope
        self._receive = receive
        self._send = send
        self.status_code = 200
        self.headers = MutableHeaders()
        self.headers_sent = False
        self.finished = False
        self._wrappers: List[ResponseWrapper] = []

    def status(self, status_code: int) -> "HttpResponse":
        self.status_code = status_code
        return self

    def set_header(self, name: str, value: str) -> "HttpResponse":
        self.headers[name] = value
        return self

    def wrap(self, wrapper: ResponseWrapper) -> None:
        """Register a wrapper applied to whatever ASGI app ends up responding."""
        self._wrappers.append(wrapper)

    async def send(
        self, content: Any = None, media_type: Optional[str] = None
    ) -> None:
        """Send ``content`` with the current status code."""
        if content is None:
            response = Response(status_code=self.status_code)
        else:
            response = Response(
                content,
                status_code=self.status_code,
                media_type=media_type or "text/plain",
            )
        await self.respond(response)

    async def json(self, data: Any) -> None:
        await self.respond(JSONResponse(data, status_code=self.status_code))

    async def respond(self, app: ASGIApp, receive: Optional[Receive] = None) -> None:
        """
        Hand the exchange to an ASGI app (a Starlette response, router, ...).

        Raises:
            ResponseAlreadyStartedError: if headers were already sent
        """
        if self.headers_sent:
            raise ResponseAlreadyStartedError(
                context={"path": self.scope.get("path")}
            )
        for wrapper in reversed(self._wrappers):
            app = wrapper(app)
        await app(self.scope, receive or self._receive, self._send_message)

    async def _send_message(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            headers = MutableHeaders(scope=message)
            for name, value in self.headers.items():
                if name not in headers:
                    headers.append(name, value)
            self.status_code = message["status"]
            self.headers_sent = True
        elif message["type"] == "http.response.body" and not message.get(
            "more_body", False
        ):
            self.finished = True
        await self._send(message)
