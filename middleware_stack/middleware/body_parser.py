"""
Middleware Stack - Body Parser
===============================

What:  Chooses the body parser, builds the shared error funnel, and provides
       the default parser.
How:   ``build_body_parser`` resolves ``http.bodyParser``:
           factory  → factory(on_body_parser_error=funnel)
           False    → no body parser at all
           None     → parse_body(on_body_parser_error=funnel)

Error funnel response policy:
    production and not keep_response_errors  → 400, empty body
    otherwise                                → 400, descriptive message

Default parser (``parse_body``):
    application/json                    → decoded JSON
    application/x-www-form-urlencoded   → FormData
    multipart/form-data                 → FormData (python-multipart)
    text/*                              → str
    no body                             → {}
    anything else                       → raw bytes

    The raw body is cached in the scope so downstream ASGI apps can read it
    again (see ``replay_receive``).
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

from starlette.formparsers import MultiPartException

from middleware_stack.exceptions import BodyParseError
from middleware_stack.http import RAW_BODY_KEY, Middleware, describe_error

if TYPE_CHECKING:
    from middleware_stack.config import StackConfig
    from middleware_stack.environment import EnvironmentContext

logger = logging.getLogger(__name__)

# 1 MiB
DEFAULT_BODY_LIMIT = 1_048_576

FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def make_error_funnel(config: "StackConfig", environment: "EnvironmentContext"):
    """Single error callback shared by whichever parser gets installed."""
    hide_details = environment.production and config.keep_response_errors is not True

    async def on_body_parser_error(error, request, response, proceed):
        message = "Unable to parse HTTP body- error occurred :: " + describe_error(error)
        logger.error(message)

        if response.headers_sent:
            logger.warning(
                "The body parser reported an error after response headers were "
                "sent; not sending another response"
            )
            return

        if hide_details:
            await response.status(400).send()
            return
        await response.status(400).send(message)

    return on_body_parser_error


async def _decode(request, body: bytes) -> Any:
    content_type = request.headers.get("content-type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()

    if media_type == "application/json" or media_type.endswith("+json"):
        try:
            return json.loads(body)
        except ValueError as exc:
            raise BodyParseError(f"Invalid JSON body: {exc}", content_type=media_type) from exc

    if media_type in FORM_TYPES:
        try:
            return await request.form()
        except MultiPartException as exc:
            raise BodyParseError(exc.message, content_type=media_type) from exc

    if media_type.startswith("text/"):
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise BodyParseError("Body is not valid UTF-8", content_type=media_type) from exc

    return body


def parse_body(on_body_parser_error=None, limit: int = DEFAULT_BODY_LIMIT):
    """
    Default body-parsing middleware factory.

    Args:
        on_body_parser_error:  Error-shaped callback for parse failures; when
                               omitted, failures go to ``proceed(error)``
        limit:                 Maximum body size in bytes
    """

    async def body_parser(request, response, proceed):
        error: Optional[BodyParseError] = None
        declared = request.headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > limit:
            error = BodyParseError(
                "Request entity too large",
                context={"limit": limit, "length": int(declared)},
            )
        else:
            body = await request.body()
            if len(body) > limit:
                error = BodyParseError(
                    "Request entity too large",
                    context={"limit": limit, "length": len(body)},
                )
            else:
                request.scope[RAW_BODY_KEY] = body
                try:
                    request.state.body = await _decode(request, body) if body else {}
                except BodyParseError as exc:
                    error = exc

        if error is None:
            await proceed()
        elif on_body_parser_error is not None:
            await on_body_parser_error(error, request, response, proceed)
        else:
            await proceed(error)

    return body_parser


def build_body_parser(
    config: "StackConfig", environment: "EnvironmentContext"
) -> Optional[Middleware]:
    funnel = make_error_funnel(config, environment)
    factory = config.http.body_parser

    if factory:
        return factory(on_body_parser_error=funnel)
    if factory is False:
        # Explicitly disabled: no default substitution
        return None

    return parse_body(on_body_parser_error=funnel)
