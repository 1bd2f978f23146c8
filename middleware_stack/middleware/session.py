"""
Middleware Stack - Session Adapter
===================================

What:  Wraps the already-configured session handler so its failures become a
       logged 400 response instead of an unhandled error.
How:   The handler is awaited with (request, response). Success → proceed.
       Failure → log at ERROR, then either answer 400 with the inspected error
       or, when headers already went out, log a warning and stop.

The 400 body always carries the error text, in production too. The
body-parser funnel hides details in production; this path does not.
"""

import logging
from typing import TYPE_CHECKING, Optional

from middleware_stack.http import Middleware, describe_error

if TYPE_CHECKING:
    from middleware_stack.config import StackConfig
    from middleware_stack.environment import EnvironmentContext, SessionHandler

logger = logging.getLogger(__name__)


def wrap_session_handler(handler: "SessionHandler") -> Middleware:
    async def session(request, response, proceed):
        try:
            await handler(request, response)
        except Exception as err:
            message = "Error occurred in session middleware :: " + describe_error(err)
            logger.error(message)

            # Timing issues in application code can mean a response is already
            # on the wire; a second one would fault.
            if response.headers_sent:
                logger.warning(
                    "The session middleware encountered an error and triggered its "
                    "callback, but response headers have already been sent. Rather "
                    "than attempting to send another response, failing silently..."
                )
                return

            await response.status(400).send(message)
            return

        await proceed()

    return session


def build_session(
    config: "StackConfig", environment: "EnvironmentContext"
) -> Optional[Middleware]:
    # Without the session capability this is silent; session middleware can
    # still be supplied through the override mapping.
    if not environment.session_enabled:
        logger.debug(
            "Cannot load default HTTP session middleware when the session "
            "capability is disabled"
        )
        return None

    if config.session is None:
        logger.error(
            "Cannot load default HTTP session middleware without session "
            "configuration"
        )
        return None

    return wrap_session_handler(environment.session)
