"""
Middleware Stack - Terminal 404/500 Stages
===========================================

What:  The two stages installed at the very end of the pipeline.
How:   Neither produces a response. Each emits an event on the bus and a
       subscriber decides what the client sees.

    404  (request, response, proceed)         → router:request:404
    500  (error, request, response, proceed)  → router:request:500
"""

from typing import TYPE_CHECKING

from middleware_stack.events import REQUEST_ERRORED, REQUEST_UNMATCHED

if TYPE_CHECKING:
    from middleware_stack.config import StackConfig
    from middleware_stack.environment import EnvironmentContext


def build_unmatched_request_handler(
    config: "StackConfig", environment: "EnvironmentContext"
):
    events = environment.events

    # Three parameters only: an error argument would turn this into an
    # error-shaped stage.
    async def handle_unmatched_request(request, response, proceed):
        await events.emit(REQUEST_UNMATCHED, request, response)

    return handle_unmatched_request


def build_error_handler(config: "StackConfig", environment: "EnvironmentContext"):
    events = environment.events

    async def handle_error(error, request, response, proceed):
        await events.emit(REQUEST_ERRORED, error, request, response)

    return handle_error
