"""
Middleware Stack - Event Bus
=============================

What:  In-process publish/subscribe hub for request lifecycle events.
Why:   The terminal 404/500 stages only *detect* failures; presenting them
       (rendering a page, reporting an error) is up to whoever subscribes.
How:   Subscribers are kept per event name and awaited in registration order.
       A subscriber exception propagates to the emitter.

Events:
    router:request:404  (request, response)
    router:request:500  (error, request, response)
"""

import inspect
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

REQUEST_UNMATCHED = "router:request:404"
REQUEST_ERRORED = "router:request:500"

Subscriber = Callable[..., Any]


class EventBus:
    """Named-event hub. Subscribers may be plain functions or coroutines."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Subscriber]] = {}

    def subscribe(self, event: str, handler: Subscriber) -> None:
        self._subscribers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: Subscriber) -> None:
        handlers = self._subscribers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def subscribers(self, event: str) -> List[Subscriber]:
        return list(self._subscribers.get(event, []))

    async def emit(self, event: str, *args: Any) -> int:
        """
        Deliver ``args`` to every subscriber of ``event``.

        Returns:
            Number of subscribers that were called.
        """
        handlers = self.subscribers(event)
        if not handlers:
            logger.debug("No subscribers for %s", event)
            return 0

        for handler in handlers:
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
        return len(handlers)
