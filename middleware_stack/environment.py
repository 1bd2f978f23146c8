"""
Middleware Stack - Environment Resolver
========================================

What:  Derives the production-mode signal and bundles it with the runtime
       collaborators that assembly needs (event bus, session capability).
How:   ``resolve_environment`` reads PYTHON_ENV once, through ProcessSettings,
       and returns a frozen ``EnvironmentContext``. Everything downstream
       receives that context explicitly, so tests can build one for either
       mode without touching process state.

Production mode is NOT the application's declared environment name. An app
may call itself "staging" while PYTHON_ENV=production, and dependency
behavior (compression on, timer off, terse body-parser errors) follows
PYTHON_ENV.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from middleware_stack.config import ProcessSettings
from middleware_stack.events import EventBus

# An already-configured session handler: awaits (request, response) and
# raises on failure.
SessionHandler = Callable[[Any, Any], Awaitable[None]]


@dataclass(frozen=True)
class EnvironmentContext:
    """
    Runtime facts that gate assembly.

    Attributes:
        production:  True only when PYTHON_ENV == "production"
        events:      Bus the terminal 404/500 stages emit on
        session:     Session handler; None means the session capability is off
    """

    production: bool
    events: EventBus
    session: Optional[SessionHandler] = None

    @property
    def session_enabled(self) -> bool:
        return self.session is not None


def is_production(settings: Optional[ProcessSettings] = None) -> bool:
    """Exact-match check of PYTHON_ENV against "production"."""
    settings = settings if settings is not None else ProcessSettings()
    return settings.production


def resolve_environment(
    events: EventBus,
    session: Optional[SessionHandler] = None,
    settings: Optional[ProcessSettings] = None,
) -> EnvironmentContext:
    """Snapshot the process environment into an ``EnvironmentContext``."""
    return EnvironmentContext(
        production=is_production(settings),
        events=events,
        session=session,
    )
