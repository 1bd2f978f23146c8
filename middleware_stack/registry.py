"""
Middleware Stack - Defaulting Registry
=======================================

What:  Resolves every built-in middleware name to an entry: the caller's
       override if one exists, otherwise the built-in default.
How:   One builder per name. For each name, an override present in the
       mapping wins verbatim (even a falsy one) and the builder is never
       called. Otherwise the builder runs exactly once with the config and
       environment, and its result (possibly None) becomes the entry.
When:  Once per server start. The returned registry is read-only.

Entries are tagged:
    enabled  → ``entry.middleware`` is the callable to install
    disabled → ``entry.middleware`` is None; the pipeline skips it
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from middleware_stack.config import StackConfig
from middleware_stack.environment import EnvironmentContext
from middleware_stack.http import Middleware
from middleware_stack.middleware import (
    body_parser,
    cookie_parser,
    session,
    static,
    terminal,
    utility,
)

logger = logging.getLogger(__name__)

TERMINAL_NAMES: Tuple[str, ...] = ("404", "500")

Builder = Callable[[StackConfig, EnvironmentContext], Optional[Middleware]]

BUILDERS: Mapping[str, Builder] = MappingProxyType(
    {
        "www": static.build_www,
        "session": session.build_session,
        "favicon": static.build_favicon,
        "startRequestTimer": utility.build_start_request_timer,
        "cookieParser": cookie_parser.build_cookie_parser,
        "compress": utility.build_compress,
        "bodyParser": body_parser.build_body_parser,
        "methodOverride": utility.build_method_override,
        "poweredBy": utility.build_powered_by,
        "404": terminal.build_unmatched_request_handler,
        "500": terminal.build_error_handler,
    }
)

BUILTIN_NAMES: Tuple[str, ...] = tuple(BUILDERS)


@dataclass(frozen=True)
class MiddlewareEntry:
    """
    One named slot of the registry.

    Attributes:
        name:        Built-in name (e.g. "bodyParser")
        middleware:  Installed callable, or None when disabled
        overridden:  True when the value came from the override mapping
    """

    name: str
    middleware: Optional[Middleware]
    overridden: bool = False

    @property
    def enabled(self) -> bool:
        return self.middleware is not None


class MiddlewareRegistry(Mapping[str, MiddlewareEntry]):
    """Immutable mapping of built-in name → ``MiddlewareEntry``."""

    def __init__(self, entries: Mapping[str, MiddlewareEntry]):
        self._entries: Mapping[str, MiddlewareEntry] = MappingProxyType(dict(entries))

    def __getitem__(self, name: str) -> MiddlewareEntry:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        enabled = [name for name, entry in self._entries.items() if entry.enabled]
        return f"MiddlewareRegistry(enabled={enabled})"

    def enabled(self) -> Dict[str, Middleware]:
        """Names and callables of every enabled entry."""
        return {
            name: entry.middleware
            for name, entry in self._entries.items()
            if entry.enabled
        }


def assemble(
    overrides: Optional[Mapping[str, Any]],
    config: StackConfig,
    environment: EnvironmentContext,
) -> MiddlewareRegistry:
    """
    Build the registry of built-in middleware.

    Args:
        overrides:    Caller replacements keyed by built-in name; a falsy value
                      disables that built-in
        config:       Configuration snapshot
        environment:  Production flag, event bus and session capability

    Raises:
        ConfigurationError: propagated from a builder (e.g. non-text secret)
    """
    overrides = overrides or {}
    entries: Dict[str, MiddlewareEntry] = {}

    for name, build in BUILDERS.items():
        if name in overrides:
            value = overrides[name]
            entries[name] = MiddlewareEntry(name, value if value else None, overridden=True)
            logger.debug("Using overridden middleware '%s' (enabled=%s)", name, bool(value))
            continue
        entries[name] = MiddlewareEntry(name, build(config, environment) or None)

    registry = MiddlewareRegistry(entries)
    logger.debug("Assembled %r", registry)
    return registry
