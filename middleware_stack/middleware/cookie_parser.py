"""
Middleware Stack - Cookie Parser
=================================

What:  Built-in cookie parser factory and the adapter that decides how (and
       whether) it is installed.
How:   ``parse_cookies(secret=None)`` returns middleware that copies request
       cookies into ``request.state.cookies``. With a secret, cookies whose
       value starts with ``s:`` are verified with itsdangerous and moved into
       ``request.state.signed_cookies`` (False when the signature is bad).

Factory lookup order:
    1. http.cookieParser
    2. http.middleware["cookieParser"]   (older configuration location)

    The first one that is set wins. Neither set → no cookie parser.

Secret rules:
    session.secret truthy, text  → factory(secret), signed cookies enabled
    session.secret truthy, other → ConfigurationError (assembly aborts)
    session.secret falsy/absent  → factory(), unsigned cookies only
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple, Union

from itsdangerous import BadSignature, Signer

from middleware_stack.exceptions import ConfigurationError

if TYPE_CHECKING:
    from middleware_stack.config import HttpConfig, StackConfig
    from middleware_stack.environment import EnvironmentContext

logger = logging.getLogger(__name__)

SIGNED_PREFIX = "s:"

FACTORY_LOCATIONS: Tuple[Tuple[str, Callable[["HttpConfig"], Any]], ...] = (
    ("http.cookieParser", lambda http: http.cookie_parser),
    ("http.middleware.cookieParser", lambda http: http.middleware.get("cookieParser")),
)


def sign_cookie(value: str, secret: str) -> str:
    """Produce a signed cookie value that ``parse_cookies(secret)`` accepts."""
    return SIGNED_PREFIX + Signer(secret).sign(value).decode("utf-8")


def unsign_cookie(value: str, secret: str) -> Union[str, bool]:
    """Verify a signed cookie value; returns the payload, or False if tampered."""
    try:
        return Signer(secret).unsign(value[len(SIGNED_PREFIX):]).decode("utf-8")
    except BadSignature:
        return False


def parse_cookies(secret: Optional[str] = None):
    """Cookie-parsing middleware factory."""

    async def cookie_parser(request, response, proceed):
        cookies: Dict[str, str] = dict(request.cookies)
        signed: Dict[str, Union[str, bool]] = {}

        if secret:
            for name, value in list(cookies.items()):
                if value.startswith(SIGNED_PREFIX):
                    signed[name] = unsign_cookie(value, secret)
                    del cookies[name]

        request.state.cookies = cookies
        request.state.signed_cookies = signed
        await proceed()

    return cookie_parser


def resolve_factory(http: "HttpConfig") -> Optional[Callable[..., Any]]:
    for location, lookup in FACTORY_LOCATIONS:
        factory = lookup(http)
        if factory:
            logger.debug("Using cookie parser from %s", location)
            return factory
    return None


def build_cookie_parser(config: "StackConfig", environment: "EnvironmentContext"):
    factory = resolve_factory(config.http)
    secret = config.session.secret if config.session is not None else None

    if secret:
        # The secret may be configured even when the session capability is off,
        # so it is checked here as well.
        if not isinstance(secret, str):
            raise ConfigurationError(
                "If provided, session.secret should be a string.",
                setting="session.secret",
                context={"type": type(secret).__name__},
            )
        return factory(secret) if factory else None

    # No secret (e.g. sessions disabled, or a falsy value such as "" or 0):
    # cookies are parsed but never signed.
    return factory() if factory else None
