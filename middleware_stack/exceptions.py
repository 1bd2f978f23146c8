"""
Middleware Stack - Custom Exception Hierarchy
==============================================

What:  Defines the errors raised while assembling and running the built-in
       middleware stack.
How:   Each exception class carries a message and optional context dict.
       Assembly-time defects propagate to whoever called ``assemble`` or
       ``build_pipeline``; runtime failures are caught at the adapter boundary
       (session, body parser) or routed to the error-shaped stages.
When:  Configuration errors surface once, at server start. The rest surface
       per request.

Exception Hierarchy:
    MiddlewareStackError (base)
    ├── ConfigurationError           → fatal, aborts assembly
    ├── BodyParseError               → 400 via the body-parser error funnel
    └── ResponseAlreadyStartedError  → programming error, second response attempted
"""

from typing import Any, Dict, Optional


class MiddlewareStackError(Exception):
    """
    Base exception for all middleware stack errors.

    Attributes:
        message:  Human-readable description
        context:  Additional debug info (logged, never sent to clients)
    """

    def __init__(
        self,
        message: str = "An unexpected middleware error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(MiddlewareStackError):
    """
    Raised when the configuration cannot produce a valid middleware stack.

    When:    Non-text session secret, unknown names in the activation order,
             404/500 placed anywhere but last.
    Effect:  Assembly is aborted; nothing is returned to the caller.
    """

    def __init__(
        self,
        message: str = "Invalid middleware configuration",
        setting: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if setting:
            ctx["setting"] = setting
        super().__init__(message=message, context=ctx)
        self.setting = setting


class BodyParseError(MiddlewareStackError):
    """
    Raised by the default body parser when a request body cannot be decoded.

    HTTP:    400 Bad Request (rendered by the body-parser error funnel)
    """

    def __init__(
        self,
        message: str = "Unable to parse request body",
        content_type: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if content_type:
            ctx["content_type"] = content_type
        super().__init__(message=message, context=ctx)
        self.content_type = content_type


class ResponseAlreadyStartedError(MiddlewareStackError):
    """Raised when a stage tries to start a response after headers were sent."""

    def __init__(
        self,
        message: str = "Response headers have already been sent",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
