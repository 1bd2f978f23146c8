"""
Middleware Stack - Flat Files and Favicon
==========================================

What:  The ``www`` and ``favicon`` built-ins.
How:   ``serve_static`` looks files up with Starlette's ``StaticFiles`` and
       answers GET/HEAD hits with a Cache-Control max-age; misses and other
       methods fall through to the next stage. ``serve_favicon`` answers
       ``/favicon.ico`` from a single icon file, read once with aiofiles.

Both are always installed (no environment gating).
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import aiofiles
from starlette.exceptions import HTTPException
from starlette.responses import Response
from starlette.staticfiles import StaticFiles

if TYPE_CHECKING:
    from middleware_stack.config import StackConfig
    from middleware_stack.environment import EnvironmentContext

logger = logging.getLogger(__name__)

DEFAULT_FAVICON = Path(__file__).resolve().parent.parent / "assets" / "default-favicon.ico"

# One year, in seconds
FAVICON_MAX_AGE = 31_536_000

READ_METHODS = ("GET", "HEAD")


def serve_static(directory: str, max_age: int = 0):
    """Flat-file middleware rooted at ``directory``."""
    files = StaticFiles(directory=directory, check_dir=False)

    async def www(request, response, proceed):
        if request.method not in READ_METHODS:
            await proceed()
            return

        try:
            path = files.get_path(request.scope)
            file_response = await files.get_response(path, request.scope)
        except HTTPException as exc:
            if exc.status_code in (404, 405):
                await proceed()
                return
            raise

        file_response.headers["Cache-Control"] = f"public, max-age={max_age}"
        await response.respond(file_response)

    return www


def serve_favicon(path: Path = DEFAULT_FAVICON, max_age: int = FAVICON_MAX_AGE):
    """Favicon middleware serving the icon at ``path``."""
    icon: Optional[bytes] = None

    async def favicon(request, response, proceed):
        nonlocal icon
        if request.url.path != "/favicon.ico":
            await proceed()
            return

        allow = ", ".join(READ_METHODS + ("OPTIONS",))
        if request.method not in READ_METHODS:
            status = 200 if request.method == "OPTIONS" else 405
            await response.respond(Response(status_code=status, headers={"Allow": allow}))
            return

        if icon is None:
            async with aiofiles.open(path, "rb") as f:
                icon = await f.read()
            logger.debug("Loaded favicon from %s (%d bytes)", path, len(icon))

        await response.respond(
            Response(
                icon,
                media_type="image/x-icon",
                headers={"Cache-Control": f"public, max-age={max_age}"},
            )
        )

    return favicon


def build_www(config: "StackConfig", environment: "EnvironmentContext"):
    return serve_static(config.paths.public, max_age=config.http.cache)


def build_favicon(config: "StackConfig", environment: "EnvironmentContext"):
    return serve_favicon(DEFAULT_FAVICON)
