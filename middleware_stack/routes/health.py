"""
Middleware Stack - Health Check Route
======================================

What:  ``GET /health`` for load balancer and container probes.
How:   Reports version, uptime and whether the process runs in production
       mode. Installed at the ``router`` slot of the pipeline, so it passes
       through the same built-ins as any application route.

The production flag comes from the ``EnvironmentContext`` resolved once by
``create_app``, never from process state at request time.
"""

import time
from typing import List

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import BaseRoute, Route

from middleware_stack import __version__
from middleware_stack.environment import EnvironmentContext

# Module-level: set once when the module loads
_start_time = time.time()


def build_routes(environment: EnvironmentContext) -> List[BaseRoute]:
    async def health_check(request: Request) -> JSONResponse:
        uptime = round(time.time() - _start_time, 1)
        return JSONResponse(
            {
                "status": "healthy",
                "version": __version__,
                "uptime_seconds": uptime,
                "production": environment.production,
            }
        )

    return [Route("/health", health_check, methods=["GET"])]
