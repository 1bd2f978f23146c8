"""
Middleware Stack - Built-in Routes
===================================

Route Inventory:
    - health.py:  GET /health  (service health check)

Application routes are passed to ``create_app(routes=...)`` and mounted
next to these at the ``router`` slot of the pipeline.
"""
