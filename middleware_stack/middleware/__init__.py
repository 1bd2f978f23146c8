"""
Middleware Stack - Built-in Middleware Package
===============================================

What:  One module per built-in (or small family of built-ins). Each module
       exposes a ``build_*(config, environment)`` builder used by the
       registry, plus the plain factory it wraps.

Modules:
    session.py        session adapter (error → logged 400)
    body_parser.py    parser resolution, error funnel, default parser
    cookie_parser.py  cookie parser factory and secret handling
    static.py         www (flat files) and favicon
    utility.py        startRequestTimer, compress, methodOverride, poweredBy
    terminal.py       404 and 500 event emitters
"""
