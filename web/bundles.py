"""
web/bundles.py -- HTTP dispatch for bundle endpoints.

combine_assets is an @app.middleware("http") coroutine. For a request whose
path falls under a configured handler endpoint it answers with the bundle
itself; everything else goes to call_next untouched:

  GET /scripts/index.js            -> bundle of index.js and its @requires
  GET /scripts/index.js?skipCombiner=true  -> call_next (raw file, if served)
  GET /scripts/logo.png            -> call_next (extension not handled)
  GET /scripts/nope.js             -> call_next (entry asset not found)
  GET /api/v1/health               -> call_next (no handler)

The middleware reads the Combiner from app.state.combiner, which the
lifespan in api/main.py builds at startup. This module never imports api/;
asgi.py is what joins the two.
"""

import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from core.combiner import Combiner
from core.resolver import LOAD_ERRORS

logger = logging.getLogger("combiner.web")


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "detail": None}},
    )


async def combine_assets(request: Request, call_next):
    combiner: Combiner | None = getattr(request.app.state, "combiner", None)
    if combiner is None:
        return await call_next(request)

    path = request.url.path
    handler = combiner.match(path, request.method)
    if handler is None:
        return await call_next(request)
    if request.query_params.get(combiner.skip_param, "").lower() == "true":
        return await call_next(request)
    if not handler.accepts(path):
        return await call_next(request)

    relative_path = handler.relative_path(path)
    try:
        result = await combiner.bundle(handler, relative_path)
    except asyncio.TimeoutError:
        logger.warning("Resolving %s timed out after %.1fs", path, combiner.resolve_timeout)
        return _error(504, "resolve_timeout", "Bundle resolution timed out.")
    except LOAD_ERRORS:
        # Only reached in strict mode; otherwise unreadable assets are dropped.
        logger.exception("Bundling %s failed", path)
        return _error(502, "asset_unavailable", "An asset in this bundle could not be read.")

    if result is None:
        return await call_next(request)

    if result.missing:
        logger.info("Served %s without %s", path, ", ".join(result.missing))
    return Response(content=result.content, headers=result.headers)


def install(app: FastAPI | None) -> FastAPI:
    """Register combine_assets on app. Raises ValueError when app is None."""
    if app is None:
        raise ValueError("An application is required to install the bundle middleware")
    app.middleware("http")(combine_assets)
    return app
