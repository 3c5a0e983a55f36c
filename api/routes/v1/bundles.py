"""
api/routes/v1/bundles.py -- Introspection and file-output routes for the Combiner REST API.

Routes:
  GET  /handlers  -- configured handlers, in match order
  GET  /cache     -- file cache counters
  POST /bundles   -- resolve assets and write the bundle to disk (rate limited)

Bundles themselves are served by web/bundles.py at the handler endpoints;
these routes never return bundle bodies.

Rate limits are applied via slowapi. The @limiter.limit() decorator must sit
ABOVE @router.get/post so that slowapi can attach the limit string to the
function object before FastAPI wraps it.
"""

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request

from api.limiter import limiter
from api.models import BundleRequest, BundleWrittenResponse, CacheStatsResponse, ErrorDetail, HandlerInfo
from core.combiner import Combiner
from core.config import get_settings
from core.paths import safe_join
from core.resolver import LOAD_ERRORS

logger = logging.getLogger("combiner.api")

router = APIRouter()


def _write_limit() -> str:
    return get_settings().write_rate_limit


# ---------------------------------------------------------------------------
# GET /handlers
# ---------------------------------------------------------------------------


@router.get("/handlers", response_model=list[HandlerInfo])
def list_handlers(request: Request) -> list[HandlerInfo]:
    """Return every configured handler. The first one matching a path wins."""
    combiner: Combiner = request.app.state.combiner
    return [HandlerInfo.from_handler(h, combiner.project_root) for h in combiner.registry]


# ---------------------------------------------------------------------------
# GET /cache
# ---------------------------------------------------------------------------


@router.get("/cache", response_model=CacheStatsResponse)
def cache_stats(request: Request) -> CacheStatsResponse:
    combiner: Combiner = request.app.state.combiner
    return CacheStatsResponse(**combiner.cache.stats())


# ---------------------------------------------------------------------------
# POST /bundles -- file output mode
# ---------------------------------------------------------------------------


@limiter.limit(_write_limit)
@router.post("/bundles", response_model=BundleWrittenResponse, status_code=201)
async def write_bundle(request: Request, body: BundleRequest) -> BundleWrittenResponse:
    """Bundle the requested assets with the handler at body.endpoint and write the result.

    The file is named after body.name (or the first asset) with the output
    suffix inserted before the extension, e.g. index.js -> index.packaged.js,
    and placed under body.out_dir inside the project root.
    """
    combiner: Combiner = request.app.state.combiner
    handler = combiner.handler(body.endpoint)
    if handler is None:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(
                code="unknown_endpoint",
                message="No handler is configured for this endpoint.",
                detail=body.endpoint[:255],
            ).model_dump(),
        )

    # Output must stay inside the project root, whatever out_dir and name say.
    directory = safe_join(combiner.project_root, body.out_dir or "")
    name = body.name or body.assets[0]
    if directory is None or safe_join(directory, name) is None:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(
                code="invalid_output_path",
                message="Output must stay inside the project root.",
            ).model_dump(),
        )

    try:
        written = await combiner.write(handler, body.assets, name=name, directory=directory)
    except asyncio.TimeoutError:
        raise HTTPException(
            status_code=504,
            detail=ErrorDetail(
                code="resolve_timeout",
                message="Bundle resolution timed out.",
            ).model_dump(),
        )
    except LOAD_ERRORS as e:
        logger.error("Writing bundle for %s failed: %s", body.endpoint, e)
        raise HTTPException(
            status_code=502,
            detail=ErrorDetail(
                code="asset_unavailable",
                message="An asset could not be read or the bundle could not be written.",
            ).model_dump(),
        )

    if written is None:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(
                code="assets_not_found",
                message="None of the requested assets could be found.",
                detail=", ".join(body.assets)[:500],
            ).model_dump(),
        )

    return BundleWrittenResponse(file=written.file, uri=written.uri, order=written.order, missing=written.missing)
