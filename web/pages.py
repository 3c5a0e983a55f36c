"""
web/pages.py -- FastAPI Depends() helpers that bundle a page's own assets.

A page route gets two bundles written next to its sources, named after the
route:

  GET /about          -> pages/about.js, pages/about.css
  GET /               -> pages/index.js, pages/index.css
  GET /users/42       -> whatever name named_page_bundles() was given

page_bundles() derives the name from the request path. named_page_bundles()
binds a fixed name, for routes with path parameters or that do not map to
a file name. Both leave the written URIs on request.state.page_js and
request.state.page_css (None when that bundle was not written), so
templates can link them:

    @app.get("/about")
    async def about(request: Request, page: PageBundles = Depends(page_bundles)): ...

    @app.get("/users/{user_id}")
    async def user(page: PageBundles = Depends(named_page_bundles("/profile"))): ...

Layer rule: no imports from api/. Errors are raised as HTTPException with a
dict detail, which api/main.py wraps in the error envelope.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import HTTPException, Request

from core.combiner import Combiner
from core.models import PageBundles
from core.resolver import LOAD_ERRORS

logger = logging.getLogger("combiner.web")


async def _write_page(request: Request, url: str) -> PageBundles:
    combiner: Combiner | None = getattr(request.app.state, "combiner", None)
    if combiner is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "combiner_unavailable", "message": "The combiner is not configured."},
        )

    try:
        page = await combiner.write_page(url)
    except asyncio.TimeoutError:
        logger.warning("Page bundles for %s timed out after %.1fs", url, combiner.resolve_timeout)
        raise HTTPException(
            status_code=504,
            detail={"code": "resolve_timeout", "message": "Bundle resolution timed out."},
        )
    except LOAD_ERRORS:
        logger.exception("Page bundles for %s failed", url)
        raise HTTPException(
            status_code=502,
            detail={"code": "asset_unavailable", "message": "An asset for this page could not be read."},
        )

    request.state.page_js = page.js.uri if page.js else None
    request.state.page_css = page.css.uri if page.css else None
    return page


async def page_bundles(request: Request) -> PageBundles:
    """Write the bundles for the page named by the request path."""
    return await _write_page(request, request.url.path)


def named_page_bundles(name: str):
    """Return a dependency that writes the bundles for page name, whatever the request path."""

    async def dependency(request: Request) -> PageBundles:
        return await _write_page(request, name)

    return dependency
