"""
core/writer.py -- Turns a resolved asset order into a bundle.

Two outputs:
  HTTP  -- build_bundle() returns the joined body plus response headers.
  file  -- write_bundle_file() writes the body next to the project and
           returns where it went, as a path and as a root-relative URI.

Nothing here touches the cache or the filesystem roots; the resolver has
already decided what goes in and in which order.
"""

import asyncio
import logging
import os
import posixpath
from pathlib import Path
from typing import Optional

from core.handlers import Handler
from core.models import Asset, BundleResult, ResolutionContext, WrittenBundle
from core.paths import get_type

logger = logging.getLogger("combiner.writer")

DEFAULT_SUFFIX = ".packaged"


def join_assets(order: list[str], assets: dict[str, Asset], separator: str = "") -> str:
    """Join the transformed contents of assets in order. Unknown keys are skipped."""
    return separator.join(assets[key].content for key in order if key in assets)


def content_type_for(handler: Handler, asset_name: str) -> Optional[str]:
    """Pick the Content-Type for a bundle named asset_name.

    A single output_mime_type wins. Otherwise the per-extension map is
    consulted, then its "*" entry. None means no Content-Type is set here.
    """
    if handler.output_mime_type:
        return handler.output_mime_type
    mime_types = handler.output_mime_types
    if not mime_types:
        return None
    return mime_types.get(get_type(asset_name)) or mime_types.get("*")


def response_headers(handler: Handler, asset_name: str) -> dict[str, str]:
    headers: dict[str, str] = {}
    content_type = content_type_for(handler, asset_name)
    if content_type:
        headers["Content-Type"] = content_type

    for name, value in handler.response_headers.items():
        if name.lower() == "content-type" and content_type:
            logger.warning(
                "Handler %s overrides Content-Type %r with %r from response_headers",
                handler.endpoint,
                content_type,
                value,
            )
            headers.pop("Content-Type", None)
        headers[name] = value
    return headers


def build_bundle(handler: Handler, asset_name: str, context: ResolutionContext) -> BundleResult:
    headers = response_headers(handler, asset_name)
    content_type = next((v for k, v in headers.items() if k.lower() == "content-type"), None)
    return BundleResult(
        content=join_assets(context.order, context.assets, handler.separator),
        headers=headers,
        order=list(context.order),
        missing=list(context.missing),
        content_type=content_type,
    )


# ---------------------------------------------------------------------------
# File output
# ---------------------------------------------------------------------------


def output_path(name: str, directory: str | Path, suffix: str = DEFAULT_SUFFIX, type_: Optional[str] = None) -> Path:
    """Where a bundle named name is written.

    "app/index.js?v=2" in /srv/out becomes /srv/out/app/index.packaged.js.
    type_ defaults to the extension of name.
    """
    clean = name.split("?", 1)[0].split("#", 1)[0].lstrip("/\\")
    stem, extension = posixpath.splitext(clean)
    type_ = type_ or extension
    if type_ and not type_.startswith("."):
        type_ = "." + type_
    return Path(directory) / f"{stem}{suffix}{type_}"


def _write(content: str, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


async def write_bundle_file(content: str, path: str | Path, project_root: str | Path) -> WrittenBundle:
    """Write content to path and report it. Raises OSError when the write fails."""
    path = Path(path).resolve()
    await asyncio.to_thread(_write, content, path)
    uri = "/" + os.path.relpath(path, Path(project_root).resolve()).replace(os.sep, "/")
    logger.info("Wrote bundle %s (%d bytes)", path, len(content.encode("utf-8")))
    return WrittenBundle(file=str(path), uri=uri)
