"""
core/resolver.py -- Dependency resolver.

Walks an asset and everything it @requires, depth first, and leaves a
dependency-first list of asset keys in the ResolutionContext:

    resolve("index.js")
      index.js  @require ["lib/a.js", "common.js"]
        lib/a.js  @require ["common.js"]
          common.js              -> order: [common.js]
                                 -> order: [common.js, lib/a.js]
        common.js  (seen, skip)
                                 -> order: [common.js, lib/a.js, index.js]

Children are appended before their parent (post-order), so the list is
already in output order. It is never reversed.

Rules:
  - Every filesystem root of the handler is checked; the first configured
    root that has the file wins, later matches are shadowed.
  - A missing asset is logged with every root checked and left out of the
    bundle. Resolution carries on.
  - An unreadable asset (I/O error, or not UTF-8) is left out the same way,
    unless strict is set, in which case the error propagates.
  - A dependency is handled by the first handler serving its extension,
    falling back to the handler of the asset that required it.
  - Sibling dependencies are loaded concurrently, then walked in declared
    order. A failing sibling does not cancel the others.
  - The per-request seen-set stops cycles. No diagnostic is produced.
"""

import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional

import requests

from cache.store import FileCache
from core.fetcher import fetch_asset
from core.handlers import Handler, HandlerRegistry
from core.models import Asset, ResolutionContext
from core.paths import get_type, safe_join

logger = logging.getLogger("combiner.resolver")

# Raised by a filesystem load; a file that is not UTF-8 counts as unreadable.
READ_ERRORS = (OSError, UnicodeDecodeError)
# Everything a load may raise in strict mode.
LOAD_ERRORS = READ_ERRORS + (requests.RequestException,)


class Resolver:
    def __init__(
        self,
        registry: HandlerRegistry,
        cache: FileCache,
        network_fetch: bool = False,
        network_ttl: float = 300,
        strict: bool = False,
        skip_param: str = "skipCombiner",
        fetch: Callable[[str], str] = fetch_asset,
        prepare: Optional[Callable[[str, Handler], Awaitable[object]]] = None,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.network_fetch = network_fetch
        self.network_ttl = network_ttl
        self.strict = strict
        self.skip_param = skip_param
        self.fetch = fetch
        # Awaited before an asset is looked up; the combiner runs preprocessors here.
        self.prepare = prepare

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_candidates(self, relative_path: str, handler: Handler) -> tuple[list[str], list[str]]:
        """Return (existing paths, directories checked) across the handler's filesystem roots.

        Network roots are not looked at here.
        """
        found: list[str] = []
        checked: list[str] = []
        for root in handler.filesystem_roots:
            directory = str(root.directory(self.registry.project_root))
            checked.append(directory)
            path = safe_join(directory, relative_path)
            if path is None:
                logger.warning("Refusing %s: resolves outside %s", relative_path, directory)
                continue
            if os.path.isfile(path):
                found.append(path)
        return found, checked

    def _warn_missing(self, relative_path: str, checked: list[str]) -> None:
        logger.warning(
            "The file %s cannot be found in any of the roots:\n\t%s",
            relative_path,
            "\n\t".join(checked) or "(no roots configured)",
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load_file(self, path: str, handler: Handler) -> Asset:
        return await self.cache.get_or_load(path, handler.transforms)

    async def _load_network(
        self,
        relative_path: str,
        handler: Handler,
        checked: list[str],
    ) -> Optional[Asset]:
        """Try each network root in order. Returns None when none answered."""
        last_error: Optional[Exception] = None
        for root in handler.network_roots:
            url = root.url_for(relative_path, self.registry.network_defaults, self.skip_param)
            checked.append(url)
            try:
                asset = await self.cache.get_or_fetch(url, handler.transforms, self.fetch, self.network_ttl)
            except requests.RequestException as e:
                logger.debug("Fetch failed for %s: %s", url, e)
                last_error = e
                continue
            return asset

        if self.strict and last_error is not None:
            raise last_error
        return None

    async def _prefetch(self, relative_path: str, handler: Handler) -> None:
        if self.prepare is not None:
            await self.prepare(relative_path, handler)
        found, _ = await asyncio.to_thread(self.find_candidates, relative_path, handler)
        if found:
            await self._load_file(found[0], handler)

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    async def resolve(self, relative_path: str, handler: Handler, context: ResolutionContext) -> ResolutionContext:
        """Resolve relative_path and its dependencies into context. Returns context."""
        if self.prepare is not None:
            await self.prepare(relative_path, handler)
        found, checked = await asyncio.to_thread(self.find_candidates, relative_path, handler)

        if found:
            key = found[0]
            if len(found) > 1:
                logger.debug("%s found in %d roots, using %s", relative_path, len(found), key)
            if key in context.seen:
                logger.debug("Skipping %s as it is already loaded", key)
                return context
            context.seen.add(key)
            try:
                asset: Optional[Asset] = await self._load_file(key, handler)
            except READ_ERRORS as e:
                if self.strict:
                    raise
                logger.warning("Cannot read %s, leaving it out: %s", key, e)
                context.missing.append(relative_path)
                return context
        else:
            asset = None
            if self.network_fetch and handler.network_roots:
                asset = await self._load_network(relative_path, handler, checked)
            if asset is None:
                self._warn_missing(relative_path, checked)
                context.missing.append(relative_path)
                return context
            key = asset.key
            if key in context.seen:
                return context
            context.seen.add(key)

        context.assets[key] = asset
        await self._resolve_requirements(asset.requirements, handler, context)
        context.order.append(key)
        return context

    async def _resolve_requirements(
        self,
        requirements: list[str],
        handler: Handler,
        context: ResolutionContext,
    ) -> None:
        if not requirements:
            return
        plan = [(req, self.registry.handler_for_type(get_type(req)) or handler) for req in requirements]

        # Warm the cache for all siblings at once; every prefetch settles
        # before the ordered walk, and failures surface again in resolve().
        if len(plan) > 1:
            await asyncio.gather(*(self._prefetch(req, h) for req, h in plan), return_exceptions=True)

        for req, req_handler in plan:
            await self.resolve(req, req_handler, context)

    async def resolve_many(self, relative_paths: list[str], handler: Handler) -> ResolutionContext:
        """Resolve several top-level assets into one context, in the order given."""
        context = ResolutionContext()
        for relative_path in relative_paths:
            await self.resolve(relative_path, handler, context)
        return context
