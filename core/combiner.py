"""
core/combiner.py -- Combiner facade: one object the HTTP layer and the CLI share.

Owns the handler registry, the process-wide file cache and a resolver wired
to both. Built once at startup:

    combiner = Combiner.from_settings(get_settings())
    handler = combiner.match("/scripts/index.js")
    result = await combiner.bundle(handler, "index.js")
    written = await combiner.write(handler, ["index.js"])
    page = await combiner.write_page("/about")   # pages/about.js + pages/about.css

Layer rule: core/ may import cache/ (the store is core's own backing), never
api/ or web/.
"""

import asyncio
import logging
import posixpath
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from cache.store import FileCache
from core.config import Settings
from core.fetcher import fetch_asset
from core.handlers import CombinerConfig, Handler, HandlerRegistry, NetworkDefaults, load_config
from core.models import CSS, JS, BundleResult, PageBundles, ResolutionContext, WrittenBundle
from core.paths import page_name, safe_join
from core.preprocessor import run_preprocessor
from core.resolver import Resolver
from core.writer import DEFAULT_SUFFIX, build_bundle, output_path, write_bundle_file

logger = logging.getLogger("combiner.core")


class Combiner:
    def __init__(
        self,
        registry: HandlerRegistry,
        cache: Optional[FileCache] = None,
        resolve_timeout: float = 30.0,
        network_fetch: bool = False,
        network_ttl: float = 300,
        strict: bool = False,
        skip_param: str = "skipCombiner",
        output_suffix: str = DEFAULT_SUFFIX,
        fetch: Callable[[str], str] = fetch_asset,
    ) -> None:
        self.registry = registry
        self.cache = cache if cache is not None else FileCache()
        self.resolve_timeout = resolve_timeout
        self.skip_param = skip_param
        self.output_suffix = output_suffix
        self.resolver = Resolver(
            registry,
            self.cache,
            network_fetch=network_fetch,
            network_ttl=network_ttl,
            strict=strict,
            skip_param=skip_param,
            fetch=fetch,
            prepare=self.preprocess,
        )

    @classmethod
    def from_settings(cls, settings: Settings, config: Optional[CombinerConfig] = None) -> "Combiner":
        """Build a Combiner from process settings.

        config defaults to the JSON document at settings.config_path. Raises
        ConfigError when it cannot be read or validated.
        """
        if config is None:
            defaults = NetworkDefaults(
                protocol=settings.network_protocol,
                host=settings.network_host,
                port=settings.network_port,
            )
            config = load_config(settings.config_path, defaults)
        registry = HandlerRegistry.from_config(config, settings.project_root)
        return cls(
            registry,
            resolve_timeout=settings.resolve_timeout,
            network_fetch=settings.network_fetch,
            network_ttl=settings.network_ttl,
            strict=settings.strict_io,
            skip_param=settings.skip_param,
            output_suffix=settings.output_suffix,
        )

    @property
    def project_root(self) -> str:
        return self.registry.project_root

    def match(self, path: str, method: str = "GET") -> Optional[Handler]:
        return self.registry.match(path, method)

    def handler(self, endpoint: str) -> Optional[Handler]:
        """Return the handler registered at endpoint, slashes optional."""
        normalized = "/" + endpoint.strip("/")
        normalized = normalized if normalized == "/" else normalized + "/"
        return next((h for h in self.registry if h.endpoint == normalized), None)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def preprocess(self, relative_path: str, handler: Handler) -> None:
        for preprocessor in handler.preprocessors:
            await run_preprocessor(preprocessor, relative_path, self.cache.compiled)

    async def resolve(self, handler: Handler, relative_paths: list[str]) -> ResolutionContext:
        """Resolve relative_paths into one context, bounded by resolve_timeout.

        Raises asyncio.TimeoutError when resolution takes longer.
        """
        return await asyncio.wait_for(
            self.resolver.resolve_many(relative_paths, handler),
            timeout=self.resolve_timeout,
        )

    async def bundle(self, handler: Handler, relative_path: str) -> Optional[BundleResult]:
        """Bundle one entry asset and everything it requires.

        Returns None when the entry asset itself cannot be found, so the
        caller can let the request through untouched.
        """
        return await self.bundle_many(handler, [relative_path], name=relative_path)

    async def bundle_many(
        self,
        handler: Handler,
        relative_paths: list[str],
        name: Optional[str] = None,
    ) -> Optional[BundleResult]:
        context = await self.resolve(handler, relative_paths)
        if not context.order:
            return None
        result = build_bundle(handler, name or relative_paths[0], context)
        logger.debug("Bundled %s: %d assets, %d missing", name or relative_paths, len(result.order), len(result.missing))
        return result

    # ------------------------------------------------------------------
    # File output
    # ------------------------------------------------------------------

    async def write(
        self,
        handler: Handler,
        relative_paths: list[str],
        name: Optional[str] = None,
        directory: Optional[str | Path] = None,
    ) -> Optional[WrittenBundle]:
        """Bundle relative_paths and write the result to disk.

        The file lands in directory (default: the project root) under
        output_path(name); name defaults to the first asset. Returns None
        when nothing could be resolved.
        """
        if not relative_paths:
            raise ValueError("Nothing to bundle: no asset paths given")
        name = name or relative_paths[0]
        result = await self.bundle_many(handler, relative_paths, name=name)
        if result is None:
            return None
        target = output_path(name, directory or self.project_root, self.output_suffix)
        written = await write_bundle_file(result.content, target, self.project_root)
        return replace(written, order=result.order, missing=result.missing)

    # ------------------------------------------------------------------
    # Page bundles
    # ------------------------------------------------------------------

    async def _write_page_type(self, directory: str, name: str, type_: str) -> Optional[WrittenBundle]:
        handler = self.registry.handler_for_type(type_)
        if handler is None or not handler.filesystem_roots:
            return None
        root = str(handler.filesystem_roots[0].directory(self.project_root))
        target = safe_join(root, posixpath.join(directory, "pages"))
        if target is None:
            logger.warning("Refusing page bundle for %s: outside %s", directory, root)
            return None
        return await self.write(handler, [f"pages/{name}{type_}"], name=name + type_, directory=target)

    async def write_page(self, url: str) -> PageBundles:
        """Write the script and stylesheet bundles for the page at url.

        The page name comes from the route ("/" is "index"). pages/<name>.js
        and pages/<name>.css are bundled with the handlers serving those types
        and written to <root>/<route dir>/pages/ of each handler's first root.
        """
        directory, name = page_name(url)
        js, css = await asyncio.gather(
            self._write_page_type(directory, name, JS),
            self._write_page_type(directory, name, CSS),
        )
        return PageBundles(name=name, js=js, css=css)
