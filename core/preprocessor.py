"""
core/preprocessor.py -- Preprocessors that compile an asset before it is bundled.

A preprocessor answers three questions about a request, in order:

  should_process(request_path)   -- is this request mine at all?
  determine_asset(request_path)  -- which source file, under which name?
  process(target, source)        -- compile the source text

run_preprocessor() drives any implementation through those hooks, checks
the source exists, skips the compile when the stored output is still fresh,
and records the result in the CompiledCache. The file cache then serves the
compiled body whenever it reads that source path, so the bundle picks it up
without the resolver knowing preprocessors exist.

A failing compiler is logged and the request carries on with the
uncompiled source.
"""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from core.directives import parse_directives
from core.models import CompiledAsset
from core.paths import get_type, safe_join

if TYPE_CHECKING:
    from cache.store import CompiledCache

logger = logging.getLogger("combiner.preprocessor")


@dataclass(frozen=True)
class PreprocessTarget:
    name: str  # asset path as requested, relative to the handler endpoint
    type: str  # extension of the source file
    path: str  # absolute path of the source file


class Preprocessor(ABC):
    @abstractmethod
    def should_process(self, request_path: str) -> bool: ...

    @abstractmethod
    def determine_asset(self, request_path: str) -> Optional[PreprocessTarget]: ...

    @abstractmethod
    def process(self, target: PreprocessTarget, source: str) -> str: ...


class CompilingPreprocessor(Preprocessor):
    """Compile sources with given extensions through a plain str -> str callable.

    Suits LESS/SASS style compilers: the compiler is whatever callable the
    handler document names, e.g. "myproject.styles:compile_less".
    """

    def __init__(
        self,
        extensions: Iterable[str],
        root: str,
        compiler: Callable[[str], str],
        prefix: str = "",
        output_type: str = ".css",
    ) -> None:
        self.extensions = tuple(e.lower() for e in extensions)
        self.root = root
        self.prefix = prefix
        self.compiler = compiler
        self.output_type = output_type

    def should_process(self, request_path: str) -> bool:
        return get_type(request_path) in self.extensions

    def determine_asset(self, request_path: str) -> Optional[PreprocessTarget]:
        name = request_path
        if self.prefix and name.startswith(self.prefix):
            name = name[len(self.prefix) :]
        name = name.lstrip("/")
        path = safe_join(self.root, name)
        if path is None:
            logger.warning("Refusing to preprocess %s: outside %s", request_path, self.root)
            return None
        return PreprocessTarget(name=name, type=get_type(name), path=path)

    def process(self, target: PreprocessTarget, source: str) -> str:
        return self.compiler(source)


def _compile(preprocessor: Preprocessor, target: PreprocessTarget, compiled: CompiledCache) -> Optional[CompiledAsset]:
    try:
        mtime = os.stat(target.path).st_mtime
    except FileNotFoundError:
        logger.debug("No source for %s at %s", target.name, target.path)
        return None

    existing = compiled.get(target.name, target.type)
    if existing is not None and existing.source_path == target.path and existing.mtime >= mtime:
        return existing

    source = Path(target.path).read_text(encoding="utf-8")
    entry = CompiledAsset(
        name=target.name,
        type=target.type,
        source_path=target.path,
        body=preprocessor.process(target, source),
        mtime=mtime,
        requirements=parse_directives(source),
    )
    compiled.set(entry)
    logger.info("Compiled %s (%s)", target.name, target.path)
    return entry


async def run_preprocessor(
    preprocessor: Preprocessor,
    request_path: str,
    compiled: CompiledCache,
) -> Optional[CompiledAsset]:
    """Run one preprocessor for request_path. Returns the compiled entry, or None when skipped or failed."""
    if not preprocessor.should_process(request_path):
        return None
    target = preprocessor.determine_asset(request_path)
    if target is None:
        return None
    try:
        return await asyncio.to_thread(_compile, preprocessor, target, compiled)
    except Exception:
        logger.warning("Preprocessor %s failed for %s", type(preprocessor).__name__, request_path, exc_info=True)
        return None
