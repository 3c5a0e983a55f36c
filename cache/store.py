"""
cache/store.py -- Process-wide in-memory cache for asset contents.

Avoids re-reading and re-transforming files that have not changed. One
FileCache is built at startup and handed to every resolver; it is shared by
all requests for the lifetime of the process.

Entries are keyed by path and by the names of the transforms run over it,
so handlers sharing a root but not a transform chain never see each
other's output.

Freshness is by modification time: an entry is reused while the file's
mtime is not newer than the one recorded at load. Transforms run once per
load, never on a hit.

Concurrency: loads run in worker threads (asyncio.to_thread) and each key is
guarded by its own threading.Lock, so two requests racing on an uncached
path produce one read and one transform run. Entries are replaced, never
deleted.

Usage:
    cache = FileCache()
    asset = cache.load("/srv/app/public/js/index.js", transforms)   # blocking
    asset = await cache.get_or_load(path, transforms)                # async
    cache.stats()                                                     # counters
"""

import asyncio
import logging
import os
import posixpath
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Sequence
from urllib.parse import urlsplit

from core.directives import parse_directives
from core.models import Asset, CompiledAsset, TransformContext
from core.transforms import Transform, run_transforms, transform_name

logger = logging.getLogger("combiner.cache")


class CompiledCache:
    """Preprocessor output keyed by (logical name, type) and by source path."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], CompiledAsset] = {}
        self._by_source: dict[str, tuple[str, str]] = {}
        self._lock = threading.Lock()

    def get(self, name: str, type_: str) -> Optional[CompiledAsset]:
        return self._entries.get((name, type_.lower()))

    def for_source(self, source_path: str) -> Optional[CompiledAsset]:
        key = self._by_source.get(str(source_path))
        return self._entries.get(key) if key is not None else None

    def set(self, entry: CompiledAsset) -> None:
        """Store entry, replacing any earlier output for the same name and type."""
        key = (entry.name, entry.type.lower())
        with self._lock:
            self._entries[key] = entry
            self._by_source[entry.source_path] = key

    def __len__(self) -> int:
        return len(self._entries)


EntryKey = tuple[str, tuple[str, ...]]


def entry_key(key: str | Path, transforms: Sequence[Transform] = ()) -> EntryKey:
    return str(key), tuple(transform_name(t) for t in transforms)


class FileCache:
    def __init__(self, compiled: Optional[CompiledCache] = None) -> None:
        self.compiled = compiled if compiled is not None else CompiledCache()
        self._entries: dict[EntryKey, Asset] = {}
        self._locks: dict[EntryKey, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.hits = 0
        self.loads = 0

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def get(self, key: str | Path, transforms: Sequence[Transform] = ()) -> Optional[Asset]:
        """Return the entry for key under this transform chain, without checking freshness."""
        return self._entries.get(entry_key(key, transforms))

    def __contains__(self, key: object) -> bool:
        return any(path == str(key) for path, _ in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, int]:
        return {
            "entries": len(self._entries),
            "compiled": len(self.compiled),
            "hits": self.hits,
            "loads": self.loads,
        }

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _lock_for(self, key: EntryKey) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _build(
        self,
        key: str,
        raw: str,
        mtime: float,
        transforms: Sequence[Transform],
        extension: str,
        synchronous: bool,
        requirements: Optional[list[str]] = None,
        compiled: bool = False,
    ) -> Asset:
        context = TransformContext(path=key, extension=extension, synchronous=synchronous)
        return Asset(
            key=key,
            raw=raw,
            content=run_transforms(raw, transforms, context),
            mtime=mtime,
            requirements=parse_directives(raw) if requirements is None else list(requirements),
            transforms=[transform_name(t) for t in transforms],
            compiled=compiled,
        )

    def load(self, path: str | Path, transforms: Sequence[Transform] = (), synchronous: bool = True) -> Asset:
        """Return the asset at path, reading and transforming it only when stale.

        Raises OSError when the file cannot be stat'ed or read, and
        UnicodeDecodeError when it is not UTF-8. A failed load leaves any
        earlier entry in place.
        """
        key = str(path)
        slot = entry_key(key, transforms)
        with self._lock_for(slot):
            mtime = os.stat(key).st_mtime
            compiled = self.compiled.for_source(key)
            use_compiled = compiled is not None and compiled.mtime >= mtime

            cached = self._entries.get(slot)
            if cached is not None and mtime <= cached.mtime and cached.compiled == use_compiled:
                self.hits += 1
                logger.debug("cache hit %s", key)
                return cached

            start = time.perf_counter()
            if use_compiled:
                raw, requirements = compiled.body, compiled.requirements
            else:
                raw, requirements = Path(key).read_text(encoding="utf-8"), None

            asset = self._build(
                key,
                raw,
                mtime,
                transforms,
                extension=Path(key).suffix.lower(),
                synchronous=synchronous,
                requirements=requirements,
                compiled=use_compiled,
            )
            self._entries[slot] = asset
            self.loads += 1
            logger.debug(
                "loaded %s in %.1fms%s",
                key,
                (time.perf_counter() - start) * 1000,
                " [compiled]" if use_compiled else "",
            )
            return asset

    async def get_or_load(self, path: str | Path, transforms: Sequence[Transform] = ()) -> Asset:
        """Async form of load(); the stat, read and transforms run off the event loop."""
        return await asyncio.to_thread(self.load, path, transforms, False)

    # ------------------------------------------------------------------
    # Network assets
    # ------------------------------------------------------------------

    def fetch(self, url: str, transforms: Sequence[Transform], fetch: Callable[[str], str], ttl: float) -> Asset:
        """Return the asset behind url, re-fetching once the entry is older than ttl.

        The fetch time stands in for the modification time. Errors raised by
        fetch propagate to the caller.
        """
        slot = entry_key(url, transforms)
        with self._lock_for(slot):
            cached = self._entries.get(slot)
            now = time.time()
            if cached is not None and now - cached.mtime <= ttl:
                self.hits += 1
                return cached

            raw = fetch(url)
            extension = posixpath.splitext(urlsplit(url).path)[1].lower()
            asset = self._build(url, raw, now, transforms, extension=extension, synchronous=False)
            self._entries[slot] = asset
            self.loads += 1
            logger.debug("fetched %s", url)
            return asset

    async def get_or_fetch(
        self,
        url: str,
        transforms: Sequence[Transform],
        fetch: Callable[[str], str],
        ttl: float,
    ) -> Asset:
        return await asyncio.to_thread(self.fetch, url, transforms, fetch, ttl)
