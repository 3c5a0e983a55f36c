"""
core/models.py -- Domain dataclasses for the Combiner bundling engine.

These are plain data containers. Loading and freshness rules live in
cache/store.py, ordering rules live in core/resolver.py.
"""

from dataclasses import dataclass, field
from typing import Optional

# ---------------------------------------------------------------------------
# Known asset types
# ---------------------------------------------------------------------------

JS = ".js"
CSS = ".css"
LESS = ".less"
SCSS = ".scss"
SASS = ".sass"


@dataclass
class Asset:
    """A single script or stylesheet held by the file cache.

    key is the absolute filesystem path, or the URL for assets fetched from a
    network root. raw is the text as read; content is raw after the transform
    pipeline ran over it. requirements are parsed from raw, so a transform
    that strips comments cannot hide dependencies.
    """

    key: str
    raw: str
    content: str
    mtime: float
    requirements: list[str] = field(default_factory=list)
    transforms: list[str] = field(default_factory=list)  # names run on the last load
    compiled: bool = False  # raw came from a preprocessor, not the file itself


@dataclass
class CompiledAsset:
    """Preprocessor output for one source file.

    Keyed in the compiled cache by (name, type): name is the asset path as
    requested, type the extension of the source. requirements are parsed
    from the source before compiling, since compilers usually drop comments.
    """

    name: str
    type: str
    source_path: str
    body: str
    mtime: float  # mtime of source_path when it was compiled
    requirements: list[str] = field(default_factory=list)


@dataclass
class TransformContext:
    """What a transform may know about the asset it is rewriting."""

    path: str
    extension: str  # lower-cased, with leading dot
    synchronous: bool = True


@dataclass
class ResolutionContext:
    """Per-request resolution state. Never shared between requests.

    order  -- asset keys, dependencies before dependents
    assets -- key -> Asset for every asset in order
    seen   -- keys already entered during this walk (cycle breaker)
    """

    order: list[str] = field(default_factory=list)
    assets: dict[str, Asset] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)
    seen: set[str] = field(default_factory=set)


@dataclass
class BundleResult:
    content: str
    headers: dict[str, str]
    order: list[str]
    missing: list[str] = field(default_factory=list)
    content_type: Optional[str] = None


@dataclass
class WrittenBundle:
    file: str  # absolute path of the written bundle
    uri: str  # path relative to the project root, "/"-separated
    order: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


@dataclass
class PageBundles:
    """The script and stylesheet bundles written for one page.

    js and css are None when the page has no such source, or no handler
    serves that type.
    """

    name: str
    js: Optional[WrittenBundle] = None
    css: Optional[WrittenBundle] = None
