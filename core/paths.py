"""
core/paths.py -- Path helpers shared by the resolver, preprocessors and writer.
"""

import os
import posixpath
from typing import Optional


def get_type(path: str) -> str:
    """Return the lower-cased extension of a URL or file path, query string ignored."""
    return posixpath.splitext(path.split("?", 1)[0].split("#", 1)[0])[1].lower()


def safe_join(base: str, relative_path: str) -> Optional[str]:
    """Join relative_path onto base and normalize it.

    Returns None when the result would land outside base (e.g. "../../etc/passwd").
    Asset identifiers come from URLs and from file contents, neither of which
    is trusted to stay inside a root.
    """
    base = os.path.normpath(os.path.abspath(base))
    joined = os.path.normpath(os.path.join(base, relative_path.lstrip("/\\")))
    if joined != base and not joined.startswith(base + os.sep):
        return None
    return joined


def page_name(url: str) -> tuple[str, str]:
    """Split a route into (directory, page name).

        "/"                     -> ("", "index")
        "/about"                -> ("", "about")
        "/docs/guide.html?x=1"  -> ("docs", "guide")
    """
    path = url.split("?", 1)[0].split("#", 1)[0].strip("/")
    if not path:
        return "", "index"
    directory, base = posixpath.split(path)
    extension = get_type(base)
    if extension:
        base = base[: -len(extension)]
    return directory, base or "index"
