"""
core/directives.py -- Dependency directive parser.

Assets declare what they need inside a comment:

    /**
     * @require [
     *   "vendor/jquery.js",
     *   "common.js"
     * ]
     */

parse_directives() returns every identifier from every occurrence, in the
order they appear in the file. No existence checks happen here -- that is
the resolver's job.
"""

import ast
import logging
import re

logger = logging.getLogger("combiner.directives")

REQUIRE = "require"

# Line-leading comment continuation markers: "/*", "//" or "*".
_MARKER_RE = re.compile(r"^\s*(?:/\*+|//+|\*+)?\s*")
_COMMA_RE = re.compile(r",\s*")
_BARE_ID_RE = re.compile(r"^[\w.\-/@~+]+$")

_patterns: dict[str, re.Pattern] = {}


def _pattern_for(directive: str) -> re.Pattern:
    pattern = _patterns.get(directive)
    if pattern is None:
        pattern = re.compile(r"@" + re.escape(directive) + r"\b\s*(\[[^\]]*\])")
        _patterns[directive] = pattern
    return pattern


def _clean(body: str) -> str:
    """Strip comment markers and line breaks so the body reads as one literal."""
    lines = [_MARKER_RE.sub("", line) for line in body.splitlines()]
    return _COMMA_RE.sub(",", "".join(line.strip() for line in lines))


def _parse_body(cleaned: str) -> list[str]:
    """Parse a cleaned "[...]" body. Raises ValueError when it is not a list of ids."""
    try:
        value = ast.literal_eval(cleaned)
    except (ValueError, SyntaxError):
        value = None

    if isinstance(value, (list, tuple)):
        if all(isinstance(item, str) for item in value):
            return list(value)
        raise ValueError("array contains non-string entries")

    # Bare identifiers: [common.js, lib/util.js]
    items = [item.strip() for item in cleaned[1:-1].split(",") if item.strip()]
    if items and all(_BARE_ID_RE.match(item) for item in items):
        return items
    raise ValueError("not an array literal of identifiers")


def parse_directives(source: str, directive: str = REQUIRE) -> list[str]:
    """Return the identifiers declared by every @<directive> [...] in source.

    Malformed occurrences are logged and skipped; the rest of the file is
    still parsed. A file without directives yields an empty list.
    """
    if not isinstance(source, str):
        logger.warning("Cannot parse directives from %s", type(source).__name__)
        return []

    results: list[str] = []
    for match in _pattern_for(directive).finditer(source):
        body = match.group(1)
        try:
            results.extend(_parse_body(_clean(body)))
        except ValueError as e:
            logger.warning("Skipping malformed @%s directive %r: %s", directive, body, e)
    return results
