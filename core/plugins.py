"""
core/plugins.py -- Built-in transforms.

css_paths    -- rewrite './' and '../' references in stylesheets so they keep
                pointing at the right place once the file is served from a
                bundle URL instead of its own directory.
npm_globals  -- wrap scripts that live under node_modules/ with the globals
                a CommonJS file expects (__filename, __dirname, module).
"""

import json
import posixpath
import re
from pathlib import Path
from typing import Optional

from core.models import CSS, JS, LESS, SASS, SCSS, TransformContext

_STYLESHEET_TYPES = {CSS, LESS, SCSS, SASS}
_SCRIPT_TYPES = {JS, ".es6", ".es2015"}
_NPM_PATH_PARTS = ("/node_modules/", "/npm/")

# Quote followed by ./ or ../ -- the start of a relative reference.
_RELATIVE_REF_RE = re.compile(r"""(['"])(\.\.?)/""")


def css_paths(data: str, context: TransformContext) -> Optional[str]:
    """Prefix quoted relative references with the stylesheet's directory."""
    if context.extension not in _STYLESHEET_TYPES:
        return None
    dirname = posixpath.dirname(Path(context.path).as_posix())
    return _RELATIVE_REF_RE.sub(lambda m: f"{m.group(1)}{dirname}/{m.group(2)}/", data)


def npm_globals(data: str, context: TransformContext) -> Optional[str]:
    """Inject CommonJS globals around scripts that came from an npm tree."""
    if context.extension not in _SCRIPT_TYPES:
        return None
    path = Path(context.path).as_posix()
    if not any(part in path for part in _NPM_PATH_PARTS):
        return None

    module_file = posixpath.basename(path)[: -len(context.extension)] if context.extension else posixpath.basename(path)
    header = (
        f"window.__filename = {json.dumps(path)};\n"
        f"window.__dirname = {json.dumps(posixpath.dirname(path))};\n"
        "window['global'] = window;\n"
        f"window.module = {{file: {json.dumps(module_file)}}};\n"
        "Object.defineProperty(module, 'exports', {\n"
        "  set: function(obj) {\n"
        "    window[module.file] = obj;\n"
        "    window.modules = window.modules || {};\n"
        "    window.modules[module.file] = obj;\n"
        "  }\n"
        "});\n"
    )
    footer = "\ndelete window.__filename, window.__dirname, window.module, window.global;\n"
    return header + data + footer
