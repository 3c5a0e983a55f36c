"""
tests/conftest.py -- Shared test fixtures for Combiner tests.

This module provides:
  - write_tree(): lays out asset files under a temporary project root
  - project: a temporary project with a scripts handler and a stylesheet handler
  - client: TestClient over the assembled ASGI app with a patched lifespan

The real lifespan reads PROJECT_ROOT and COMBINER_CONFIG from the environment.
Tests replace it so every client gets a Combiner built on its own tmp_path.
"""

from __future__ import annotations

import json
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from asgi import app
from core.combiner import Combiner
from core.config import Settings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SCRIPTS_HANDLER = {
    "extensions": [".js"],
    "roots": ["public/js", "vendor/js"],
    "separator": "\n",
    "output_mime_type": "text/javascript",
}

STYLES_HANDLER = {
    "extensions": [".css"],
    "roots": ["public/css"],
    "transforms": ["css_paths"],
    "separator": "\n",
    "output_mime_types": {".css": "text/css"},
    "response_headers": {"Cache-Control": "no-cache"},
}

PROJECT_FILES = {
    "public/js/common.js": "var common = 1;",
    "public/js/index.js": '/** @require ["common.js"] */\nvar index = 2;',
    "public/js/app.js": '/**\n * @require [\n *   "lib/util.js",\n *   "common.js"\n * ]\n */\nvar app = 3;',
    "public/js/lib/util.js": '// @require ["common.js"]\nvar util = 4;',
    "public/js/broken.js": '/** @require ["common.js", "nope.js"] */\nvar broken = 5;',
    "vendor/js/common.js": "var shadowed = true;",
    "vendor/js/vendor.js": "var vendor = 6;",
    "public/css/site.css": "body { background: url('./img/bg.png'); }",
}


def write_tree(root: Path, files: dict[str, str]) -> Path:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def _patch_lifespan(combiner: Combiner):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.combiner = combiner
        yield
        app.state.combiner = None

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project root with assets and a combiner.json next to them."""
    write_tree(tmp_path, PROJECT_FILES)
    config = {"handlers": {"scripts": SCRIPTS_HANDLER, "/css": STYLES_HANDLER}}
    (tmp_path / "combiner.json").write_text(json.dumps(config), encoding="utf-8")
    return tmp_path


@pytest.fixture
def combiner(project: Path) -> Combiner:
    return Combiner.from_settings(Settings(project_root=str(project)))


@pytest.fixture
def client(combiner: Combiner) -> Generator[TestClient, None, None]:
    """TestClient over asgi.app, serving bundles from the project fixture."""
    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(combiner)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
