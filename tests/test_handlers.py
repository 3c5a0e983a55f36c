"""
tests/test_handlers.py -- Unit tests for the handler schema and registry in core/handlers.py.

Covers:
  - Endpoint and extension normalisation
  - String and untyped roots become filesystem roots; network roots complete from defaults
  - Handlers without extensions are dropped, not fatal
  - Unknown methods fall back to GET
  - Bad transforms, compilers and documents raise ConfigError
  - match(), handler_for_type() and relative_path()
"""

from __future__ import annotations

import json
import logging

import pytest

from core.config import Settings
from core.handlers import (
    ConfigError,
    FilesystemRoot,
    HandlerRegistry,
    NetworkDefaults,
    NetworkRoot,
    load_config,
    parse_config,
)
from core.plugins import css_paths


def _registry(tmp_path, handlers: dict) -> HandlerRegistry:
    return HandlerRegistry.from_config(parse_config({"handlers": handlers}), str(tmp_path))


class TestSchema:
    def test_endpoint_gets_slashes(self) -> None:
        config = parse_config({"handlers": {"scripts": {"extensions": [".js"]}}})
        assert config.handlers["scripts"].endpoint == "/scripts/"

    def test_root_endpoint(self) -> None:
        config = parse_config({"handlers": {"/": {"extensions": ["js"]}}})
        assert config.handlers["/"].endpoint == "/"

    def test_extensions_normalised(self) -> None:
        config = parse_config({"handlers": {"/s/": {"extensions": ["JS", ".Es6"]}}})
        assert config.handlers["/s/"].extensions == [".js", ".es6"]

    def test_string_and_untyped_roots(self) -> None:
        config = parse_config(
            {"handlers": {"/s/": {"extensions": [".js"], "roots": ["public/js", {"path": "lib", "prefix": "/opt"}]}}}
        )
        roots = config.handlers["/s/"].roots
        assert roots[0] == FilesystemRoot(path="public/js")
        assert isinstance(roots[1], FilesystemRoot)
        assert roots[1].prefix == "/opt"

    def test_single_string_root(self) -> None:
        config = parse_config({"handlers": {"/s/": {"extensions": [".js"], "roots": "public/js"}}})
        assert config.handlers["/s/"].roots == [FilesystemRoot(path="public/js")]

    def test_network_root(self) -> None:
        config = parse_config(
            {"handlers": {"/s/": {"extensions": [".js"], "roots": [{"type": "network", "path": "/js", "port": 8080}]}}}
        )
        root = config.handlers["/s/"].roots[0]
        assert isinstance(root, NetworkRoot)
        assert root.url_for("a/b.js", NetworkDefaults()) == "http://localhost:8080/js/a/b.js?skipCombiner=true"

    def test_network_url_uses_defaults(self) -> None:
        root = NetworkRoot(type="network")
        defaults = NetworkDefaults(protocol="https:", host="assets.internal", port=None)
        assert root.url_for("/x.js", defaults, "skip") == "https://assets.internal/x.js?skip=true"

    def test_unknown_root_type_rejected(self) -> None:
        with pytest.raises(ConfigError):
            parse_config({"handlers": {"/s/": {"extensions": [".js"], "roots": [{"type": "ftp", "path": "x"}]}}})

    def test_handler_without_extensions_dropped(self, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="combiner.handlers"):
            config = parse_config(
                {
                    "handlers": {
                        "/a/": {"extensions": []},
                        "/b/": {"roots": ["x"]},
                        "/c/": {"extensions": [".js"]},
                    }
                }
            )
        assert list(config.handlers) == ["/c/"]
        assert "Dropping handler /a/" in caplog.text

    def test_unknown_method_falls_back_to_get(self) -> None:
        config = parse_config({"handlers": {"/s/": {"extensions": [".js"], "method": "fetch"}}})
        assert config.handlers["/s/"].method == "GET"

    def test_method_upper_cased(self) -> None:
        config = parse_config({"handlers": {"/s/": {"extensions": [".js"], "method": "post"}}})
        assert config.handlers["/s/"].method == "POST"

    def test_mime_keys_normalised(self) -> None:
        config = parse_config({"handlers": {"/s/": {"extensions": [".js"], "output_mime_types": {"JS": "a", "*": "b"}}}})
        assert config.handlers["/s/"].output_mime_types == {".js": "a", "*": "b"}

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ConfigError):
            parse_config({"handlers": {"/s/": {"extensions": [".js"], "rootz": ["x"]}}})

    def test_network_defaults_fill_in(self) -> None:
        config = parse_config({"handlers": {}}, NetworkDefaults(host="example.test"))
        assert config.network_defaults.host == "example.test"


class TestRegistry:
    def test_transforms_resolved(self, tmp_path) -> None:
        registry = _registry(tmp_path, {"/css/": {"extensions": [".css"], "transforms": "css_paths"}})
        assert registry.handlers[0].transforms == (css_paths,)

    def test_unknown_transform_is_config_error(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="/css/"):
            _registry(tmp_path, {"/css/": {"extensions": [".css"], "transforms": ["nope"]}})

    def test_bad_compiler_is_config_error(self, tmp_path) -> None:
        handlers = {"/css/": {"extensions": [".less"], "preprocessors": [{"extensions": [".less"], "compiler": "x"}]}}
        with pytest.raises(ConfigError):
            _registry(tmp_path, handlers)

    def test_match_first_prefix_and_method(self, tmp_path) -> None:
        registry = _registry(
            tmp_path,
            {
                "/js/": {"extensions": [".js"]},
                "/js/admin/": {"extensions": [".js"]},
                "/api/": {"extensions": [".js"], "method": "POST"},
            },
        )
        assert registry.match("/js/admin/a.js").endpoint == "/js/"
        assert registry.match("/api/a.js") is None
        assert registry.match("/api/a.js", "post").endpoint == "/api/"
        assert registry.match("/other/a.js") is None

    def test_handler_for_type_first_wins(self, tmp_path) -> None:
        registry = _registry(
            tmp_path,
            {"/a/": {"extensions": [".js"]}, "/b/": {"extensions": [".js", ".css"]}},
        )
        assert registry.handler_for_type(".js").endpoint == "/a/"
        assert registry.handler_for_type(".CSS").endpoint == "/b/"
        assert registry.handler_for_type(".png") is None

    def test_relative_path_and_accepts(self, tmp_path) -> None:
        handler = _registry(tmp_path, {"/css/": {"extensions": [".css"]}}).handlers[0]
        assert handler.relative_path("/css/site/main.css") == "site/main.css"
        assert handler.accepts("/css/site/main.css")
        assert not handler.accepts("/css/logo.png")

    def test_document_project_root_wins(self, tmp_path) -> None:
        other = tmp_path / "other"
        other.mkdir()
        config = parse_config({"project_root": str(other), "handlers": {}})
        assert HandlerRegistry.from_config(config, str(tmp_path)).project_root == str(other)


class TestLoadConfig:
    def test_load(self, tmp_path) -> None:
        path = tmp_path / "combiner.json"
        path.write_text(json.dumps({"handlers": {"js": {"extensions": [".js"]}}}), encoding="utf-8")
        assert list(load_config(path).handlers) == ["js"]

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "combiner.json"
        path.write_text("{handlers:", encoding="utf-8")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_config(path)


class TestSettings:
    def test_project_root_resolved(self, tmp_path) -> None:
        settings = Settings(project_root=str(tmp_path))
        assert settings.project_root == str(tmp_path.resolve())
        assert settings.config_path == tmp_path.resolve() / "combiner.json"

    def test_project_root_must_exist(self, tmp_path) -> None:
        with pytest.raises(ValueError):
            Settings(project_root=str(tmp_path / "missing"))

    def test_timeout_must_be_positive(self, tmp_path) -> None:
        with pytest.raises(ValueError):
            Settings(project_root=str(tmp_path), resolve_timeout=0)
