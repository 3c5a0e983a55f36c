"""
core/handlers.py -- Handler configuration schema and the handler registry.

The handler document is JSON, read once at startup:

    {
      "project_root": "/srv/app",
      "network_defaults": {"protocol": "http", "host": "localhost", "port": 3000},
      "handlers": {
        "/scripts/": {
          "extensions": [".js", ".es6"],
          "roots": ["public/js", {"type": "network", "path": "/admin/js"}],
          "transforms": ["npm_globals"],
          "separator": "\\n;",
          "output_mime_type": "text/javascript"
        },
        "/css/": {
          "extensions": [".css", ".less"],
          "roots": ["less", "public/stylesheets"],
          "transforms": ["css_paths"],
          "preprocessors": [
            {"extensions": [".less"], "root": "less", "compiler": "myproject.less:render"}
          ]
        }
      }
    }

Pipeline:
  JSON -> CombinerConfig (pydantic; shapes normalized, roots tagged)
       -> HandlerRegistry.from_config() (transforms/compilers imported, frozen Handlers)

Validation happens here, once. Nothing downstream inspects config shapes.
"""

import json
import logging
import os
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union
from urllib.parse import urlunsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from core.paths import get_type
from core.preprocessor import CompilingPreprocessor, Preprocessor
from core.transforms import Transform, import_object, resolve_transform

logger = logging.getLogger("combiner.handlers")

# Methods a handler may be bound to. Anything else falls back to GET.
HTTP_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"})


class ConfigError(ValueError):
    """The handler document cannot be used. Raised at startup only."""


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class NetworkDefaults(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    protocol: str = "http"
    host: str = "localhost"
    port: Optional[int] = 3000

    @field_validator("protocol")
    @classmethod
    def strip_colon(cls, value: str) -> str:
        return value.rstrip(":").lower()


class FilesystemRoot(BaseModel):
    """A directory searched for assets: (prefix or project root) / path."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["filesystem"] = "filesystem"
    path: str = ""
    prefix: Optional[str] = None

    @field_validator("prefix")
    @classmethod
    def resolve_prefix(cls, value: Optional[str]) -> Optional[str]:
        return str(Path(value).expanduser().resolve()) if value else None

    def directory(self, project_root: str) -> Path:
        # path is joined as a relative segment even when written "/public/js"
        return Path(self.prefix or project_root) / self.path.lstrip("/\\")


class NetworkRoot(BaseModel):
    """A location assets are fetched from over HTTP. Unset parts come from the network defaults."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["network"]
    path: str = ""
    protocol: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None

    def url_for(self, relative_path: str, defaults: NetworkDefaults, skip_param: str = "skipCombiner") -> str:
        protocol = (self.protocol or defaults.protocol).rstrip(":")
        host = self.host or defaults.host
        port = self.port if self.port is not None else defaults.port
        netloc = f"{host}:{port}" if port else host
        path = posixpath.join("/", self.path.strip("/"), relative_path.lstrip("/"))
        # The query flag stops another Combiner at the far end from bundling again.
        return urlunsplit((protocol, netloc, path, f"{skip_param}=true", ""))


Root = Annotated[Union[FilesystemRoot, NetworkRoot], Field(discriminator="type")]


class PreprocessorConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    extensions: list[str] = Field(min_length=1)
    compiler: str  # "module:attribute", a str -> str callable
    root: str = ""
    prefix: str = ""
    output_type: str = ".css"

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, values: list[str]) -> list[str]:
        return [_normalize_extension(v) for v in values]


class HandlerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    endpoint: str
    extensions: list[str] = Field(min_length=1)
    roots: list[Root] = Field(default_factory=list)
    transforms: list[str] = Field(default_factory=list)
    preprocessors: list[PreprocessorConfig] = Field(default_factory=list)
    separator: str = ""
    output_mime_type: Optional[str] = None
    output_mime_types: dict[str, str] = Field(default_factory=dict)
    response_headers: dict[str, str] = Field(default_factory=dict)
    method: str = "GET"

    @field_validator("endpoint")
    @classmethod
    def normalize_endpoint(cls, value: str) -> str:
        value = "/" + value.strip().strip("/")
        return value if value == "/" else value + "/"

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, values: list[str]) -> list[str]:
        return [_normalize_extension(v) for v in values]

    @field_validator("roots", mode="before")
    @classmethod
    def expand_string_roots(cls, values: Any) -> Any:
        """A bare string is shorthand for a filesystem root; an untyped object is one too."""
        if isinstance(values, (str, dict)):
            values = [values]
        if not isinstance(values, list):
            return values
        expanded = []
        for root in values:
            if isinstance(root, str):
                expanded.append({"type": "filesystem", "path": root})
            elif isinstance(root, dict) and "type" not in root:
                expanded.append({**root, "type": "filesystem"})
            else:
                expanded.append(root)
        return expanded

    @field_validator("transforms", mode="before")
    @classmethod
    def wrap_single_transform(cls, value: Any) -> Any:
        return [value] if isinstance(value, str) else value

    @field_validator("output_mime_types")
    @classmethod
    def normalize_mime_keys(cls, value: dict[str, str]) -> dict[str, str]:
        return {k if k == "*" else _normalize_extension(k): v for k, v in value.items()}

    @field_validator("method")
    @classmethod
    def normalize_method(cls, value: str) -> str:
        method = (value or "").upper()
        if method not in HTTP_METHODS:
            logger.warning("Unknown HTTP method %r, using GET", value)
            return "GET"
        return method


class CombinerConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    project_root: Optional[str] = None
    network_defaults: NetworkDefaults = Field(default_factory=NetworkDefaults)
    handlers: dict[str, HandlerConfig] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def prepare_handlers(cls, data: Any) -> Any:
        """Inject each handler's endpoint from its key and drop handlers with no extensions."""
        if not isinstance(data, dict) or not isinstance(data.get("handlers"), dict):
            return data
        handlers: dict[str, Any] = {}
        for name, handler in data["handlers"].items():
            if not isinstance(handler, dict):
                handlers[name] = handler  # let field validation report it
                continue
            if not handler.get("extensions"):
                logger.info("Dropping handler %s: no extensions configured", name)
                continue
            handlers[name] = {"endpoint": handler.get("endpoint") or name, **handler}
        return {**data, "handlers": handlers}


def _normalize_extension(value: str) -> str:
    value = value.strip().lower()
    return value if value.startswith(".") else "." + value


# ---------------------------------------------------------------------------
# Runtime handlers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Handler:
    """One URL prefix bound to its roots, transforms and output settings."""

    endpoint: str
    extensions: tuple[str, ...]
    roots: tuple[Union[FilesystemRoot, NetworkRoot], ...]
    transforms: tuple[Transform, ...] = ()
    preprocessors: tuple[Preprocessor, ...] = ()
    separator: str = ""
    output_mime_type: Optional[str] = None
    output_mime_types: dict[str, str] = field(default_factory=dict)
    response_headers: dict[str, str] = field(default_factory=dict)
    method: str = "GET"

    @property
    def filesystem_roots(self) -> list[FilesystemRoot]:
        return [r for r in self.roots if isinstance(r, FilesystemRoot)]

    @property
    def network_roots(self) -> list[NetworkRoot]:
        return [r for r in self.roots if isinstance(r, NetworkRoot)]

    def accepts(self, path: str) -> bool:
        return get_type(path) in self.extensions

    def relative_path(self, url_path: str) -> str:
        """Strip the endpoint prefix from a request path."""
        return url_path[len(self.endpoint) :] if url_path.startswith(self.endpoint) else url_path.lstrip("/")


class HandlerRegistry:
    """Ordered handlers plus the settings the resolver needs to use their roots."""

    def __init__(self, handlers: list[Handler], project_root: str, network_defaults: NetworkDefaults) -> None:
        self.handlers = handlers
        self.project_root = project_root
        self.network_defaults = network_defaults

    @classmethod
    def from_config(cls, config: CombinerConfig, project_root: str) -> "HandlerRegistry":
        """Build runtime handlers, importing every transform and compiler up front.

        Raises ConfigError on the first reference that cannot be resolved.
        """
        root = str(Path(config.project_root or project_root).expanduser().resolve())
        handlers: list[Handler] = []
        for name, hc in config.handlers.items():
            try:
                transforms = tuple(resolve_transform(t) for t in hc.transforms)
                preprocessors = tuple(_build_preprocessor(p, root) for p in hc.preprocessors)
            except ValueError as e:
                raise ConfigError(f"Handler {name}: {e}") from e
            handlers.append(
                Handler(
                    endpoint=hc.endpoint,
                    extensions=tuple(hc.extensions),
                    roots=tuple(hc.roots),
                    transforms=transforms,
                    preprocessors=preprocessors,
                    separator=hc.separator,
                    output_mime_type=hc.output_mime_type,
                    output_mime_types=dict(hc.output_mime_types),
                    response_headers=dict(hc.response_headers),
                    method=hc.method,
                )
            )
            logger.info("Registered handler %s %s (%s)", hc.method, hc.endpoint, ", ".join(hc.extensions))
        return cls(handlers, root, config.network_defaults)

    def __iter__(self):
        return iter(self.handlers)

    def __len__(self) -> int:
        return len(self.handlers)

    def match(self, path: str, method: str = "GET") -> Optional[Handler]:
        """Return the first handler whose endpoint prefixes path and whose method matches."""
        method = method.upper()
        for handler in self.handlers:
            if path.startswith(handler.endpoint) and handler.method == method:
                return handler
        return None

    def handler_for_type(self, extension: str) -> Optional[Handler]:
        """Return the first handler serving extension. Later handlers with the same extension never win."""
        extension = extension.lower()
        for handler in self.handlers:
            if extension in handler.extensions:
                return handler
        return None


def _build_preprocessor(pc: PreprocessorConfig, project_root: str) -> Preprocessor:
    compiler = import_object(pc.compiler)
    if not callable(compiler):
        raise ValueError(f"Compiler {pc.compiler!r} is not callable")
    return CompilingPreprocessor(
        extensions=pc.extensions,
        root=os.path.join(project_root, pc.root.lstrip("/\\")),
        prefix=pc.prefix,
        compiler=compiler,
        output_type=pc.output_type,
    )


def parse_config(data: Any, network_defaults: Optional[NetworkDefaults] = None) -> CombinerConfig:
    """Validate a handler document already decoded from JSON.

    network_defaults, when given, fills in for a document that has none.
    """
    if isinstance(data, dict) and network_defaults is not None and "network_defaults" not in data:
        data = {**data, "network_defaults": network_defaults.model_dump()}
    try:
        return CombinerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid handler configuration: {e}") from e


def load_config(path: str | Path, network_defaults: Optional[NetworkDefaults] = None) -> CombinerConfig:
    """Read and validate the JSON handler document at path."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read handler configuration {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Handler configuration {path} is not valid JSON: {e}") from e
    return parse_config(data, network_defaults)
