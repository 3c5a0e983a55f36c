"""
API request and response models for the Combiner REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/models.py and the
config schema in core/handlers.py. Route handlers map between them.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.handlers import Handler
from core.transforms import transform_name

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class BundleRequest(BaseModel):
    """Request body for POST /api/v1/bundles.

    assets are resolved in order into a single bundle. name picks the output
    file name (defaults to the first asset); out_dir is relative to the
    project root and may not leave it.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    endpoint: str = Field(min_length=1, max_length=255)
    assets: list[str] = Field(min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, max_length=255)
    out_dir: Optional[str] = Field(default=None, max_length=255)

    @field_validator("assets", mode="before")
    @classmethod
    def dedupe_assets(cls, values: list) -> list[str]:
        """Drop blanks and duplicates while preserving order."""
        seen: set[str] = set()
        result: list[str] = []
        for v in values:
            normalized = str(v).strip().lstrip("/")
            if normalized and normalized not in seen:
                seen.add(normalized)
                result.append(normalized)
        return result


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RootInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    location: str


class HandlerInfo(BaseModel):
    """One configured handler as seen by API clients."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    method: str
    extensions: list[str]
    roots: list[RootInfo]
    transforms: list[str]
    preprocessors: int
    separator: str
    output_mime_type: Optional[str] = None
    output_mime_types: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_handler(cls, handler: Handler, project_root: str) -> "HandlerInfo":
        roots = [
            RootInfo(type="filesystem", location=str(r.directory(project_root))) for r in handler.filesystem_roots
        ] + [RootInfo(type="network", location=r.path) for r in handler.network_roots]
        return cls(
            endpoint=handler.endpoint,
            method=handler.method,
            extensions=list(handler.extensions),
            roots=roots,
            transforms=[transform_name(t) for t in handler.transforms],
            preprocessors=len(handler.preprocessors),
            separator=handler.separator,
            output_mime_type=handler.output_mime_type,
            output_mime_types=dict(handler.output_mime_types),
        )


class CacheStatsResponse(BaseModel):
    """Response for GET /api/v1/cache."""

    model_config = ConfigDict(frozen=True)

    entries: int
    compiled: int
    hits: int
    loads: int


class BundleWrittenResponse(BaseModel):
    """Response for POST /api/v1/bundles."""

    model_config = ConfigDict(frozen=True)

    file: str
    uri: str
    order: list[str]
    missing: list[str] = Field(default_factory=list)


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    handlers: int = 0
