"""
core/transforms.py -- Transform pipeline run over an asset at cache fill.

A transform is any callable of the form

    transform(data: str, context: TransformContext) -> Optional[str]

Returning None keeps the previous content, so a transform that only cares
about some extensions can bail out with a bare `return`. A transform that
raises is logged and skipped; the content from before that step is kept and
the next transform still runs. One broken plugin must never take a bundle
down with it.

Transforms are named in the handler document either by a built-in name
(see BUILTIN_TRANSFORMS) or by an import path such as "myproject.css:minify".
"""

import importlib
import logging
from typing import Callable, Optional

from core.models import TransformContext
from core.plugins import css_paths, npm_globals

logger = logging.getLogger("combiner.transforms")

Transform = Callable[[str, TransformContext], Optional[str]]

BUILTIN_TRANSFORMS: dict[str, Transform] = {
    "css_paths": css_paths,
    "npm_globals": npm_globals,
}


def transform_name(transform: Transform) -> str:
    return getattr(transform, "__qualname__", None) or getattr(transform, "__name__", None) or repr(transform)


def run_transforms(data: str, transforms: tuple[Transform, ...] | list[Transform], context: TransformContext) -> str:
    """Apply each transform in order, feeding each the previous step's output."""
    altered = data
    for transform in transforms:
        try:
            result = transform(altered, context)
        except Exception:
            logger.warning(
                "Skipping transform %s for %s",
                transform_name(transform),
                context.path,
                exc_info=True,
            )
            continue
        if result is not None:
            altered = result
    return altered


def import_object(reference: str) -> object:
    """Import "package.module:attribute" and return the attribute.

    Raises ValueError for malformed references and for anything that cannot
    be imported, so configuration loading can report one error type.
    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected 'module:attribute', got {reference!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import module {module_name!r}: {e}") from e
    obj = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise ValueError(f"{module_name!r} has no attribute {attr!r}") from e
    return obj


def resolve_transform(name: str) -> Transform:
    """Turn a configured transform name into a callable.

    Raises ValueError for unknown built-ins, bad import paths and
    non-callable targets.
    """
    if name in BUILTIN_TRANSFORMS:
        return BUILTIN_TRANSFORMS[name]
    if ":" not in name:
        raise ValueError(f"Unknown transform {name!r}. Built-ins: {', '.join(sorted(BUILTIN_TRANSFORMS))}")
    transform = import_object(name)
    if not callable(transform):
        raise ValueError(f"Transform {name!r} is not callable")
    return transform
