"""Renderer plugin implementations and discovery utilities."""

from __future__ import annotations

from importlib import metadata
from typing import Callable, Dict, Iterable, List, Sequence, Set

from .base import Renderer
from .json_output import JsonRenderer
from .mcpb import McpbRenderer
from .python_stubs import PythonStubRenderer

_ENTRY_POINT_GROUP = "mcpextract.renderers"

_BUILTIN_FACTORIES: dict[str, Callable[[], Renderer]] = {
    "json": JsonRenderer,
    "python": PythonStubRenderer,
    "mcpb": McpbRenderer,
}


def discover_renderers(enabled: Sequence[str] | None = None) -> Dict[str, Renderer]:
    """Return instantiated renderers keyed by format name, honoring optional enabled names."""

    enabled_set: Set[str] | None = None
    if enabled is not None:
        enabled_set = {name.lower() for name in enabled}

    renderers: Dict[str, Renderer] = {}

    def _add(name: str, factory: Callable[[], Renderer]) -> None:
        key = name.lower()
        if enabled_set is not None and key not in enabled_set:
            return
        if key in renderers:
            return
        instance = factory()
        if not isinstance(instance, Renderer):
            raise TypeError(f"Renderer factory for '{name}' did not return a Renderer instance")
        renderers[key] = instance
        if enabled_set is not None:
            enabled_set.discard(key)

    for name, factory in _BUILTIN_FACTORIES.items():
        _add(name, factory)

    for entry in _iter_entry_points():
        name = entry.name
        if enabled_set is not None and name.lower() not in enabled_set:
            continue
        try:
            loaded = entry.load()
        except Exception as exc:  # pragma: no cover - third-party plugin failure
            raise RuntimeError(f"Failed to load renderer entry point '{name}': {exc}") from exc

        def _factory(obj: object = loaded) -> Renderer:
            return _coerce_renderer(obj)

        _add(name, _factory)

    if enabled_set:
        missing = ", ".join(sorted(enabled_set))
        raise ValueError(f"Unknown output formats requested: {missing}")

    return renderers


def available_formats() -> List[str]:
    """Names of every built-in and installed renderer."""
    names = list(_BUILTIN_FACTORIES)
    for entry in _iter_entry_points():
        if entry.name.lower() not in names:
            names.append(entry.name.lower())
    return names


def get_renderer(name: str) -> Renderer:
    """Instantiate the renderer registered for ``name``."""
    return discover_renderers([name])[name.lower()]


def _coerce_renderer(obj: object) -> Renderer:
    if isinstance(obj, Renderer):
        return obj
    if isinstance(obj, type) and issubclass(obj, Renderer):
        return obj()
    if callable(obj):
        instance = obj()
        if isinstance(instance, Renderer):
            return instance
    raise TypeError("Renderer entry point must be a Renderer subclass or factory")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "Renderer",
    "available_formats",
    "discover_renderers",
    "get_renderer",
]
