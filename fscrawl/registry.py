# fscrawl/registry.py
"""
Explicit plugin registries.

Each plugin kind (filter, output, source) has its own `PluginRegistry`
mapping a type name to a plugin class. Built-in plugins register themselves
with the `register` decorator when their module is imported;
`load_builtin_plugins()` imports those modules once at process start.

A plugin class declares:
    plugin_name: str                 key in the registry
    settings_model: type[BaseModel]  typed settings, validated once on build

    @FILTERS.register
    class JsonFilter(FilterPlugin):
        plugin_name = "json"
        settings_model = JsonFilterSettings
"""

from __future__ import annotations

import importlib
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from fscrawl.exceptions import ConfigError, PluginNotFoundError, PluginRegistryError

T = TypeVar("T")

_BUILTIN_MODULES = (
    "fscrawl.sources.local",
    "fscrawl.pipeline.filters.extract",
    "fscrawl.pipeline.filters.json_filter",
    "fscrawl.pipeline.filters.none",
    "fscrawl.pipeline.filters.tag",
    "fscrawl.pipeline.filters.xml_filter",
    "fscrawl.pipeline.outputs.search_index",
)


class PluginRegistry(Generic[T]):
    """Name -> class mapping for one plugin kind."""

    def __init__(self, kind: str):
        self.kind = kind
        self._plugins: Dict[str, Type[T]] = {}

    def register(self, plugin: Type[T]) -> Type[T]:
        name = getattr(plugin, "plugin_name", None)
        if not isinstance(name, str) or not name:
            raise PluginRegistryError(f"{self.kind} plugin must define non-empty plugin_name")

        existing = self._plugins.get(name)
        if existing is not None and existing is not plugin:
            raise PluginRegistryError(
                f"Duplicate {self.kind} plugin_name={name!r}: "
                f"{existing.__module__}.{existing.__name__} vs {plugin.__module__}.{plugin.__name__}"
            )

        self._plugins[name] = plugin
        return plugin

    def get(self, name: str) -> Type[T]:
        try:
            return self._plugins[name]
        except KeyError:
            raise PluginNotFoundError(self.kind, name, list(self._plugins)) from None

    def available(self) -> list[str]:
        return sorted(self._plugins)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins

    def create(self, name: str, settings: Optional[dict[str, Any]] = None, **extra: Any) -> T:
        """
        Build a plugin instance.

        `settings` is validated against the plugin's `settings_model`;
        `extra` is passed straight to the constructor (id, when, collaborators).
        """
        plugin_cls = self.get(name)
        typed = parse_settings(plugin_cls, settings or {}, label=f"{self.kind} '{name}'")
        return plugin_cls(settings=typed, **extra)


def parse_settings(plugin_cls: type, raw: dict[str, Any], *, label: str) -> BaseModel:
    model: Optional[Type[BaseModel]] = getattr(plugin_cls, "settings_model", None)
    if model is None:
        raise PluginRegistryError(f"{label} plugin does not declare a settings_model")
    try:
        return model(**raw)
    except ValidationError as exc:
        lines = [f"Invalid settings for {label}:"]
        for err in exc.errors():
            loc = " -> ".join(str(x) for x in err.get("loc", []))
            lines.append(f"  - {loc}: {err.get('msg', 'invalid value')}")
        raise ConfigError("\n".join(lines)) from exc


FILTERS: PluginRegistry[Any] = PluginRegistry("filter")
OUTPUTS: PluginRegistry[Any] = PluginRegistry("output")
SOURCES: PluginRegistry[Any] = PluginRegistry("source")

_loaded = False


def load_builtin_plugins() -> None:
    global _loaded
    if _loaded:
        return
    for module in _BUILTIN_MODULES:
        importlib.import_module(module)
    _loaded = True


__all__ = [
    "PluginRegistry",
    "parse_settings",
    "FILTERS",
    "OUTPUTS",
    "SOURCES",
    "load_builtin_plugins",
]
