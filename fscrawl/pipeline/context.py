# fscrawl/pipeline/context.py
"""
Per-item routing context and the document it travels with.

A fresh RoutingContext is created for every crawled file and is never
shared between items. Filters may mutate it (add tags, metadata, a MIME
type); outputs are then selected against the mutated context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set


def deep_merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    """Merge `extra` into a copy of `base`; nested mappings are merged, other values replaced."""
    merged = dict(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@dataclass
class RoutingContext:
    filename: Optional[str] = None
    path: Optional[str] = None
    size: int = 0
    source_id: Optional[str] = None
    mime_type: Optional[str] = None
    target_index: Optional[str] = None
    tags: Set[str] = field(default_factory=set)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def extension(self) -> str:
        """Lowercased text after the last dot; empty for dot-files and names without one."""
        if not self.filename:
            return ""
        dot = self.filename.rfind(".")
        if dot <= 0:
            return ""
        return self.filename[dot + 1 :].lower()

    def add_tag(self, tag: str) -> None:
        self.tags.add(tag)

    def to_variables(self) -> Dict[str, Any]:
        """Variables exposed to routing predicates. Missing values become empty ones."""
        values: Dict[str, Any] = {
            "filename": self.filename or "",
            "extension": self.extension,
            "path": self.path or "",
            "size": self.size or 0,
            "sourceId": self.source_id or "",
            "mimeType": self.mime_type or "",
            "targetIndex": self.target_index or "",
            "tags": set(self.tags),
            "metadata": dict(self.metadata),
        }
        # snake_case and legacy spellings
        values["source_id"] = values["inputId"] = values["sourceId"]
        values["mime_type"] = values["mimeType"]
        values["target_index"] = values["index"] = values["targetIndex"]
        return values


@dataclass
class Document:
    """
    Indexable unit built from an Entry plus extracted content.

    Rendered with `to_dict()` into the nested structure sent to outputs:
        {"content": ..., "file": {...}, "path": {...}, "meta": {...},
         "attributes": {...}, "object": {...}, "attachment": ...}
    `extra` (meta files, static metadata) is deep-merged last.
    """

    id: Optional[str] = None
    content: Optional[str] = None
    file: Dict[str, Any] = field(default_factory=dict)
    path: Dict[str, Any] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)
    attributes: Dict[str, Any] = field(default_factory=dict)
    object: Optional[Dict[str, Any]] = None
    attachment: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.content is not None:
            data["content"] = self.content
        for key in ("file", "path", "meta", "attributes"):
            section = getattr(self, key)
            if section:
                data[key] = dict(section)
        if self.object is not None:
            data["object"] = self.object
        if self.attachment is not None:
            data["attachment"] = self.attachment
        if self.extra:
            data = deep_merge(data, self.extra)
        return data


__all__ = ["RoutingContext", "Document", "deep_merge"]
