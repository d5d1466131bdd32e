# fscrawl/pipeline/filters/xml_filter.py
"""
Parses XML files into the document instead of extracting text.

The root element's content becomes a mapping:

    <book lang="en"><title>Dune</title><tag>a</tag><tag>b</tag></book>
        -> {"lang": "en", "title": "Dune", "tag": ["a", "b"]}

Attributes and child elements share the same keys, repeated elements become
lists, and text sitting next to attributes or children is kept under "".
Namespaces are dropped from names.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any, BinaryIO, Dict, Optional

from pydantic import BaseModel, ConfigDict

from fscrawl.exceptions import PluginError
from fscrawl.pipeline.context import Document, RoutingContext, deep_merge
from fscrawl.pipeline.plugins import FilterPlugin
from fscrawl.registry import FILTERS


class XmlFilterSettings(BaseModel):
    # False: merge the XML content at the top level of the document
    add_as_inner_object: bool = True

    model_config = ConfigDict(extra="forbid")


def _local_name(name: str) -> str:
    return name.rpartition("}")[2]


def element_to_value(element: ET.Element) -> Any:
    """Convert one element to a string (text only) or a mapping."""
    text = (element.text or "").strip()
    children = list(element)
    if not element.attrib and not children:
        return text

    value: Dict[str, Any] = {_local_name(k): v for k, v in element.attrib.items()}
    for child in children:
        key = _local_name(child.tag)
        converted = element_to_value(child)
        if key not in value:
            value[key] = converted
        elif isinstance(value[key], list):
            value[key].append(converted)
        else:
            value[key] = [value[key], converted]
    if text:
        value[""] = text
    return value


@FILTERS.register
class XmlFilter(FilterPlugin):
    plugin_name = "xml"
    settings_model = XmlFilterSettings

    def process(self, stream: Optional[BinaryIO], doc: Document, context: RoutingContext) -> None:
        if stream is None:
            return

        try:
            root = ET.fromstring(stream.read())
        except ET.ParseError as exc:
            raise PluginError(f"Filter '{self.id}': {context.path} is not valid XML: {exc}") from exc

        parsed = element_to_value(root)
        if not isinstance(parsed, dict):
            parsed = {"value": parsed}

        context.mime_type = context.mime_type or "application/xml"
        if self.settings.add_as_inner_object:  # type: ignore[attr-defined]
            doc.object = parsed
        else:
            doc.extra = deep_merge(doc.extra, parsed)


__all__ = ["XmlFilter", "XmlFilterSettings", "element_to_value"]
