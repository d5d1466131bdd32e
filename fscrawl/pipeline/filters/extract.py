# fscrawl/pipeline/filters/extract.py
"""
Content extraction filter.

The filter delegates to a ContentExtractor collaborator:

    extract(stream, filename, full_path, size_hint) -> ExtractionResult

Format detection, OCR or language detection belong in the extractor.
The built-in PlainTextExtractor decodes text files and recognises binary
content by NUL bytes; it leaves `content` empty for binaries.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from fscrawl.exceptions import FscrawlError, PluginError
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import PIPELINE
from fscrawl.pipeline.context import Document, RoutingContext
from fscrawl.pipeline.plugins import FilterPlugin
from fscrawl.registry import FILTERS

logger = get_logger(__name__)

_SNIFF_BYTES = 8192


@dataclass
class ExtractionResult:
    content: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    mime_type: Optional[str] = None


@runtime_checkable
class ContentExtractor(Protocol):
    def extract(
        self,
        stream: Optional[BinaryIO],
        filename: str,
        full_path: str,
        size_hint: int,
    ) -> ExtractionResult:
        ...


def guess_mime_type(filename: str) -> Optional[str]:
    mime_type, _ = mimetypes.guess_type(filename, strict=False)
    return mime_type


class PlainTextExtractor:
    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def extract(
        self,
        stream: Optional[BinaryIO],
        filename: str,
        full_path: str,
        size_hint: int,
    ) -> ExtractionResult:
        mime_type = guess_mime_type(filename)
        if stream is None:
            return ExtractionResult(mime_type=mime_type)

        data = stream.read()
        if b"\x00" in data[:_SNIFF_BYTES]:
            return ExtractionResult(mime_type=mime_type or "application/octet-stream")

        content = data.decode(self.encoding, errors="replace")
        return ExtractionResult(content=content, mime_type=mime_type or "text/plain")


class ExtractFilterSettings(BaseModel):
    # -1 keeps the whole text
    indexed_chars: int = Field(default=100_000, ge=-1)
    encoding: str = "utf-8"

    model_config = ConfigDict(extra="forbid")


@FILTERS.register
class ExtractFilter(FilterPlugin):
    plugin_name = "extract"
    settings_model = ExtractFilterSettings

    def __init__(self, *args: Any, extractor: Optional[ContentExtractor] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.extractor: ContentExtractor = extractor or PlainTextExtractor(
            self.settings.encoding  # type: ignore[attr-defined]
        )

    def process(self, stream: Optional[BinaryIO], doc: Document, context: RoutingContext) -> None:
        filename = context.filename or ""
        try:
            result = self.extractor.extract(stream, filename, context.path or "", context.size)
        except FscrawlError:
            raise
        except Exception as exc:
            raise PluginError(f"Extraction failed for {context.path}: {exc}") from exc

        content = result.content
        limit = self.settings.indexed_chars  # type: ignore[attr-defined]
        if content is not None and limit >= 0 and len(content) > limit:
            logger.debug(f"{PIPELINE} Truncating {context.path} to {limit} chars")
            content = content[:limit]

        if content is not None:
            doc.content = content
            doc.file["indexed_chars"] = len(content)
        if result.mime_type:
            context.mime_type = result.mime_type
            doc.file["content_type"] = result.mime_type
        if result.metadata:
            doc.meta.update(result.metadata)
            context.metadata.update(result.metadata)


__all__ = [
    "ExtractionResult",
    "ContentExtractor",
    "PlainTextExtractor",
    "ExtractFilter",
    "ExtractFilterSettings",
    "guess_mime_type",
]
