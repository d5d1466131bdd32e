# fscrawl/config/schema.py
"""
Configuration schema for fscrawl.

This is the single source of truth for crawler settings.

Schema hierarchy:
- CrawlerSettings: top-level document (one YAML file)
- JobSettings: one crawl job (source root, patterns, flags)
- PluginConfig: generic filter/output/source block
- ClientSettings: endpoints, batching and retry settings of an indexing client

Plugin-specific kwargs are validated by each plugin's own `settings_model`
when the plugin is built, not here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fscrawl.core.units import parse_byte_size, parse_duration

DEFAULT_URL = "http://127.0.0.1:9200"
DEFAULT_RETRY_ON = ["es_rejected_execution_exception"]
DEFAULT_EXCLUDES = ["*/~*"]


# =============================================================================
# Plugin Configuration
# =============================================================================


class PluginConfig(BaseModel):
    """
    Generic plugin configuration block.

    Examples:
        >>> PluginConfig(
        ...     plugin_name="search_index",
        ...     when="extension == 'pdf'",
        ...     kwargs={"urls": ["http://localhost:9200"], "index": "pdfs"},
        ... )
    """

    plugin_name: str = Field(..., description="Plugin name in the registry")
    id: Optional[str] = Field(default=None, description="Instance id, defaults to plugin_name")
    when: Optional[str] = Field(default=None, description="Routing predicate")
    kwargs: dict[str, Any] = Field(default_factory=dict, description="Plugin settings")

    model_config = ConfigDict(extra="forbid")

    @field_validator("when")
    @classmethod
    def validate_when(cls, v: Optional[str]) -> Optional[str]:
        # Imported lazily: conditions pulls in the logging stack.
        from fscrawl.pipeline.conditions import default_evaluator

        if v is not None and not default_evaluator.is_valid(v):
            raise ValueError(f"invalid routing expression: {v!r}")
        return v

    @property
    def instance_id(self) -> str:
        return self.id or self.plugin_name


# =============================================================================
# Indexing Client
# =============================================================================


class ClientSettings(BaseModel):
    """Connection, batching and retry settings for one indexing client."""

    urls: list[str] = Field(default_factory=lambda: [DEFAULT_URL], min_length=1)
    username: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = None
    ssl_verify: bool = True
    timeout: float = Field(default=30.0, description="Per-request timeout (seconds)")

    pipeline: Optional[str] = Field(default=None, description="Ingest pipeline name")
    bulk_size: int = Field(default=100, ge=1)
    byte_size: int = Field(default=10 * 1024 * 1024, ge=1)
    flush_interval: float = Field(default=5.0, ge=0)

    check_nodes_every: int = Field(default=10, ge=1)
    retry_on: list[str] = Field(default_factory=lambda: list(DEFAULT_RETRY_ON))
    max_retries: int = Field(default=3, ge=0)
    read_retries: int = Field(default=3, ge=1)

    model_config = ConfigDict(extra="forbid")

    @field_validator("timeout", "flush_interval", mode="before")
    @classmethod
    def _duration(cls, v: Any) -> float:
        return parse_duration(v)

    @field_validator("byte_size", mode="before")
    @classmethod
    def _bytes(cls, v: Any) -> int:
        return parse_byte_size(v)

    @field_validator("urls")
    @classmethod
    def _strip_urls(cls, v: list[str]) -> list[str]:
        return [u.rstrip("/") for u in v]


# =============================================================================
# Jobs
# =============================================================================


class JobSettings(BaseModel):
    """One crawl job: a source root and how to walk it."""

    name: str = Field(..., min_length=1)
    url: str = Field(..., description="Root of the tree to crawl")
    source: PluginConfig = Field(default_factory=lambda: PluginConfig(plugin_name="local"))

    update_rate: float = Field(default=15 * 60.0, description="Seconds between runs")
    includes: list[str] = Field(default_factory=list)
    excludes: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDES))
    ignore_above: Optional[int] = Field(default=None, description="Skip files larger than this")

    index_content: bool = True
    store_source: bool = False
    index_folders: bool = True
    remove_deleted: bool = True
    continue_on_error: bool = False
    filename_as_id: bool = False
    add_filesize: bool = True
    attributes_support: bool = False
    checksum: Optional[str] = Field(default=None, description="md5, sha1, sha256, ...")

    meta_filename: Optional[str] = Field(default=None, description="Per-folder metadata file")
    static_meta_file: Optional[str] = Field(default=None, description="Metadata merged into every document")
    content_filters: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    index: Optional[str] = Field(default=None, description="Target index for documents")
    index_folder: Optional[str] = Field(default=None, description="Target index for folders")

    model_config = ConfigDict(extra="forbid")

    @field_validator("update_rate", mode="before")
    @classmethod
    def _duration(cls, v: Any) -> float:
        return parse_duration(v)

    @field_validator("ignore_above", mode="before")
    @classmethod
    def _bytes(cls, v: Any) -> Optional[int]:
        return None if v is None else parse_byte_size(v)

    @field_validator("checksum")
    @classmethod
    def _checksum(cls, v: Optional[str]) -> Optional[str]:
        import hashlib

        if v is not None and v.lower() not in hashlib.algorithms_available:
            raise ValueError(f"unknown checksum algorithm: {v!r}")
        return v.lower() if v else v

    @field_validator("content_filters")
    @classmethod
    def _regexes(cls, v: list[str]) -> list[str]:
        import re

        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid content filter {pattern!r}: {exc}") from exc
        return v

    @property
    def documents_index(self) -> str:
        return self.index or self.name

    @property
    def folders_index(self) -> str:
        return self.index_folder or f"{self.documents_index}_folder"


# =============================================================================
# Top level
# =============================================================================


class CrawlerSettings(BaseModel):
    """
    Complete crawler configuration.

    Example YAML:

        config_dir: ~/.fscrawl
        jobs:
          - name: docs
            url: /data/docs
            update_rate: 15m
        filters:
          - plugin_name: extract
        outputs:
          - plugin_name: search_index
            kwargs:
              urls: ["http://localhost:9200"]
    """

    config_dir: Path = Field(default=Path("~/.fscrawl"))
    jobs: list[JobSettings] = Field(..., min_length=1)
    filters: list[PluginConfig] = Field(
        default_factory=lambda: [PluginConfig(plugin_name="extract")]
    )
    outputs: list[PluginConfig] = Field(default_factory=list)
    directory: Optional[ClientSettings] = Field(
        default=None, description="Client used for deletion diff queries"
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("config_dir")
    @classmethod
    def _expand(cls, v: Path) -> Path:
        return v.expanduser()

    @model_validator(mode="after")
    def _unique_names(self) -> "CrawlerSettings":
        names = [job.name for job in self.jobs]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"duplicate job names: {sorted(duplicates)}")

        for kind, blocks in (("filter", self.filters), ("output", self.outputs)):
            ids = [b.instance_id for b in blocks]
            dup = {i for i in ids if ids.count(i) > 1}
            if dup:
                raise ValueError(f"duplicate {kind} ids: {sorted(dup)}")
        return self

    def get_job(self, name: str) -> JobSettings:
        for job in self.jobs:
            if job.name == name:
                return job
        raise KeyError(name)


__all__ = [
    "PluginConfig",
    "ClientSettings",
    "JobSettings",
    "CrawlerSettings",
]
