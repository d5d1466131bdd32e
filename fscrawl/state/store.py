# fscrawl/state/store.py
"""
Per-job run state persistence.

Layout:
    <config_dir>/<job>/_status.json

    {
      "name": "docs",
      "lastrun": "2026-10-19T08:00:01+00:00",
      "next_check": "2026-10-19T08:15:03+00:00",
      "indexed": 42,
      "deleted": 3
    }

`lastrun` is the watermark: the start of the last successful run, rounded
down to the second and moved back by SAFETY_MARGIN. Writes go through a
temporary file in the same directory followed by os.replace, so a crash
mid-write leaves the previous record intact.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fscrawl.exceptions import StateStoreError
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import STATE

logger = get_logger(__name__)

STATUS_FILENAME = "_status.json"
SAFETY_MARGIN = timedelta(seconds=2)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_watermark(started_at: datetime) -> datetime:
    """Round down to the second, then subtract the safety margin."""
    return _as_utc(started_at).replace(microsecond=0) - SAFETY_MARGIN


class RunState(BaseModel):
    """Run metadata for one job."""

    name: str
    lastrun: Optional[datetime] = Field(default=None, description="Watermark")
    next_check: Optional[datetime] = None
    indexed: int = Field(default=0, ge=0)
    deleted: int = Field(default=0, ge=0)

    model_config = ConfigDict(extra="ignore")

    @field_validator("lastrun", "next_check")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return None if v is None else _as_utc(v)


class RunStateStore:
    """File-backed store, one directory per job."""

    def __init__(self, config_dir: str | Path):
        self.config_dir = Path(config_dir).expanduser()

    def path_for(self, job_name: str) -> Path:
        return self.config_dir / job_name / STATUS_FILENAME

    def read(self, job_name: str) -> Optional[RunState]:
        path = self.path_for(job_name)
        if not path.exists():
            logger.debug(f"{STATE} No previous state for job '{job_name}'")
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return RunState(**data)
        except (OSError, json.JSONDecodeError, ValidationError, TypeError) as exc:
            raise StateStoreError(f"Cannot read run state {path}: {exc}") from exc

    def write(self, state: RunState) -> None:
        path = self.path_for(state.name)
        payload = state.model_dump_json(indent=2)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".status-", suffix=".tmp", dir=str(path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StateStoreError(f"Cannot write run state {path}: {exc}") from exc

        logger.debug(f"{STATE} Saved state for job '{state.name}' (lastrun={state.lastrun})")

    def update(
        self,
        job_name: str,
        *,
        started_at: datetime,
        indexed: int,
        deleted: int,
        next_check: Optional[datetime] = None,
        previous: Optional[RunState] = None,
    ) -> RunState:
        """
        Record a successful run.

        Counters accumulate onto the previous record. The watermark never
        moves backwards.
        """
        if previous is None:
            previous = self.read(job_name)

        watermark = compute_watermark(started_at)
        if previous is not None and previous.lastrun is not None:
            watermark = max(watermark, previous.lastrun)

        state = RunState(
            name=job_name,
            lastrun=watermark,
            next_check=next_check,
            indexed=(previous.indexed if previous else 0) + indexed,
            deleted=(previous.deleted if previous else 0) + deleted,
        )
        self.write(state)
        return state

    def clean(self, job_name: str) -> bool:
        """Forget the run state of a job. Returns True if a record was removed."""
        path = self.path_for(job_name)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as exc:
            raise StateStoreError(f"Cannot remove run state {path}: {exc}") from exc
        logger.info(f"{STATE} Cleaned state for job '{job_name}'")
        return True

    def jobs(self) -> list[str]:
        if not self.config_dir.is_dir():
            return []
        return sorted(
            p.parent.name for p in self.config_dir.glob(f"*/{STATUS_FILENAME}")
        )


__all__ = ["STATUS_FILENAME", "SAFETY_MARGIN", "RunState", "RunStateStore", "compute_watermark"]
