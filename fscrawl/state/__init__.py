# fscrawl/state/__init__.py
from fscrawl.state.store import SAFETY_MARGIN, RunState, RunStateStore, compute_watermark

__all__ = ["SAFETY_MARGIN", "RunState", "RunStateStore", "compute_watermark"]
