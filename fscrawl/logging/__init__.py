# fscrawl/logging/__init__.py
from fscrawl.logging.logger import configure_logging, get_logger

__all__ = ["get_logger", "configure_logging"]
