# fscrawl/cli/__init__.py
from fscrawl.cli.cli import app

__all__ = ["app"]
