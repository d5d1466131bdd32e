# fscrawl/__init__.py
"""
fscrawl - incremental file crawler.

Walks a tree of documents, routes each changed item through a filter/output
pipeline and keeps a search index in sync with the tree.
"""

from fscrawl.config import CrawlerSettings, JobSettings, load_settings
from fscrawl.crawl import Crawler, CrawlerService, ScanEngine, ScanStatistic
from fscrawl.exceptions import FscrawlError

__version__ = "0.3.0"

__all__ = [
    "CrawlerSettings",
    "JobSettings",
    "load_settings",
    "Crawler",
    "CrawlerService",
    "ScanEngine",
    "ScanStatistic",
    "FscrawlError",
    "__version__",
]
