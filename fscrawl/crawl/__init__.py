# fscrawl/crawl/__init__.py
from fscrawl.crawl.crawler import Crawler
from fscrawl.crawl.engine import ScanEngine, ScanStatistic
from fscrawl.crawl.service import CrawlerService

__all__ = ["Crawler", "ScanEngine", "ScanStatistic", "CrawlerService"]
