# fscrawl/config/__init__.py
from fscrawl.config.loader import load_settings, load_settings_dict
from fscrawl.config.schema import ClientSettings, CrawlerSettings, JobSettings, PluginConfig

__all__ = [
    "load_settings",
    "load_settings_dict",
    "ClientSettings",
    "CrawlerSettings",
    "JobSettings",
    "PluginConfig",
]
