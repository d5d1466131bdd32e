# fscrawl/config/loader.py
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from fscrawl.config.schema import CrawlerSettings
from fscrawl.exceptions import ConfigError
from fscrawl.logging.logger import get_logger
from fscrawl.logging.tags import CONFIG

logger = get_logger(__name__)

_ENV_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def _expand_env(value: Any) -> Any:
    """Replace ${VAR} and ${VAR:-default} in every string of the document."""
    if isinstance(value, str):

        def repl(match: re.Match[str]) -> str:
            name, default = match.group(1), match.group(2)
            env = os.environ.get(name)
            if env is None:
                if default is None:
                    raise ConfigError(f"Environment variable {name!r} is not set")
                return default
            return env

        return _ENV_RE.sub(repl, value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def load_settings_dict(data: Any, *, source: str = "<dict>") -> CrawlerSettings:
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: top-level YAML must be a mapping")
    try:
        return CrawlerSettings(**_expand_env(data))
    except ValidationError as exc:
        lines = [f"Invalid configuration in {source}:"]
        for err in exc.errors():
            loc = " -> ".join(str(x) for x in err.get("loc", []))
            lines.append(f"  - {loc}: {err.get('msg', 'invalid value')}")
        raise ConfigError("\n".join(lines)) from exc


def load_settings(path: str | Path) -> CrawlerSettings:
    path = Path(path).expanduser()
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse {path}: {exc}") from exc

    settings = load_settings_dict(data, source=str(path))
    logger.debug(f"{CONFIG} Loaded {len(settings.jobs)} job(s) from {path}")
    return settings


__all__ = ["load_settings", "load_settings_dict"]
