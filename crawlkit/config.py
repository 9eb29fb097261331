# crawlkit/config.py
"""
Centralized configuration management.

Handles loading defaults, merging in settings from pyproject.toml,
and applying runtime overrides.
"""
from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, MutableMapping

import tomli

log = logging.getLogger(__name__)

# This is the baseline configuration dictionary.
DEFAULT_CONFIG: dict[str, Any] = {
    # Seeds of the crawl; the CLI can add more on the command line.
    "base_uris": [],
    # Extra URIs merged into the search URI collection.
    "additional_uris": [],
    # 0 means unlimited for both limits.
    "max_requests": 0,
    "max_depth": 0,
    "request_delay": 0.0,  # seconds between two requests
    # Bodies read for subscribers are cut off past this many bytes.
    "max_body_size": 10 * 1024 * 1024,
    # Passed through unmodified to the transport.
    "http_client": {
        "user_agent": "crawlkit/0.1",
        "timeout": 10.0,
        "follow_redirects": True,
        "max_redirects": 5,
        "headers": {},
    },
    # Where jobs and results are kept between runs.
    "storage": {
        "directory": ".crawlkit",
    },
}


def _deep_merge_dict(
    base: MutableMapping[str, Any], overrides: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Recursively merge dicts."""
    for key, value in overrides.items():
        if isinstance(value, MutableMapping) and isinstance(
            base.get(key), MutableMapping
        ):
            base[key] = _deep_merge_dict(base[key], value)
        else:
            base[key] = value
    return base


def load_config(pyproject_path: Path | None = None) -> dict[str, Any]:
    """
    Loads configuration from defaults and merges settings from pyproject.toml.

    1. Starts with DEFAULT_CONFIG.
    2. Looks for `pyproject.toml` (in CWD unless a path is given).
    3. If found, merges settings from `[tool.crawlkit]` over the defaults.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if pyproject_path is None:
        pyproject_path = Path.cwd() / "pyproject.toml"

    if not pyproject_path.exists():
        log.debug(
            "No pyproject.toml found at %s. Using default config.", pyproject_path
        )
        return config

    try:
        with pyproject_path.open("rb") as f:
            toml_data = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        log.warning(
            "Failed to load or parse %s: %s. Using default config.",
            pyproject_path,
            e,
        )
        return config

    project_config = toml_data.get("tool", {}).get("crawlkit", {})
    if project_config:
        log.info("Loading config from %s", pyproject_path)
        config = _deep_merge_dict(config, project_config)  # type: ignore
    else:
        log.debug("No [tool.crawlkit] section in %s.", pyproject_path)

    return config
