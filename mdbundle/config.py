"""
Render config file: optional JSON with RenderConfig fields, e.g.

    {"margin": 36, "body_font_size": 10.5, "output_name": "handbook.pdf"}

Lookup order: explicit path, env MDBUNDLE_CONFIG, ./.mdbundle.json. No file → defaults.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from pydantic import ValidationError

from mdbundle.models import RenderConfig

log = logging.getLogger(__name__)

CONFIG_FILENAME = ".mdbundle.json"
CONFIG_ENV = "MDBUNDLE_CONFIG"


def find_config_file(path: Path | None = None) -> Path | None:
    """Return the config file to use, or None when there is none."""
    if path is not None:
        return Path(path).resolve()
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        p = Path(env_path).resolve()
        if p.exists():
            return p
        log.warning("%s points to a missing file: %s", CONFIG_ENV, p)
        return None
    cwd_file = (Path.cwd() / CONFIG_FILENAME).resolve()
    if cwd_file.exists():
        return cwd_file
    return None


def _read_json(path: Path) -> Dict[str, Any] | None:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        log.warning("Ignoring unreadable config %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        log.warning("Ignoring config %s: top level must be an object", path)
        return None
    return data


def load_render_config(path: Path | None = None, **overrides: Any) -> RenderConfig:
    """
    Load RenderConfig from file (if any) and apply keyword overrides on top.
    Raises ValueError when the file holds values RenderConfig rejects.
    """
    data: Dict[str, Any] = {}
    config_path = find_config_file(path)
    if config_path is not None:
        if path is not None and not config_path.exists():
            raise ValueError(f"Config file not found: {config_path}")
        data = _read_json(config_path) or {}
        if data:
            log.info("Loaded render config from %s", config_path)
    data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return RenderConfig(**data)
    except ValidationError as e:
        source = config_path if config_path is not None else "overrides"
        raise ValueError(f"Invalid render config in {source}: {e}") from e
