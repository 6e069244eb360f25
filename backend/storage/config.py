"""Preview settings (live update default, include resolution, panel title)."""

import json
from pathlib import Path
from typing import Any

from .core import data_dir

_CONFIG_DEFAULTS: dict[str, Any] = {
    "live_update": True,
    "include_extension": ".ink",
    "title_suffix": " (Preview)",
}


def _config_path() -> Path:
    return data_dir() / "config.json"


def get_config() -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config = dict(_CONFIG_DEFAULTS)
    path = _config_path()
    if path.is_file():
        stored = json.loads(path.read_text())
        for key in _CONFIG_DEFAULTS:
            if key in stored:
                config[key] = stored[key]
    return config


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge known fields into config and persist. Returns full config."""
    config = get_config()
    if "live_update" in fields:
        config["live_update"] = bool(fields["live_update"])
    if "include_extension" in fields:
        ext = str(fields["include_extension"]).strip()
        config["include_extension"] = ext if ext.startswith(".") else f".{ext}"
    if "title_suffix" in fields:
        config["title_suffix"] = str(fields["title_suffix"])
    _config_path().write_text(json.dumps(config, indent=2))
    return config
