"""User settings for the installer.

Settings come from ``config.json`` in the platform's user config directory
(``laragram`` app name) and can be overridden with ``LARAGRAM_*`` environment
variables. Every key is optional.
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from platformdirs import user_config_dir

from .errors import PreconditionFailed

logger = logging.getLogger(__name__)

APP_NAME = "laragram"
CONFIG_FILENAME = "config.json"
TRUTHY = {"1", "true", "yes", "on"}

ENV_OVERRIDES = {
    "composer": "LARAGRAM_COMPOSER",
    "php": "LARAGRAM_PHP",
    "default_branch": "LARAGRAM_DEFAULT_BRANCH",
    "force_fallback_prompts": "LARAGRAM_PROMPT_FALLBACK",
}


@dataclass
class InstallerSettings:
    skeleton_package: str = "laraxgram/laragram"
    surge_package: str = "laraxgram/surge"
    composer: Optional[str] = None
    php: Optional[str] = None
    default_branch: Optional[str] = None
    documentation_url: str = "https://laraxgram.github.io/installation.html#next-steps"
    force_fallback_prompts: bool = False


def config_path() -> Path:
    return Path(user_config_dir(APP_NAME)) / CONFIG_FILENAME


def _read_config_file(path: Path) -> dict:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise PreconditionFailed(f"Could not read settings from {path}: {e}", title="Invalid Settings")
    if not isinstance(data, dict):
        raise PreconditionFailed(f"Settings file {path} must contain a JSON object", title="Invalid Settings")
    return data


def load_settings(path: Optional[Path] = None, environ: Optional[dict] = None) -> InstallerSettings:
    """Build settings from the config file, then apply environment overrides."""
    path = path or config_path()
    environ = os.environ if environ is None else environ
    known = {f.name for f in fields(InstallerSettings)}

    values = {}
    for key, value in _read_config_file(path).items():
        if key in known:
            values[key] = value
        else:
            logger.debug("Ignoring unknown setting %r in %s", key, path)

    for key, variable in ENV_OVERRIDES.items():
        raw = environ.get(variable)
        if raw is None or raw == "":
            continue
        values[key] = raw.strip().lower() in TRUTHY if key == "force_fallback_prompts" else raw.strip()

    if isinstance(values.get("force_fallback_prompts"), str):
        values["force_fallback_prompts"] = values["force_fallback_prompts"].lower() in TRUTHY

    settings = InstallerSettings(**values)
    logger.debug("Loaded settings: %s", settings)
    return settings
