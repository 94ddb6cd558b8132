"""Option defaults, YAML option files and environment overrides."""

import copy
import logging
import os
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "WEB2OS_CONFIG"
HEADLESS_ENV_VAR = "WEB2OS_HEADLESS"
BROWSER_ENV_VAR = "WEB2OS_BROWSER"

DEFAULT_OPTIONS = {
    "abort_on_rejected_promise": True,
    "open_dev_tools": False,
    "on_error": None,
    "log_dir": None,
    "name": None,
    "browser": {
        "type": "chromium",
        "width": 800,
        "height": 600,
        "show": True,
        "timeout": 30000,
        "cdp_port": 9222,
    },
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def load_config(config_path: str | Path) -> dict:
    """
    Load web2os options from a YAML file.

    If the file has a top-level 'web2os' key, its value is returned instead
    of the whole document.

    Args:
        config_path: Path to YAML config file

    Returns:
        Options dictionary
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}

    if "web2os" in config:
        config = config["web2os"] or {}

    return config


def deep_merge(base: dict, override: dict) -> dict:
    """
    Merge override into a copy of base.

    Nested dicts are merged recursively; any other value in override
    replaces the one in base. Neither argument is mutated.
    """
    merged = copy.deepcopy(base)

    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value

    return merged


def env_overrides(environ=None) -> dict:
    """Build an options dict from WEB2OS_* environment variables."""
    environ = os.environ if environ is None else environ
    overrides = {}

    headless = environ.get(HEADLESS_ENV_VAR)
    if headless:
        overrides.setdefault("browser", {})["show"] = headless.lower() not in _TRUE_VALUES

    browser_type = environ.get(BROWSER_ENV_VAR)
    if browser_type:
        overrides.setdefault("browser", {})["type"] = browser_type.lower()

    return overrides


def resolve_options(options: dict | None = None, environ=None) -> dict:
    """
    Compute the effective options of a runner.

    Precedence, lowest first: DEFAULT_OPTIONS, the YAML file named by
    WEB2OS_CONFIG, WEB2OS_* environment overrides, the caller's options.
    """
    environ = os.environ if environ is None else environ
    resolved = deep_merge(DEFAULT_OPTIONS, {})

    config_file = environ.get(CONFIG_ENV_VAR)
    if config_file:
        logger.debug(f"Loading options from {config_file}")
        resolved = deep_merge(resolved, load_config(config_file))

    resolved = deep_merge(resolved, env_overrides(environ))

    if options:
        resolved = deep_merge(resolved, options)

    return resolved
