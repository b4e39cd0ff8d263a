"""Dashboard preferences, persisted as YAML.

Only the ``gui`` dashboard reads this file; the kill/list/watch/wait
commands never do.
"""

import os

import yaml

from .log import debug_log

CONFIG_DIR = os.path.expanduser("~/.config/portzap")
CONFIG_PATH = os.environ.get("PORTZAP_CONFIG", os.path.join(CONFIG_DIR, "config.yaml"))

THEME_NAMES = ("dark", "light")

DEFAULT_CONFIG = {
    "theme": "dark",
    "skip_confirm_dialog": False,
    "animation_duration_ms": 1000,
}


def _normalize(raw):
    config = dict(DEFAULT_CONFIG)
    if not isinstance(raw, dict):
        return config
    if raw.get("theme") in THEME_NAMES:
        config["theme"] = raw["theme"]
    if isinstance(raw.get("skip_confirm_dialog"), bool):
        config["skip_confirm_dialog"] = raw["skip_confirm_dialog"]
    duration = raw.get("animation_duration_ms")
    if isinstance(duration, int) and not isinstance(duration, bool) and duration >= 0:
        config["animation_duration_ms"] = duration
    return config


def load_config(path=None):
    """Read the config file, falling back to defaults for anything missing or bad."""
    path = path or CONFIG_PATH
    if not os.path.isfile(path):
        return dict(DEFAULT_CONFIG)
    try:
        with open(path, "r") as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        debug_log(f"CONFIG: Error loading {path}: {e}")
        return dict(DEFAULT_CONFIG)
    return _normalize(raw)


def save_config(config, path=None):
    """Write the config back to disk. Returns False when it could not be saved."""
    path = path or CONFIG_PATH
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(_normalize(config), f, default_flow_style=False)
    except OSError as e:
        debug_log(f"CONFIG: Error saving {path}: {e}")
        return False
    return True
