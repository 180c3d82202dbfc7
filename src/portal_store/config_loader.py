"""
Layered YAML configuration for portal_store.

A machine can carry a global config (shared drive location, lock tuning)
and a checkout can carry a project config that overrides parts of it.
Files are found by convention, merged section by section with the
project file winning, and ``${VAR}`` references are expanded last so a
path like ``${SHARE_ROOT}/portal`` can come from the environment.

Usage:
    from portal_store.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
    config = build_config(raw)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PORTAL_STORE_CONFIG"
PROJECT_CONFIG = Path(".portal_store") / "config.yml"
GLOBAL_CONFIG = Path(".config") / "portal_store" / "config.yml"

# ${NAME} or ${NAME:-fallback}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${NAME}`` and ``${NAME:-fallback}`` from the environment.

    An unset or empty variable expands to its fallback, or to ``""`` when
    none is given.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m.group(1)) or m.group(2) or "", value
    )


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(val) for val in obj]
    return obj


def discover_config_files() -> list[Path]:
    """Existing config files, highest precedence first.

    1. The file named by ``PORTAL_STORE_CONFIG``
    2. ``./.portal_store/config.yml``
    3. ``~/.config/portal_store/config.yml``
    """
    candidates: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    candidates.append(Path.cwd() / PROJECT_CONFIG)
    candidates.append(Path.home() / GLOBAL_CONFIG)
    return [path for path in candidates if path.exists()]


def load_yaml_file(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as fh:
        return yaml.safe_load(fh)


def _merge_sections(base: dict[str, Any], override: dict[str, Any]) -> None:
    """Overlay *override* onto *base* in place.

    Mapping sections (``stores``, ``locks``, ...) are merged key by key;
    any other value replaces the lower-precedence one outright.
    """
    for section, value in override.items():
        current = base.get(section)
        if isinstance(current, dict) and isinstance(value, dict):
            base[section] = {**current, **value}
        else:
            base[section] = value


def load_hierarchical_config() -> dict[str, Any]:
    """Merge every discovered config file into one raw dict.

    Returns an empty dict when no file exists.

    Raises:
        yaml.YAMLError: If a config file is not valid YAML.
        OSError: If a discovered file cannot be read.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except (OSError, yaml.YAMLError):
            logger.error("Failed to load config file %s", path)
            raise
        if data is None:
            continue
        if not isinstance(data, dict):
            logger.warning(
                "Ignoring config file %s: top level is %s, not a mapping",
                path,
                type(data).__name__,
            )
            continue
        _merge_sections(merged, data)

    return _interpolate_recursive(merged)
