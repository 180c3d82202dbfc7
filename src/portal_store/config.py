"""Runtime configuration resolution for portal_store.

Combines CLI args, environment variables, .env files and YAML config into
one validated ``UnifiedConfig``.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    PORTAL_PRIMARY_ROOT: Primary (shared) store root (required)
    PORTAL_LOCAL_ROOT: Local store root (optional, default: ./data)
    PORTAL_LOCK_RETRIES: Attempts per serialized operation (optional, default: 5)
    PORTAL_WATCHDOG_TIMEOUT: Seconds before a stuck lock key is evicted (optional, default: 30)
    PORTAL_STALE_LOCK_SECONDS: Age at which a lock marker is reclaimed (optional, default: disabled)
"""

import logging
import os
from pathlib import Path

from .config_schema import UnifiedConfig, build_config

logger = logging.getLogger(__name__)


def validate_config(config: UnifiedConfig) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: UnifiedConfig instance to validate.

    Raises:
        ValueError: If the primary root is missing, or both roots point to
            the same directory.
    """
    primary = (config.stores.primary_root or "").strip()
    if not primary:
        raise ValueError(
            "Primary store root not found. Set PORTAL_PRIMARY_ROOT environment "
            "variable, pass --primary CLI argument, or add 'stores.primary_root' "
            "to config.yml."
        )

    local = config.stores.local_root.strip()
    if not local:
        raise ValueError("Local store root cannot be empty.")

    if Path(primary).expanduser().resolve() == Path(local).expanduser().resolve():
        raise ValueError(
            f"Primary and local store roots must differ (both are '{primary}')"
        )


def _env_number(key: str, cast: type, low: float, high: float | None):
    """Return a bounded number from env var *key*, or None if unset."""
    raw = os.getenv(key)
    if raw is None:
        return None
    bounds = f"between {low} and {high}" if high is not None else f"> {low}"
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number {bounds}"
        ) from None
    if value < low or (high is not None and value > high):
        raise ValueError(f"Invalid {key} '{raw}': must be a number {bounds}")
    return value


def load_config(
    primary_root: str | None = None,
    local_root: str | None = None,
    raw: dict | None = None,
) -> UnifiedConfig:
    """Load configuration with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        primary_root: Override primary root (CLI ``--primary``).
        local_root: Override local root (CLI ``--local``).
        raw: Merged YAML data from ``load_hierarchical_config()``.

    Returns:
        Validated UnifiedConfig instance.

    Raises:
        ValueError: If required config is missing or a value is out of range.
    """
    base = build_config(raw or {})

    stores_update = {}
    final_primary = primary_root or os.getenv("PORTAL_PRIMARY_ROOT")
    if final_primary:
        stores_update["primary_root"] = final_primary.strip()
    final_local = local_root or os.getenv("PORTAL_LOCAL_ROOT")
    if final_local:
        stores_update["local_root"] = final_local.strip()

    locks_update = {}
    retries = _env_number("PORTAL_LOCK_RETRIES", int, 1, 50)
    if retries is not None:
        locks_update["max_retries"] = retries
    watchdog = _env_number("PORTAL_WATCHDOG_TIMEOUT", float, 0.001, None)
    if watchdog is not None:
        locks_update["watchdog_timeout"] = watchdog
    stale = _env_number("PORTAL_STALE_LOCK_SECONDS", float, 0.001, None)
    if stale is not None:
        locks_update["stale_after"] = stale

    config = base.model_copy(
        update={
            "stores": base.stores.model_copy(update=stores_update),
            "locks": base.locks.model_copy(update=locks_update),
        }
    )

    validate_config(config)
    logger.debug(
        "Resolved stores: primary=%s local=%s",
        config.stores.primary_root,
        config.stores.local_root,
    )
    return config
