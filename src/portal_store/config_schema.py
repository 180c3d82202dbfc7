"""Unified configuration schema for portal_store.

Defines Pydantic models for the config structure with dedicated sections
for the two store roots, catalog layout, sync behaviour, lock tuning and
logging.

Usage:
    from portal_store.config_loader import load_hierarchical_config
    from portal_store.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class StoresConfig(BaseModel):
    """Locations of the primary (shared) and local (per-machine) stores.

    ``primary_root`` has no default: env vars and CLI args can supply it at
    runtime instead, and ``validate_config()`` rejects a config without one.
    """

    primary_root: str | None = Field(
        default=None, description="Root of the authoritative shared store"
    )
    local_root: str = Field(
        default="data", description="Root of the per-machine fallback store"
    )

    model_config = {"frozen": True}


class CatalogConfig(BaseModel):
    """Where the catalog ledger and per-item detail documents live.

    All paths are relative to ``SyncConfig.shared_dir`` and identical on
    both stores.
    """

    ledger_file: str = Field(
        default="materials.csv", description="Catalog ledger file name"
    )
    items_dir: str = Field(
        default="materials",
        description="Directory holding one sub-directory per catalog item",
    )
    detail_document: str = Field(
        default="metadata.json",
        description="Detail document file name inside each item directory",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Primary-to-local tree sync settings."""

    shared_dir: str = Field(
        default="shared",
        description="Subtree replicated from primary to local",
    )
    ledger_files: list[str] = Field(
        default_factory=lambda: ["materials.csv", "categories.csv"],
        description="Ledger files under shared_dir compared by mtime",
    )
    sync_log: str = Field(
        default="logs/sync.log",
        description="Local file that records one line per completed sync",
    )

    model_config = {"frozen": True}


class LocksConfig(BaseModel):
    """In-process serializer and cross-process file lock tuning."""

    max_retries: int = Field(
        default=5, ge=1, le=50, description="Attempts per serialized operation"
    )
    retry_delay: float = Field(
        default=0.1,
        gt=0,
        description="Base backoff in seconds, doubled after each attempt",
    )
    watchdog_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds before a stuck key is evicted",
    )
    file_lock_retries: int = Field(
        default=3, ge=1, le=100, description="Attempts to create a lock marker"
    )
    stale_after: float | None = Field(
        default=None,
        gt=0,
        description="Age in seconds after which a lock marker is reclaimed "
        "(unset disables reclaiming)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid as a
    model; only ``validate_config()`` insists on a primary root.
    """

    stores: StoresConfig = Field(default_factory=StoresConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    locks: LocksConfig = Field(default_factory=LocksConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
