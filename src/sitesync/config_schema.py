"""Unified configuration schema for sitesync.

Defines Pydantic models for the unified config structure: the per-site
sync ``SiteConfig`` value type, the network hierarchy (global default,
groups, site overrides), the synchronized namespace, the local host store
and logging.

Usage:
    from sitesync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    network = unified.network
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class StorageLocation(str, Enum):
    """Where a site's JSON directory lives."""

    CHILD_THEME = "child_theme"
    UPLOADS_FOLDER = "uploads_folder"
    CUSTOM_PATH = "custom_path"


class SyncMode(str, Enum):
    """Which directions scheduled runs and save hooks may sync."""

    AUTOMATIC = "automatic"
    EXPORT_ONLY = "export_only"
    IMPORT_ONLY = "import_only"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


def _split_keys(value: object) -> object:
    """Accept newline-delimited text as well as a list of keys."""
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(v).strip() for v in value if str(v).strip()]
    return value


class SiteConfig(BaseModel):
    """Sync configuration for one site, group, or the global default.

    The value is replaced as a whole when a more specific level defines
    one; fields are never merged across levels.

    Attributes:
        storage_location: Base directory kind, or ``None`` when unset.
        custom_path: Base directory used for ``custom_path``.
        json_subdir: Subdirectory appended to the base directory.
        settings_filename: Name of the settings snapshot file.
        template_filename_pattern: Pattern with ``{slug}``, ``{id}``,
            ``{title}`` tokens.
        excluded_keys: Option names / field keys never synced.
        sync_mode: Direction used by save hooks and scheduled runs.
        settings_sync_enabled: Whether scheduled runs include settings.
        enabled: Whether the site takes part in sync at all.
    """

    storage_location: StorageLocation | None = StorageLocation.CHILD_THEME
    custom_path: str = ""
    json_subdir: str = "sitesync-json"
    settings_filename: str = "bricks-builder-settings.json"
    template_filename_pattern: str = "template-{slug}.json"
    excluded_keys: frozenset[str] = Field(
        default_factory=lambda: frozenset({"bricks_license_key"})
    )
    sync_mode: SyncMode = SyncMode.AUTOMATIC
    settings_sync_enabled: bool = True
    enabled: bool = True

    model_config = {"frozen": True}

    @field_validator("excluded_keys", mode="before")
    @classmethod
    def _parse_excluded_keys(cls, value: object) -> object:
        return _split_keys(value)

    @field_validator("json_subdir", mode="before")
    @classmethod
    def _default_subdir(cls, value: object) -> object:
        # Blank subdir falls back to the default name.
        if value is None or (isinstance(value, str) and not value.strip()):
            return "sitesync-json"
        return value.strip() if isinstance(value, str) else value

    @field_validator("storage_location", mode="before")
    @classmethod
    def _blank_location(cls, value: object) -> object:
        if value == "":
            return None
        # Older configs stored the custom path under ``custom_url``.
        if value == "custom_url":
            return StorageLocation.CUSTOM_PATH
        return value


class GroupConfig(BaseModel):
    """A named set of sites sharing one configuration."""

    name: str = ""
    sites: list[str] = Field(default_factory=list)
    config: SiteConfig = Field(default_factory=SiteConfig)

    model_config = {"frozen": True}

    @field_validator("sites", mode="before")
    @classmethod
    def _sites_as_strings(cls, value: object) -> object:
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value]
        return value


class NetworkConfig(BaseModel):
    """Global default, groups and per-site overrides.

    Attributes:
        global_config: Configuration used when nothing more specific
            applies. Always present.
        groups: Group key -> group definition.
        site_overrides: Site id -> configuration replacing everything else.
    """

    global_config: SiteConfig = Field(
        default_factory=SiteConfig, alias="global"
    )
    groups: dict[str, GroupConfig] = Field(default_factory=dict)
    site_overrides: dict[str, SiteConfig] = Field(default_factory=dict)

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("site_overrides", mode="before")
    @classmethod
    def _site_keys_as_strings(cls, value: object) -> object:
        if isinstance(value, dict):
            return {str(k): v for k, v in value.items()}
        return value


class SyncNamespace(BaseModel):
    """Names that mark host data as belonging to the synced subsystem.

    Attributes:
        option_prefix: Settings keys must start with this prefix.
        template_kind: Document kind exported and imported as templates.
        import_marker_field: Field holding the back-reference filename.
        template_type_field: Field shown as the template type in listings.
    """

    option_prefix: str = "bricks_"
    template_kind: str = "bricks_template"
    import_marker_field: str = "_sitesync_import_file"
    template_type_field: str = "_bricks_template_type"

    model_config = {"frozen": True}


class StoreConfig(BaseModel):
    """Local JSON host store used by the CLI."""

    path: str = ".sitesync/store.json"
    theme_root: str | None = Field(
        default=None, description="Directory containing per-site theme dirs"
    )
    uploads_root: str | None = Field(
        default=None, description="Directory containing per-site uploads"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL);
            unset means the default of the run mode.
        file: Optional log file path.
    """

    level: str | None = Field(default=None, description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    network: NetworkConfig = Field(default_factory=NetworkConfig)
    namespace: SyncNamespace = Field(default_factory=SyncNamespace)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    unknown = set(raw_data) - set(UnifiedConfig.model_fields)
    if unknown:
        logger.warning(
            "Ignoring unknown config sections: %s",
            ", ".join(sorted(unknown)),
        )
    known = {k: v for k, v in raw_data.items() if k not in unknown}
    return UnifiedConfig(**known)
