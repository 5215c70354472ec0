"""Per-site configuration resolution.

Resolution order: site override > group > global default.  The winning
level supplies the *whole* ``SiteConfig``; values are never merged
field-by-field across levels.

A site listed by several groups gets the group with the lowest key
(lexicographic), so the result does not depend on mapping order.
"""

from __future__ import annotations

import logging
from enum import Enum

from sitesync.config_schema import GroupConfig, NetworkConfig, SiteConfig

logger = logging.getLogger(__name__)


class ConfigSource(str, Enum):
    """Level of the hierarchy that supplied an effective configuration."""

    SITE = "site"
    GROUP = "group"
    GLOBAL = "global"


class ConfigResolver:
    """Resolve the effective ``SiteConfig`` of a site.

    Args:
        network: Global default, groups and site overrides.
    """

    def __init__(self, network: NetworkConfig | None = None) -> None:
        self.network = network or NetworkConfig()

    def resolve(self, site_id: str) -> SiteConfig:
        """Return the configuration governing *site_id*."""
        return self.resolve_with_source(site_id)[0]

    def resolve_with_source(
        self, site_id: str
    ) -> tuple[SiteConfig, ConfigSource]:
        """Return the effective configuration and the level it came from."""
        site_id = str(site_id)

        override = self.network.site_overrides.get(site_id)
        if override is not None:
            return override, ConfigSource.SITE

        group_key = self.group_for(site_id)
        if group_key is not None:
            return self.network.groups[group_key].config, ConfigSource.GROUP

        return self.network.global_config, ConfigSource.GLOBAL

    def group_for(self, site_id: str) -> str | None:
        """Return the key of the group *site_id* belongs to, if any."""
        site_id = str(site_id)
        matches = sorted(
            key
            for key, group in self.network.groups.items()
            if site_id in group.sites
        )
        if len(matches) > 1:
            logger.warning(
                "Site %s belongs to groups %s; using %s",
                site_id,
                ", ".join(matches),
                matches[0],
            )
        return matches[0] if matches else None

    # ------------------------------------------------------------------
    # Override management
    # ------------------------------------------------------------------

    def set_site_override(
        self, site_id: str, config: SiteConfig
    ) -> NetworkConfig:
        """Replace the override of *site_id* and return the new network config."""
        overrides = dict(self.network.site_overrides)
        overrides[str(site_id)] = config
        self.network = self.network.model_copy(
            update={"site_overrides": overrides}
        )
        logger.info("Site override set for site %s", site_id)
        return self.network

    def clear_site_override(self, site_id: str) -> NetworkConfig:
        """Remove the override of *site_id* (no-op if absent)."""
        overrides = dict(self.network.site_overrides)
        if overrides.pop(str(site_id), None) is not None:
            logger.info("Site override cleared for site %s", site_id)
        self.network = self.network.model_copy(
            update={"site_overrides": overrides}
        )
        return self.network

    def set_group(self, key: str, group: GroupConfig) -> NetworkConfig:
        """Create or replace the group stored under *key*."""
        groups = dict(self.network.groups)
        groups[key] = group
        self.network = self.network.model_copy(update={"groups": groups})
        return self.network
