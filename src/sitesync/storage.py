"""Storage directory resolution.

Turns a site's effective configuration into an absolute JSON directory:

1. Map ``storage_location`` to a base directory (site theme directory,
   site uploads directory, or the configured custom path).
2. Append ``json_subdir`` with a trailing separator.
3. Create the directory when missing and drop a deny-all ``.htaccess``
   into it (best effort; servers without Apache simply ignore it).
4. Report readability first, then writability.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from sitesync.config_schema import SiteConfig, StorageLocation
from sitesync.errors import (
    PathUnavailable,
    StorageNotFound,
    StoragePathNotConfigured,
)
from sitesync.sync.models import ResolvedStorageLocation, StorageStatus

if TYPE_CHECKING:
    from sitesync.host import HostPlatform

logger = logging.getLogger(__name__)

ACCESS_MARKER_NAME = ".htaccess"

ACCESS_MARKER_CONTENT = (
    "# Protect sitesync JSON files from direct web access\n"
    "Order allow,deny\n"
    "Deny from all\n"
    "\n"
    "<IfModule mod_authz_core.c>\n"
    "    Require all denied\n"
    "</IfModule>\n"
)


class StoragePathResolver:
    """Resolve and validate the JSON storage directory of a site.

    Args:
        host: Host platform providing per-site theme/uploads directories.
    """

    def __init__(self, host: HostPlatform) -> None:
        self.host = host

    def base_directory(self, site_id: str, config: SiteConfig) -> str | None:
        """Return the base directory for *config*, or ``None`` if unknown."""
        location = config.storage_location
        if location == StorageLocation.CHILD_THEME:
            return self.host.site(site_id).theme_directory()
        if location == StorageLocation.UPLOADS_FOLDER:
            return self.host.site(site_id).uploads_directory()
        if location == StorageLocation.CUSTOM_PATH:
            return config.custom_path.strip() or None
        return None

    def resolve_path(
        self, site_id: str, config: SiteConfig
    ) -> ResolvedStorageLocation:
        """Resolve the storage directory of *site_id*.

        Never raises; problems are reported through ``status``.
        """
        if config.storage_location is None:
            return ResolvedStorageLocation(
                status=StorageStatus.NOT_CONFIGURED,
                message="Storage location is not configured.",
            )

        base = self.base_directory(site_id, config)
        if not base:
            return ResolvedStorageLocation(
                status=StorageStatus.ERROR,
                message=(
                    "Could not determine storage path based on "
                    f"configuration ({config.storage_location.value})."
                ),
            )

        subdir = config.json_subdir.strip("/\\")
        path = os.path.join(str(Path(base)), subdir, "")
        logger.debug("Site %s resolved storage path: %s", site_id, path)

        created = False
        if not os.path.isdir(path):
            try:
                os.makedirs(path, mode=0o775, exist_ok=True)
            except OSError as exc:
                logger.warning(
                    "Could not create storage directory %s: %s", path, exc
                )
            if not os.path.isdir(path):
                return ResolvedStorageLocation(
                    path=path,
                    status=StorageStatus.NOT_FOUND,
                    message=(
                        "Configured storage path does not exist and could "
                        f"not be created: {path}"
                    ),
                )
            created = True
            write_access_marker(path)

        if not os.access(path, os.R_OK | os.X_OK):
            return ResolvedStorageLocation(
                path=path,
                status=StorageStatus.NOT_READABLE,
                message=f"Configured storage path is not readable: {path}",
                created=created,
            )

        if not os.access(path, os.W_OK):
            return ResolvedStorageLocation(
                path=path,
                status=StorageStatus.NOT_WRITABLE,
                message=(
                    f"Configured storage path is not writable: {path}. "
                    "Exporting may fail."
                ),
                readable=True,
                created=created,
            )

        message = f"Storage path configured and accessible: {path}"
        if created:
            message += " (directory was missing and has been created)"
        return ResolvedStorageLocation(
            path=path,
            status=StorageStatus.OK,
            message=message,
            readable=True,
            writable=True,
            created=created,
        )


def write_access_marker(directory: str) -> bool:
    """Write the deny-all marker into *directory* unless present.

    Returns ``True`` when the marker exists afterwards.  Failure is logged
    and otherwise ignored.
    """
    marker = Path(directory) / ACCESS_MARKER_NAME
    if marker.exists():
        return True
    try:
        marker.write_text(ACCESS_MARKER_CONTENT, encoding="utf-8")
    except OSError as exc:
        logger.debug("Could not write access marker %s: %s", marker, exc)
        return False
    return True


def require_directory(
    location: ResolvedStorageLocation, writable: bool = False
) -> Path:
    """Return the directory of *location* or raise the matching error.

    Raises:
        StoragePathNotConfigured: No location configured, or no base
            directory could be determined.
        StorageNotFound: The directory is missing or unreadable.
        PathUnavailable: *writable* was requested and the directory is
            read-only.
    """
    if location.path is None or location.status in (
        StorageStatus.NOT_CONFIGURED,
        StorageStatus.ERROR,
    ):
        raise StoragePathNotConfigured(location.message)
    if location.status in (StorageStatus.NOT_FOUND, StorageStatus.NOT_READABLE):
        raise StorageNotFound(location.message, status=location.status.value)
    if writable and not location.writable:
        raise PathUnavailable(location.message, status=location.status.value)
    return Path(location.path)
