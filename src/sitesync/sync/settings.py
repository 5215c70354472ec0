"""Settings snapshot export and import.

A settings snapshot is one JSON object mapping every host option in the
synchronized namespace (``SyncNamespace.option_prefix``) to its value.
Keys listed in the site's ``excluded_keys``, or passed by the caller, are
never written to the file and never applied from it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from sitesync.config_schema import SyncNamespace
from sitesync.errors import (
    FileNotFound,
    JsonEncodeFailed,
    NoSettingsFound,
    PartialImportFailure,
    WriteFailed,
)
from sitesync.file_handler import dump_json, read_json_object, write_file
from sitesync.network_config import ConfigResolver
from sitesync.storage import StoragePathResolver, require_directory
from sitesync.sync.models import SettingsImportSummary

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sitesync.host import HostPlatform

logger = logging.getLogger(__name__)

_MISSING = object()


class SettingsSyncEngine:
    """Export and import the settings snapshot of a site.

    Args:
        host: Host platform owning the sites.
        resolver: Resolves the effective configuration per site.
        storage: Storage directory resolver; built from *host* if omitted.
        namespace: Option prefix and related names.
    """

    def __init__(
        self,
        host: HostPlatform,
        resolver: ConfigResolver,
        storage: StoragePathResolver | None = None,
        namespace: SyncNamespace | None = None,
    ) -> None:
        self.host = host
        self.resolver = resolver
        self.storage = storage or StoragePathResolver(host)
        self.namespace = namespace or SyncNamespace()

    def _exclusions(
        self, site_id: str, exclude: Iterable[str] | None
    ) -> set[str]:
        config = self.resolver.resolve(site_id)
        return set(config.excluded_keys) | {k for k in exclude or () if k}

    def default_path(self, site_id: str, writable: bool = False) -> Path:
        """Return ``<storage dir>/<settings_filename>`` for *site_id*."""
        config = self.resolver.resolve(site_id)
        location = self.storage.resolve_path(site_id, config)
        directory = require_directory(location, writable=writable)
        return directory / config.settings_filename

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(
        self,
        site_id: str,
        target_file: str | Path | None = None,
        exclude: Iterable[str] | None = None,
    ) -> Path:
        """Write the settings snapshot of *site_id* and return its path.

        An existing file is always overwritten.

        Raises:
            StoragePathNotConfigured: No target file and no storage path.
            NoSettingsFound: No exportable option exists.
            JsonEncodeFailed: A value cannot be represented as JSON.
            WriteFailed: The file could not be written.
        """
        site_id = str(site_id)
        if target_file is not None:
            target = Path(target_file)
        else:
            target = self.default_path(site_id, writable=True)

        excluded = self._exclusions(site_id, exclude)
        site = self.host.site(site_id)

        snapshot: dict[str, object] = {}
        for key in site.list_options(self.namespace.option_prefix):
            if key in excluded:
                logger.debug("Site %s: excluding setting %s", site_id, key)
                continue
            snapshot[key] = site.get_option(key)

        if not snapshot:
            raise NoSettingsFound(
                f"No settings with prefix {self.namespace.option_prefix!r} "
                f"found for site {site_id}"
            )

        try:
            content = dump_json(snapshot)
        except (TypeError, ValueError) as exc:
            raise JsonEncodeFailed(f"Failed to encode settings: {exc}") from exc

        try:
            write_file(target, content)
        except OSError as exc:
            raise WriteFailed(
                f"Failed to write settings file {target}: {exc}"
            ) from exc

        logger.info(
            "Site %s: exported %d settings to %s", site_id, len(snapshot), target
        )
        return target

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_(
        self,
        site_id: str,
        source_file: str | Path | None = None,
        exclude: Iterable[str] | None = None,
    ) -> SettingsImportSummary:
        """Apply a settings snapshot to *site_id*.

        Every key is attempted; keys whose stored value already equals the
        file's value are counted as unchanged and not written.

        Raises:
            StoragePathNotConfigured: No source file and no storage path.
            StorageNotFound: The storage directory is missing or unreadable.
            FileNotFound: The settings file is missing or unreadable.
            InvalidJson: The file is not a JSON object.
            PartialImportFailure: The host refused at least one key; the
                exception carries the full summary.
        """
        site_id = str(site_id)
        if source_file is not None:
            source = Path(source_file)
        else:
            source = self.default_path(site_id)

        if not source.is_file():
            raise FileNotFound(
                f"Settings file not found: {source}", path=str(source)
            )
        try:
            data = read_json_object(source)
        except OSError as exc:
            raise FileNotFound(
                f"Settings file could not be read: {source}: {exc}",
                path=str(source),
            ) from exc

        excluded = self._exclusions(site_id, exclude)
        prefix = self.namespace.option_prefix
        site = self.host.site(site_id)

        imported: list[str] = []
        unchanged: list[str] = []
        failed: list[str] = []
        for key in sorted(data):
            if key in excluded:
                logger.debug("Site %s: skipping excluded setting %s", site_id, key)
                continue
            if not key.startswith(prefix):
                logger.warning(
                    "Site %s: ignoring setting %s outside prefix %r",
                    site_id,
                    key,
                    prefix,
                )
                continue

            value = data[key]
            if _same_value(site.get_option(key, _MISSING), value):
                unchanged.append(key)
                continue
            try:
                stored = site.set_option(key, value)
            except Exception:
                logger.exception("Site %s: storing setting %s failed", site_id, key)
                failed.append(key)
                continue
            if stored:
                imported.append(key)
            else:
                logger.error("Site %s: host refused setting %s", site_id, key)
                failed.append(key)

        summary = SettingsImportSummary(
            source_file=str(source),
            imported=imported,
            unchanged=unchanged,
            failed=failed,
        )
        logger.info(
            "Site %s: settings import from %s: %d imported, %d unchanged, "
            "%d failed",
            site_id,
            source,
            summary.imported_count,
            summary.unchanged_count,
            summary.failed_count,
        )
        if failed:
            raise PartialImportFailure(
                f"{len(failed)} setting(s) could not be saved: "
                + ", ".join(failed),
                summary,
            )
        return summary


def _same_value(current: object, new: object) -> bool:
    """Compare a stored option with a decoded JSON value."""
    if current is _MISSING:
        return False
    # Compare encodings so that True and 1 differ while tuples equal lists.
    try:
        return json.dumps(current, sort_keys=True) == json.dumps(
            new, sort_keys=True
        )
    except (TypeError, ValueError):
        return current == new
