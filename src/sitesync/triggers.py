"""Save hook and scheduled sync runs.

``SyncDispatcher`` decides, per site and ``sync_mode``, which engine
operations a trigger performs:

=============  ===============================================
mode           scheduled run
=============  ===============================================
automatic      template export, forced template import, then
               settings export and import if settings sync is on
export_only    template export, settings export
import_only    forced template import, settings import
manual         nothing
=============  ===============================================

The save hook exports the saved template for ``automatic`` and
``export_only`` sites.  Trigger failures are logged and reported in the
returned step map, never raised.

Scheduled runs take a per-site guard option (``sitesync_cron_running``)
holding the start time; a second run within five minutes skips the site.
The guard is always released when the run ends.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from sitesync.config_schema import SyncMode, SyncNamespace
from sitesync.errors import SyncError
from sitesync.network_config import ConfigResolver
from sitesync.storage import StoragePathResolver
from sitesync.sync.models import TemplateExportSummary
from sitesync.sync.settings import SettingsSyncEngine
from sitesync.sync.templates import TemplateSyncEngine

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sitesync.host import HostPlatform

logger = logging.getLogger(__name__)

GUARD_OPTION = "sitesync_cron_running"
GUARD_TTL_SECONDS = 300

# Step outcome values other than an error code.
STEP_OK = "ok"
STEP_PARTIAL = "partial"

_SAVE_EXPORT_MODES = (SyncMode.AUTOMATIC, SyncMode.EXPORT_ONLY)
_IGNORED_STATUSES = ("auto-draft", "inherit")


class SyncDispatcher:
    """Run the engines in response to saves and scheduled ticks.

    Args:
        host: Host platform owning the sites.
        resolver: Resolves the effective configuration per site.
        namespace: Option prefix, template kind and marker names.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        host: HostPlatform,
        resolver: ConfigResolver,
        namespace: SyncNamespace | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.host = host
        self.resolver = resolver
        self.namespace = namespace or SyncNamespace()
        self.clock = clock
        storage = StoragePathResolver(host)
        self.settings = SettingsSyncEngine(host, resolver, storage, self.namespace)
        self.templates = TemplateSyncEngine(host, resolver, storage, self.namespace)

    # ------------------------------------------------------------------
    # Save hook
    # ------------------------------------------------------------------

    def on_document_saved(
        self, site_id: str, doc_id: int
    ) -> TemplateExportSummary | None:
        """Export the saved document if the site's mode allows it.

        Returns:
            The export summary, or ``None`` when nothing was exported.
        """
        site_id = str(site_id)
        config = self.resolver.resolve(site_id)
        if not config.enabled or config.sync_mode not in _SAVE_EXPORT_MODES:
            return None

        doc = self.host.site(site_id).get_document(doc_id)
        if doc is None or doc.kind != self.namespace.template_kind:
            return None
        if doc.status in _IGNORED_STATUSES:
            return None

        try:
            summary = self.templates.export(site_id, identities=[doc_id])
        except SyncError as exc:
            logger.error(
                "Export on save of template %s failed: %s",
                doc_id,
                exc,
                extra={"site": site_id},
            )
            return None
        for error in summary.errors:
            logger.error("Export on save: %s", error, extra={"site": site_id})
        return summary

    # ------------------------------------------------------------------
    # Scheduled runs
    # ------------------------------------------------------------------

    def run_tick(
        self, site_ids: Iterable[str] | None = None
    ) -> dict[str, dict[str, str]]:
        """Run ``run_site`` for every site (all known sites by default).

        Returns:
            Site id -> step outcomes, for sites that were run.
        """
        targets = list(site_ids) if site_ids is not None else self.host.list_sites()
        outcomes: dict[str, dict[str, str]] = {}
        for site_id in targets:
            steps = self.run_site(site_id)
            if steps is not None:
                outcomes[str(site_id)] = steps
        return outcomes

    def run_site(self, site_id: str) -> dict[str, str] | None:
        """Run the scheduled steps of one site.

        Returns:
            Step name -> ``"ok"`` or the error code, or ``None`` when the
            site was skipped (disabled, manual, or a run in progress).
        """
        site_id = str(site_id)
        config = self.resolver.resolve(site_id)
        if not config.enabled or config.sync_mode == SyncMode.MANUAL:
            logger.debug("Scheduled run skipped", extra={"site": site_id})
            return None

        site = self.host.site(site_id)
        now = self.clock()
        started = site.get_option(GUARD_OPTION)
        if isinstance(started, (int, float)) and now - started < GUARD_TTL_SECONDS:
            logger.warning(
                "Scheduled run already in progress since %s; skipped",
                started,
                extra={"site": site_id},
            )
            return None

        site.set_option(GUARD_OPTION, now)
        try:
            return self._run_steps(
                site_id, config.sync_mode, config.settings_sync_enabled
            )
        finally:
            site.delete_option(GUARD_OPTION)

    def _run_steps(
        self, site_id: str, mode: SyncMode, settings_enabled: bool
    ) -> dict[str, str]:
        steps: list[tuple[str, Callable[[], object]]] = []
        exports = mode in (SyncMode.AUTOMATIC, SyncMode.EXPORT_ONLY)
        imports = mode in (SyncMode.AUTOMATIC, SyncMode.IMPORT_ONLY)

        if exports:
            steps.append(("templates_export", lambda: self.templates.export(site_id)))
        if imports:
            steps.append(
                ("templates_import", lambda: self.templates.import_(site_id, force=True))
            )
        if settings_enabled and exports:
            steps.append(("settings_export", lambda: self.settings.export(site_id)))
        if settings_enabled and imports:
            steps.append(("settings_import", lambda: self.settings.import_(site_id)))

        outcomes: dict[str, str] = {}
        for name, step in steps:
            try:
                result = step()
            except SyncError as exc:
                logger.error(
                    "Scheduled %s failed: %s", name, exc, extra={"site": site_id}
                )
                outcomes[name] = exc.code
                continue
            errors = getattr(result, "errors", None) or []
            for error in errors:
                logger.error("Scheduled %s: %s", name, error, extra={"site": site_id})
            outcomes[name] = STEP_PARTIAL if errors else STEP_OK
        return outcomes
