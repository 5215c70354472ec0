"""Settings and template synchronization engines.

Public API for moving a site's builder settings and template documents
between the host content store and JSON files on disk, so that they can
be versioned and carried between environments.

Architecture
------------
Document identities differ between environments.  Template import
therefore reconciles each file against the site with an ordered set of
rules (prior identity from the import record, import marker field, slug,
create) and records the outcome per filename together with the file
fingerprint, so unchanged files are skipped on the next run.

Modules:

- ``settings``    -- ``SettingsSyncEngine``: settings snapshot export/import.
- ``templates``   -- ``TemplateSyncEngine``: template export/import.
- ``records``     -- ``ImportRecordStore``: filename -> identity records.
- ``fingerprint`` -- ``ChangeDetector``: mtime + MD5 fingerprints.
- ``codec``       -- Field value encoding (``Scalar`` / ``Composite``).
- ``filenames``   -- Filename pattern expansion.
- ``models``      -- Result and record data contracts.
- ``reporter``    -- Human-readable and JSON summary formatting.

Usage example
-------------
::

    from sitesync.host import InMemoryHost
    from sitesync.network_config import ConfigResolver
    from sitesync.sync.templates import TemplateSyncEngine
    from sitesync.sync.reporter import format_import_report

    engine = TemplateSyncEngine(host, ConfigResolver(network))
    engine.export("1")
    summary = engine.import_("2", source_dir=export_dir)
    print(format_import_report(summary))
"""

from .fingerprint import ChangeDetector
from .models import (
    FileImportResult,
    ImportAction,
    ImportRecordEntry,
    MatchRule,
    SettingsImportSummary,
    TemplateExportSummary,
    TemplateImportSummary,
)
from .reporter import (
    format_export_report,
    format_import_report,
    format_settings_report,
    summary_to_json,
)

__all__ = [
    "ChangeDetector",
    "FileImportResult",
    "ImportAction",
    "ImportRecordEntry",
    "MatchRule",
    "SettingsImportSummary",
    "TemplateExportSummary",
    "TemplateImportSummary",
    "format_export_report",
    "format_import_report",
    "format_settings_report",
    "summary_to_json",
]
