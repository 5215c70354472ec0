"""Template export and import with identity reconciliation.

Document identities are assigned per environment, so an imported file
cannot simply be written back under the identity it carries.  Import
picks the target document with the first rule that applies:

a. **Prior identity** -- a record links the file's ``id`` (its identity on
   the exporting environment) to a document that still exists here.
b. **Import marker** -- a document's marker field equals the filename.
c. **Slug** -- a document of the same kind has the payload's slug.
d. **Create** -- nothing matched; a new document is stored.

Unchanged files (same fingerprint as at their last import) are skipped
unless the import is forced.  Records are read once and written back in
one call at the end of each batch.

Template files written by older exporters use ``ID`` / ``post_name`` /
``post_title`` / ``post_content`` / ``post_status`` / ``post_type``
instead of the current keys; both layouts are read.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sitesync.config_schema import SyncNamespace
from sitesync.errors import FileNotFound, InvalidJson, StorageNotFound, WriteFailed
from sitesync.file_handler import dump_json, read_json_object, write_file
from sitesync.network_config import ConfigResolver
from sitesync.storage import StoragePathResolver, require_directory
from sitesync.sync.codec import Composite, decode_field, encode_field
from sitesync.sync.filenames import build_filename
from sitesync.sync.fingerprint import ChangeDetector
from sitesync.sync.models import (
    ContentDocument,
    FileImportResult,
    ImportAction,
    ImportRecordEntry,
    MatchRule,
    TemplateExportSummary,
    TemplateImportSummary,
)
from sitesync.sync.records import RECORD_OPTION, ImportRecordStore

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sitesync.host import HostPlatform, SiteStore

logger = logging.getLogger(__name__)

# Current key -> key used by older exporters.
_LEGACY_KEYS = {
    "id": "ID",
    "slug": "post_name",
    "title": "post_title",
    "content": "post_content",
    "status": "post_status",
    "type": "post_type",
}


def _payload_value(data: dict[str, Any], key: str, default: Any = None) -> Any:
    if key in data:
        return data[key]
    return data.get(_LEGACY_KEYS.get(key, key), default)


def _source_identity(raw: Any) -> int | None:
    try:
        identity = int(raw)
    except (TypeError, ValueError):
        return None
    return identity if identity > 0 else None


class TemplateSyncEngine:
    """Export and import the template documents of a site.

    Args:
        host: Host platform owning the sites.
        resolver: Resolves the effective configuration per site.
        storage: Storage directory resolver; built from *host* if omitted.
        namespace: Template kind and marker field names.
        detector: Fingerprint calculator.
    """

    def __init__(
        self,
        host: HostPlatform,
        resolver: ConfigResolver,
        storage: StoragePathResolver | None = None,
        namespace: SyncNamespace | None = None,
        detector: ChangeDetector | None = None,
    ) -> None:
        self.host = host
        self.resolver = resolver
        self.storage = storage or StoragePathResolver(host)
        self.namespace = namespace or SyncNamespace()
        self.detector = detector or ChangeDetector()

    def _storage_dir(self, site_id: str, writable: bool = False) -> Path:
        config = self.resolver.resolve(site_id)
        location = self.storage.resolve_path(site_id, config)
        return require_directory(location, writable=writable)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_templates(self, site_id: str) -> list[dict[str, Any]]:
        """Return id, slug, title, status and template type per document."""
        site = self.host.site(str(site_id))
        return [
            {
                "id": doc.identity,
                "slug": doc.slug,
                "title": doc.title,
                "status": doc.status,
                "template_type": doc.fields.get(
                    self.namespace.template_type_field, ""
                ),
            }
            for doc in site.list_documents(self.namespace.template_kind)
        ]

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(
        self,
        site_id: str,
        identities: Iterable[int] | None = None,
        target_dir: str | Path | None = None,
        exclude: Iterable[str] | None = None,
    ) -> TemplateExportSummary:
        """Write one JSON file per template document.

        Args:
            site_id: Site to export from.
            identities: Documents to export; all templates when ``None``.
            target_dir: Output directory; the site's storage directory
                when ``None``.
            exclude: Top-level payload keys and field keys to leave out.

        Raises:
            StoragePathNotConfigured: No target dir and no storage path.
            StorageNotFound: The storage directory is unusable.
            PathUnavailable: The storage directory is read-only.
            WriteFailed: *target_dir* could not be created.
        """
        site_id = str(site_id)
        config = self.resolver.resolve(site_id)
        if target_dir is not None:
            directory = Path(target_dir)
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise WriteFailed(
                    f"Could not create export directory {directory}: {exc}"
                ) from exc
        else:
            directory = self._storage_dir(site_id, writable=True)

        site = self.host.site(site_id)
        excluded = set(config.excluded_keys) | {k for k in exclude or () if k}
        excluded.add(self.namespace.import_marker_field)

        skipped: list[int] = []
        documents: list[ContentDocument] = []
        if identities is None:
            documents = site.list_documents(self.namespace.template_kind)
        else:
            for identity in identities:
                doc = site.get_document(int(identity))
                if doc is None or doc.kind != self.namespace.template_kind:
                    logger.warning(
                        "Site %s: document %s is not a template; skipped",
                        site_id,
                        identity,
                    )
                    skipped.append(int(identity))
                    continue
                documents.append(doc)

        exported: list[str] = []
        errors: list[str] = []
        for doc in documents:
            if doc.identity is None:
                logger.warning(
                    "Site %s: template %r has no identity; skipped", site_id, doc.slug
                )
                continue
            if not doc.slug:
                logger.warning(
                    "Site %s: template %d has no slug; skipped",
                    site_id,
                    doc.identity,
                )
                skipped.append(doc.identity)
                continue

            filename = build_filename(
                config.template_filename_pattern, doc.slug, doc.identity, doc.title
            )
            if not filename or os.sep in filename or filename in (".", ".."):
                errors.append(
                    f"Template {doc.identity}: invalid filename {filename!r}"
                )
                continue

            try:
                payload = self._build_payload(doc, excluded)
                content = dump_json(payload)
            except (TypeError, ValueError) as exc:
                logger.error(
                    "Site %s: cannot encode template %d: %s",
                    site_id,
                    doc.identity,
                    exc,
                )
                errors.append(f"Template {doc.identity}: encoding failed: {exc}")
                continue

            target = directory / filename
            try:
                write_file(target, content)
            except OSError as exc:
                logger.error("Site %s: cannot write %s: %s", site_id, target, exc)
                errors.append(f"Template {doc.identity}: write failed: {exc}")
                continue
            exported.append(str(target))
            logger.debug(
                "Site %s: exported template %d to %s", site_id, doc.identity, target
            )

        summary = TemplateExportSummary(
            target_dir=str(directory),
            exported=exported,
            skipped=skipped,
            errors=errors,
        )
        logger.info(
            "Site %s: exported %d template(s) to %s (%d error(s))",
            site_id,
            summary.exported_count,
            directory,
            len(errors),
        )
        return summary

    def _build_payload(
        self, doc: ContentDocument, excluded: set[str]
    ) -> dict[str, Any]:
        meta: dict[str, str] = {}
        meta_encoding: dict[str, str] = {}
        for key, value in sorted(doc.fields.items()):
            if key in excluded:
                continue
            encoded = encode_field(value)
            if isinstance(encoded, Composite):
                meta[key] = encoded.data
                meta_encoding[key] = encoded.encoding
            else:
                meta[key] = encoded.value

        payload: dict[str, Any] = {
            "id": doc.identity,
            "slug": doc.slug,
            "title": doc.title,
            "content": doc.body,
            "status": doc.status,
            "type": doc.kind,
            "meta": meta,
            "meta_encoding": meta_encoding,
        }
        return {k: v for k, v in payload.items() if k not in excluded}

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_(
        self,
        site_id: str,
        source_dir: str | Path | None = None,
        single_file: str | None = None,
        identity_hint: int | None = None,
        exclude: Iterable[str] | None = None,
        force: bool = False,
    ) -> TemplateImportSummary:
        """Import template files into *site_id*.

        Args:
            site_id: Site to import into.
            source_dir: Directory to read; the storage directory when
                ``None``.
            single_file: Import only the file with this name.
            identity_hint: Import only files whose name contains it.
            exclude: Skip files whose name contains any of these tokens.
            force: Import files even when unchanged since their last
                import.

        Raises:
            StoragePathNotConfigured: No source dir and no storage path.
            StorageNotFound: The directory is missing or unreadable.
            FileNotFound: *single_file* is not in the directory.
        """
        site_id = str(site_id)
        config = self.resolver.resolve(site_id)
        if source_dir is not None:
            directory = Path(source_dir)
            if not directory.is_dir() or not os.access(directory, os.R_OK | os.X_OK):
                raise StorageNotFound(
                    f"Import directory does not exist or is not readable: {directory}"
                )
        else:
            directory = self._storage_dir(site_id)

        files = sorted(
            p
            for p in directory.glob("*.json")
            if p.is_file() and p.name != config.settings_filename
        )
        if single_file is not None:
            wanted = Path(single_file).name
            files = [p for p in files if p.name == wanted]
            if not files:
                raise FileNotFound(
                    f"Template file not found: {wanted}",
                    path=str(directory / wanted),
                )
        if identity_hint is not None:
            files = [p for p in files if str(identity_hint) in p.name]
        tokens = [t for t in exclude or () if t]
        if tokens:
            files = [p for p in files if not any(t in p.name for t in tokens)]

        site = self.host.site(site_id)
        records = ImportRecordStore(site, RECORD_OPTION)
        excluded_fields = set(config.excluded_keys)

        results: list[FileImportResult] = []
        for path in files:
            result = self._import_file(
                site_id, site, records, path, excluded_fields, force
            )
            results.append(result)

        records.flush()
        summary = TemplateImportSummary(source_dir=str(directory), results=results)
        logger.info(
            "Site %s: template import from %s: %d imported, %d skipped, "
            "%d failed",
            site_id,
            directory,
            summary.imported_count,
            summary.skipped_count,
            len(summary.failed),
        )
        return summary

    def _import_file(
        self,
        site_id: str,
        site: SiteStore,
        records: ImportRecordStore,
        path: Path,
        excluded_fields: set[str],
        force: bool,
    ) -> FileImportResult:
        """Import one file; errors are returned, never raised."""
        filename = path.name
        try:
            fingerprint = self.detector.fingerprint(path)
        except OSError as exc:
            return self._failed(site_id, filename, f"cannot read file: {exc}")

        previous = records.get(filename)
        baseline = previous.fingerprint if previous is not None else None
        if not force and not self.detector.differs(fingerprint, baseline):
            logger.debug("Site %s: %s unchanged; skipped", site_id, filename)
            return FileImportResult(
                filename=filename,
                action=ImportAction.SKIPPED,
                identity=previous.target_identity,
            )

        try:
            data = read_json_object(path)
        except InvalidJson as exc:
            return self._failed(site_id, filename, exc.message)
        except OSError as exc:
            return self._failed(site_id, filename, f"cannot read file: {exc}")

        slug = str(_payload_value(data, "slug") or "")
        if not slug:
            return self._failed(site_id, filename, "template has no slug")
        kind = str(_payload_value(data, "type") or self.namespace.template_kind)
        source_identity = _source_identity(_payload_value(data, "id"))

        target, rule = self._reconcile(
            site, records, filename, source_identity, slug, kind
        )

        meta = data.get("meta") or {}
        if not isinstance(meta, dict):
            return self._failed(site_id, filename, "meta is not an object")
        legacy = "meta_encoding" not in data
        encodings = data.get("meta_encoding") or {}
        if not isinstance(encodings, dict):
            encodings = {}

        doc = ContentDocument(
            identity=target,
            slug=slug,
            title=str(_payload_value(data, "title") or ""),
            body=str(_payload_value(data, "content") or ""),
            status=str(_payload_value(data, "status") or "publish"),
            kind=kind,
        )
        try:
            identity = site.upsert_document(doc)
            for key, raw in meta.items():
                if key in excluded_fields or key == self.namespace.import_marker_field:
                    continue
                site.set_field(
                    identity, key, decode_field(raw, encodings.get(key), legacy)
                )
            site.set_field(identity, self.namespace.import_marker_field, filename)
        except Exception as exc:
            logger.exception("Site %s: storing %s failed", site_id, filename)
            return self._failed(site_id, filename, f"host error: {exc}")

        records.put(
            filename,
            ImportRecordEntry(
                filename=filename,
                source_identity=source_identity,
                target_identity=identity,
                fingerprint=fingerprint,
                last_imported=datetime.now(timezone.utc).isoformat(),
            ),
        )
        action = ImportAction.CREATED if target is None else ImportAction.UPDATED
        logger.debug(
            "Site %s: %s %s as document %d (rule %s)",
            site_id,
            action.value,
            filename,
            identity,
            rule.value,
        )
        return FileImportResult(
            filename=filename, action=action, identity=identity, matched_by=rule
        )

    def _reconcile(
        self,
        site: SiteStore,
        records: ImportRecordStore,
        filename: str,
        source_identity: int | None,
        slug: str,
        kind: str,
    ) -> tuple[int | None, MatchRule]:
        """Pick the target document; ``None`` means create."""
        if source_identity is not None:
            # The file's own entry first, then other files with that identity.
            candidates = sorted(
                records.find_by_source_identity(source_identity),
                key=lambda e: (e.filename != filename, e.filename),
            )
            for entry in candidates:
                if site.get_document(entry.target_identity) is not None:
                    return entry.target_identity, MatchRule.PRIOR_IDENTITY

        marked = site.list_documents(
            kind, {"fields": {self.namespace.import_marker_field: filename}}
        )
        if marked:
            return marked[0].identity, MatchRule.IMPORT_MARKER

        by_slug = site.list_documents(kind, {"slug": slug})
        if by_slug:
            return by_slug[0].identity, MatchRule.SLUG

        return None, MatchRule.CREATED

    def _failed(self, site_id: str, filename: str, error: str) -> FileImportResult:
        logger.error("Site %s: import of %s failed: %s", site_id, filename, error)
        return FileImportResult(
            filename=filename, action=ImportAction.FAILED, error=error
        )
