"""Pydantic models for the sync engines.

Defines the data contracts shared by the sync modules:

- ``StorageStatus`` / ``ResolvedStorageLocation``: outcome of path
  resolution.
- ``ContentDocument``: a host document (template) as the engines see it.
- ``Fingerprint`` / ``ImportRecordEntry``: change detection baseline and
  the filename -> identity link persisted between imports.
- ``MatchRule`` / ``ImportAction`` / ``FileImportResult``: per-file
  outcome of a template import.
- ``TemplateExportSummary``, ``TemplateImportSummary``,
  ``SettingsImportSummary``: aggregate results returned to callers.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class StorageStatus(str, Enum):
    """Status of a resolved storage directory."""

    OK = "ok"
    NOT_CONFIGURED = "not_configured"
    NOT_FOUND = "not_found"
    NOT_READABLE = "not_readable"
    NOT_WRITABLE = "not_writable"
    ERROR = "error"


class ResolvedStorageLocation(BaseModel):
    """Absolute storage directory for one site plus its access status.

    Attributes:
        path: Absolute directory path with trailing separator, or ``None``
            when no base directory could be determined.
        status: Overall status; ``OK`` implies readable and writable.
        message: Human-readable description of the status.
        readable: Whether the directory can be read.
        writable: Whether the directory can be written.
        created: Whether this resolution created the directory.
    """

    path: str | None = None
    status: StorageStatus
    message: str = ""
    readable: bool = False
    writable: bool = False
    created: bool = False

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return self.status == StorageStatus.OK


class ContentDocument(BaseModel):
    """A template document held by the host content store.

    ``identity`` is assigned by the host and differs between environments;
    ``None`` means the document has not been stored yet.
    """

    identity: int | None = None
    slug: str = ""
    title: str = ""
    body: str = ""
    status: str = "publish"
    kind: str = "bricks_template"
    fields: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class Fingerprint(BaseModel):
    """Modification time (whole seconds) and content hash of a file."""

    mtime: int
    hash: str

    model_config = {"frozen": True}


class ImportRecordEntry(BaseModel):
    """Link between a template filename and the document it was imported as.

    Attributes:
        filename: Basename of the imported file.
        source_identity: Document identity recorded inside the file (the
            identity on the exporting environment), if any.
        target_identity: Identity of the document in this environment.
        fingerprint: File fingerprint at the time of import.
        last_imported: ISO 8601 timestamp of the import.
    """

    filename: str
    source_identity: int | None = None
    target_identity: int
    fingerprint: Fingerprint
    last_imported: str

    model_config = {"frozen": True}


class MatchRule(str, Enum):
    """Which reconciliation rule picked the target document."""

    PRIOR_IDENTITY = "prior_identity"
    IMPORT_MARKER = "import_marker"
    SLUG = "slug"
    CREATED = "created"


class ImportAction(str, Enum):
    """Outcome of importing one template file."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


class FileImportResult(BaseModel):
    """Result of importing a single template file."""

    filename: str
    action: ImportAction
    identity: int | None = None
    matched_by: MatchRule | None = None
    error: str | None = None

    model_config = {"frozen": True}


class TemplateExportSummary(BaseModel):
    """Aggregate result of a template export batch.

    Attributes:
        target_dir: Directory the files were written to.
        exported: Paths of the files written.
        skipped: Identities skipped (missing document or empty slug).
        errors: Per-document error messages.
    """

    target_dir: str
    exported: list[str] = Field(default_factory=list)
    skipped: list[int] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def exported_count(self) -> int:
        return len(self.exported)


class TemplateImportSummary(BaseModel):
    """Aggregate result of a template import batch."""

    source_dir: str
    results: list[FileImportResult] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def imported(self) -> list[FileImportResult]:
        """Results where a document was created or updated."""
        return [
            r
            for r in self.results
            if r.action in (ImportAction.CREATED, ImportAction.UPDATED)
        ]

    @property
    def skipped(self) -> list[FileImportResult]:
        """Results where the file was unchanged since its last import."""
        return [r for r in self.results if r.action == ImportAction.SKIPPED]

    @property
    def failed(self) -> list[FileImportResult]:
        return [r for r in self.results if r.action == ImportAction.FAILED]

    @property
    def imported_count(self) -> int:
        return len(self.imported)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def errors(self) -> list[str]:
        return [f"{r.filename}: {r.error}" for r in self.failed]


class SettingsImportSummary(BaseModel):
    """Aggregate result of a settings import.

    Attributes:
        source_file: File the settings were read from.
        imported: Keys whose value was written.
        unchanged: Keys whose stored value already matched.
        failed: Keys the host refused to store.
    """

    source_file: str
    imported: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def imported_count(self) -> int:
        return len(self.imported)

    @property
    def unchanged_count(self) -> int:
        return len(self.unchanged)

    @property
    def failed_count(self) -> int:
        return len(self.failed)
