"""Host content store adapters.

The engines never talk to a concrete CMS.  They consume the
``HostPlatform`` / ``SiteStore`` protocols below, always scoped to an
explicit site id via ``HostPlatform.site(site_id)``.

Two implementations ship with the package:

- ``InMemoryHost`` -- dict-backed store used by tests and embedders.
- ``JsonFileHost`` -- the same store persisted to one JSON file, written
  atomically after every mutation.  Used by the CLI.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Protocol

from sitesync.sync.models import ContentDocument

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class SiteStore(Protocol):
    """Documents, fields and options of one site."""

    def list_documents(
        self, kind: str | None, filter: dict[str, Any] | None = None
    ) -> list[ContentDocument]:
        """Return documents of *kind* (any kind when ``None``).

        *filter* may contain ``"slug"`` (exact match) and ``"fields"``
        (mapping of field key -> required value).
        """
        ...  # pragma: no cover

    def get_document(self, identity: int) -> ContentDocument | None:
        ...  # pragma: no cover

    def upsert_document(self, doc: ContentDocument) -> int:
        """Create or update core fields; the field map is left untouched.

        Creates a new document when ``doc.identity`` is ``None`` or does
        not exist.  Returns the stored identity.
        """
        ...  # pragma: no cover

    def get_field(self, identity: int, key: str) -> Any:
        ...  # pragma: no cover

    def set_field(self, identity: int, key: str, value: Any) -> None:
        ...  # pragma: no cover

    def list_options(self, prefix: str) -> list[str]:
        ...  # pragma: no cover

    def get_option(self, key: str, default: Any = None) -> Any:
        ...  # pragma: no cover

    def set_option(self, key: str, value: Any) -> bool:
        """Store an option.  Returns ``False`` when the host refused it."""
        ...  # pragma: no cover

    def delete_option(self, key: str) -> None:
        ...  # pragma: no cover

    def theme_directory(self) -> str | None:
        ...  # pragma: no cover

    def uploads_directory(self) -> str | None:
        ...  # pragma: no cover


class HostPlatform(Protocol):
    """Multi-site host owning one ``SiteStore`` per site id."""

    def site(self, site_id: str) -> SiteStore:
        ...  # pragma: no cover

    def list_sites(self) -> list[str]:
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


def _empty_site_data() -> dict[str, Any]:
    return {"documents": {}, "options": {}}


class InMemorySite:
    """Dict-backed ``SiteStore``.

    Args:
        data: Mutable site data (``documents`` and ``options``).
        next_id: Callable handing out new document identities.
        theme_dir: Theme directory reported to path resolution.
        uploads_dir: Uploads directory reported to path resolution.
        on_change: Called after every mutation.
    """

    def __init__(
        self,
        data: dict[str, Any],
        next_id: Callable[[], int],
        theme_dir: str | None = None,
        uploads_dir: str | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._data = data
        self._next_id = next_id
        self._theme_dir = theme_dir
        self._uploads_dir = uploads_dir
        self._on_change = on_change
        self.writes = 0

    # -- documents ------------------------------------------------------

    def _docs(self) -> dict[str, dict[str, Any]]:
        return self._data.setdefault("documents", {})

    def _to_document(self, raw: dict[str, Any]) -> ContentDocument:
        return ContentDocument(
            identity=raw["identity"],
            slug=raw.get("slug", ""),
            title=raw.get("title", ""),
            body=raw.get("body", ""),
            status=raw.get("status", "publish"),
            kind=raw.get("kind", ""),
            fields=copy.deepcopy(raw.get("fields", {})),
        )

    def list_documents(
        self, kind: str | None, filter: dict[str, Any] | None = None
    ) -> list[ContentDocument]:
        criteria = filter or {}
        slug = criteria.get("slug")
        required_fields: dict[str, Any] = criteria.get("fields") or {}
        out: list[ContentDocument] = []
        for raw in sorted(self._docs().values(), key=lambda d: d["identity"]):
            if kind is not None and raw.get("kind") != kind:
                continue
            if slug is not None and raw.get("slug") != slug:
                continue
            fields = raw.get("fields", {})
            if any(fields.get(k) != v for k, v in required_fields.items()):
                continue
            out.append(self._to_document(raw))
        return out

    def get_document(self, identity: int) -> ContentDocument | None:
        raw = self._docs().get(str(identity))
        return self._to_document(raw) if raw is not None else None

    def upsert_document(self, doc: ContentDocument) -> int:
        docs = self._docs()
        raw = docs.get(str(doc.identity)) if doc.identity is not None else None
        if raw is None:
            identity = self._next_id()
            raw = {"identity": identity, "fields": dict(doc.fields)}
            docs[str(identity)] = raw
        raw.update(
            slug=doc.slug,
            title=doc.title,
            body=doc.body,
            status=doc.status,
            kind=doc.kind,
        )
        self._changed()
        return raw["identity"]

    def delete_document(self, identity: int) -> None:
        if self._docs().pop(str(identity), None) is not None:
            self._changed()

    def get_field(self, identity: int, key: str) -> Any:
        raw = self._docs().get(str(identity))
        if raw is None:
            return None
        return copy.deepcopy(raw.get("fields", {}).get(key))

    def set_field(self, identity: int, key: str, value: Any) -> None:
        raw = self._docs().get(str(identity))
        if raw is None:
            raise KeyError(f"Document {identity} does not exist")
        raw.setdefault("fields", {})[key] = copy.deepcopy(value)
        self._changed()

    # -- options --------------------------------------------------------

    def _options(self) -> dict[str, Any]:
        return self._data.setdefault("options", {})

    def list_options(self, prefix: str) -> list[str]:
        return sorted(k for k in self._options() if k.startswith(prefix))

    def get_option(self, key: str, default: Any = None) -> Any:
        if key not in self._options():
            return default
        return copy.deepcopy(self._options()[key])

    def set_option(self, key: str, value: Any) -> bool:
        self._options()[key] = copy.deepcopy(value)
        self._changed()
        return True

    def delete_option(self, key: str) -> None:
        if self._options().pop(key, None) is not None:
            self._changed()

    # -- paths ----------------------------------------------------------

    def theme_directory(self) -> str | None:
        return self._theme_dir

    def uploads_directory(self) -> str | None:
        return self._uploads_dir

    def _changed(self) -> None:
        self.writes += 1
        if self._on_change is not None:
            self._on_change()


class InMemoryHost:
    """Dict-backed ``HostPlatform``.

    Args:
        theme_root: Per-site theme directories are ``theme_root/<site>``.
        uploads_root: Per-site uploads directories are
            ``uploads_root/<site>``.
    """

    def __init__(
        self,
        theme_root: str | Path | None = None,
        uploads_root: str | Path | None = None,
    ) -> None:
        self.theme_root = str(theme_root) if theme_root else None
        self.uploads_root = str(uploads_root) if uploads_root else None
        self._state: dict[str, Any] = {"next_id": 1, "sites": {}}
        self._sites: dict[str, InMemorySite] = {}

    def _allocate_id(self) -> int:
        identity = self._state["next_id"]
        self._state["next_id"] = identity + 1
        return identity

    def _site_dir(self, root: str | None, site_id: str) -> str | None:
        if not root:
            return None
        return str(Path(root) / site_id)

    def _on_change(self) -> None:
        """Hook for subclasses that persist the state."""

    def site(self, site_id: str) -> InMemorySite:
        site_id = str(site_id)
        if site_id not in self._sites:
            data = self._state["sites"].setdefault(site_id, _empty_site_data())
            self._sites[site_id] = InMemorySite(
                data,
                self._allocate_id,
                theme_dir=self._site_dir(self.theme_root, site_id),
                uploads_dir=self._site_dir(self.uploads_root, site_id),
                on_change=self._on_change,
            )
        return self._sites[site_id]

    def list_sites(self) -> list[str]:
        return sorted(self._state["sites"])


# ---------------------------------------------------------------------------
# JSON file implementation
# ---------------------------------------------------------------------------


class JsonFileHost(InMemoryHost):
    """``InMemoryHost`` persisted to a single JSON file.

    Key design choices:

    * **Atomic writes** -- ``save()`` writes to a temp file then calls
      ``os.replace()`` so readers never see partial data.
    * **Save per mutation** -- every store call that changes data is
      durable on return.
    """

    def __init__(
        self,
        path: Path,
        theme_root: str | Path | None = None,
        uploads_root: str | Path | None = None,
    ) -> None:
        super().__init__(theme_root=theme_root, uploads_root=uploads_root)
        self.path = path
        if path.exists():
            with open(path, encoding="utf-8") as fh:
                loaded = json.load(fh)
            self._state = {
                "next_id": int(loaded.get("next_id", 1)),
                "sites": loaded.get("sites", {}),
            }
            logger.debug(
                "Loaded host store %s (%d sites)",
                path,
                len(self._state["sites"]),
            )

    def _on_change(self) -> None:
        self.save()

    def save(self) -> None:
        """Persist the store to disk atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._state, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
