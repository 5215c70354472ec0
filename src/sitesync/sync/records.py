"""Import record persistence.

The import record maps each template filename to the document it was last
imported as, together with the file fingerprint at that time.  It lives in
a single host option of the site (``sitesync_template_import_record``).

Key design choices:

* **Read once, write once** -- the option is read when the store is
  created; ``put()`` only mutates the in-memory copy and ``flush()``
  writes all accumulated changes in one ``set_option`` call at the end of
  an import batch.
* **Last writer wins** -- there is no locking; a concurrent batch that
  flushes later overwrites this one's entries.
* **Legacy entries** -- entries written with ``old_id`` / ``new_id`` /
  ``mtime`` / ``hash`` keys are read transparently.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from sitesync.sync.models import Fingerprint, ImportRecordEntry

if TYPE_CHECKING:
    from sitesync.host import SiteStore

logger = logging.getLogger(__name__)

RECORD_OPTION = "sitesync_template_import_record"


def _parse_entry(filename: str, raw: Any) -> ImportRecordEntry | None:
    """Build an entry from its stored dict, or ``None`` if unusable."""
    if not isinstance(raw, dict):
        return None
    if "target_identity" in raw:
        try:
            return ImportRecordEntry.model_validate({**raw, "filename": filename})
        except ValidationError as exc:
            logger.warning("Discarding malformed import record %s: %s", filename, exc)
            return None

    # Legacy layout
    new_id = raw.get("new_id")
    if new_id in (None, "", 0) or "hash" not in raw:
        return None
    last = raw.get("last_imported")
    if isinstance(last, (int, float)):
        last = datetime.fromtimestamp(last, tz=timezone.utc).isoformat()
    try:
        return ImportRecordEntry(
            filename=filename,
            source_identity=int(raw["old_id"]) if raw.get("old_id") else None,
            target_identity=int(new_id),
            fingerprint=Fingerprint(
                mtime=int(raw.get("mtime") or 0), hash=str(raw["hash"])
            ),
            last_imported=str(last or ""),
        )
    except (TypeError, ValueError) as exc:
        logger.warning("Discarding legacy import record %s: %s", filename, exc)
        return None


class ImportRecordStore:
    """Filename -> ``ImportRecordEntry`` map backed by a site option.

    Args:
        site: Store of the site whose record is managed.
        option_key: Option holding the record.
    """

    def __init__(self, site: SiteStore, option_key: str = RECORD_OPTION) -> None:
        self._site = site
        self._option_key = option_key
        self._entries: dict[str, ImportRecordEntry] = {}
        self._dirty = False
        self._load()

    def _load(self) -> None:
        raw = self._site.get_option(self._option_key, {})
        if not isinstance(raw, dict):
            logger.warning(
                "Import record option %s is not a mapping; starting empty",
                self._option_key,
            )
            return
        for filename, value in raw.items():
            entry = _parse_entry(filename, value)
            if entry is not None:
                self._entries[filename] = entry
        logger.debug("Loaded %d import record entries", len(self._entries))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, filename: str) -> ImportRecordEntry | None:
        """Return the entry for *filename*, or ``None`` if absent."""
        return self._entries.get(filename)

    def get_all(self) -> dict[str, ImportRecordEntry]:
        return dict(self._entries)

    def find_by_source_identity(self, identity: int) -> list[ImportRecordEntry]:
        """Return entries (sorted by filename) whose source identity matches."""
        return [
            entry
            for _, entry in sorted(self._entries.items())
            if entry.source_identity is not None
            and entry.source_identity == identity
        ]

    @property
    def dirty(self) -> bool:
        """``True`` when ``put()`` was called since the last flush."""
        return self._dirty

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def put(self, filename: str, entry: ImportRecordEntry) -> None:
        """Upsert *entry* under *filename* (in memory until ``flush()``)."""
        self._entries[filename] = entry
        self._dirty = True

    def flush(self) -> bool:
        """Write all entries back to the site option if anything changed.

        Returns:
            ``True`` if a write was performed.
        """
        if not self._dirty:
            return False
        payload = {
            name: entry.model_dump(mode="json", exclude={"filename"})
            for name, entry in sorted(self._entries.items())
        }
        if not self._site.set_option(self._option_key, payload):
            logger.error("Host refused to store import record %s", self._option_key)
            return False
        self._dirty = False
        logger.debug("Flushed %d import record entries", len(payload))
        return True
