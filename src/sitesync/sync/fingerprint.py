"""File change detection.

A fingerprint is the file's modification time in whole seconds plus an
MD5 digest of its bytes.  MD5 is only used to notice accidental changes,
never for security.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from sitesync.sync.models import Fingerprint

_CHUNK_SIZE = 65536


class ChangeDetector:
    """Compute fingerprints and compare them with a stored baseline."""

    @staticmethod
    def content_hash(path: Path) -> str:
        """Return the hex MD5 digest of the file at *path*."""
        digest = hashlib.md5(usedforsecurity=False)
        with open(path, "rb") as fh:
            for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()

    def fingerprint(self, path: Path) -> Fingerprint:
        """Return the current fingerprint of *path*."""
        return Fingerprint(
            mtime=int(path.stat().st_mtime),
            hash=self.content_hash(path),
        )

    def has_changed(
        self, path: Path, baseline: Fingerprint | None
    ) -> bool:
        """Return ``True`` if *path* differs from *baseline*.

        A missing baseline counts as changed.
        """
        if baseline is None:
            return True
        return self.differs(self.fingerprint(path), baseline)

    @staticmethod
    def differs(current: Fingerprint, baseline: Fingerprint | None) -> bool:
        """Compare an already computed fingerprint with *baseline*."""
        return baseline is None or current != baseline
