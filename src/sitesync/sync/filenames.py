"""Template filename building.

Patterns may contain ``{slug}``, ``{id}`` and ``{title}``; the title is
slugified first.  Any other ``{token}`` is left untouched.
"""

from __future__ import annotations

import re
import unicodedata

MAX_TITLE_LENGTH = 80


def sanitize_filename(title: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    """Turn *title* into a lowercase, hyphenated, filesystem-safe string."""
    text = unicodedata.normalize("NFKD", title)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"[\s_]+", "-", text)
    text = re.sub(r"[^a-z0-9-]", "", text)
    text = re.sub(r"-+", "-", text)
    text = text.strip("-")
    return text[:max_length].rstrip("-")


def build_filename(pattern: str, slug: str, identity: int, title: str) -> str:
    """Substitute the tokens of *pattern* for one document."""
    return (
        pattern.replace("{slug}", slug)
        .replace("{id}", str(identity))
        .replace("{title}", sanitize_filename(title))
    )
