"""Encoding of document field values inside template files.

Template files store every field value as a string.  Strings are written
as-is (``Scalar``); any other value is JSON-encoded (``Composite``) and
the key is listed under ``meta_encoding`` so import knows to decode it.
Every current file carries that map, empty or not.

Files written by older exporters carry PHP-serialized strings and no
``meta_encoding`` map.  Only for such files does ``decode_legacy``
recognise serialized values by their shape and decode them with
``phpserialize``; it is the only place that sniffs string contents.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

import phpserialize

logger = logging.getLogger(__name__)

JSON_ENCODING = "json"


@dataclass(frozen=True)
class Scalar:
    """A field value that is natively a string."""

    value: str


@dataclass(frozen=True)
class Composite:
    """A non-string field value in serialized form."""

    data: str
    encoding: str = JSON_ENCODING


FieldValue = Scalar | Composite


def encode_field(value: Any) -> FieldValue:
    """Decide at write time whether *value* needs serializing.

    Raises:
        TypeError: If *value* cannot be represented as JSON.
    """
    if isinstance(value, str):
        return Scalar(value)
    return Composite(json.dumps(value, ensure_ascii=False, sort_keys=True))


def decode_field(raw: Any, encoding: str | None, legacy: bool = False) -> Any:
    """Reverse ``encode_field`` for a value read from a template file.

    Args:
        raw: Value as found under ``meta`` in the file.
        encoding: Entry from ``meta_encoding`` for this key, if any.
        legacy: The file has no ``meta_encoding`` map at all.  Only then
            are untagged strings checked for PHP serialization; in a
            current file an untagged value is a plain string.
    """
    if encoding == JSON_ENCODING and isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Field marked as JSON is not valid JSON; kept as text")
            return raw
    if encoding is not None and encoding != JSON_ENCODING:
        logger.warning("Unknown field encoding %r; kept as-is", encoding)
        return raw
    if legacy and isinstance(raw, str):
        return decode_legacy(raw)
    return raw


# ---------------------------------------------------------------------------
# Legacy PHP-serialized values
# ---------------------------------------------------------------------------

_SCALAR_SHAPE = re.compile(r"^[bid]:[0-9.E+-]+;$")
_COMPOSITE_SHAPE = re.compile(r"^[aO]:[0-9]+:")
_STRING_SHAPE = re.compile(r'^s:[0-9]+:".*";$', re.DOTALL)


def is_php_serialized(data: str) -> bool:
    """Return ``True`` if *data* looks like a PHP ``serialize()`` result."""
    data = data.strip()
    if data == "N;":
        return True
    if len(data) < 4 or data[1] != ":" or data[-1] not in ";}":
        return False
    token = data[0]
    if token == "s":
        return bool(_STRING_SHAPE.match(data))
    if token in "aO":
        return bool(_COMPOSITE_SHAPE.match(data))
    if token in "bid":
        return bool(_SCALAR_SHAPE.match(data))
    return False


def _arrays_to_lists(value: Any) -> Any:
    """Turn PHP arrays with keys 0..n-1 into lists, recursively."""
    if isinstance(value, dict):
        converted = {k: _arrays_to_lists(v) for k, v in value.items()}
        if list(converted) == list(range(len(converted))):
            return list(converted.values())
        return {str(k): v for k, v in converted.items()}
    return value


def decode_legacy(raw: str) -> Any:
    """Decode a PHP-serialized string, or return *raw* unchanged."""
    if not is_php_serialized(raw):
        return raw
    try:
        value = phpserialize.loads(raw.strip().encode("utf-8"), decode_strings=True)
    except (ValueError, IndexError) as exc:
        logger.warning("Could not decode serialized field value: %s", exc)
        return raw
    return _arrays_to_lists(value)
