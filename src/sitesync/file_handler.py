"""File handler module: path validation, encoding-aware read/write, JSON file typing.

Provides the file I/O infrastructure shared by the settings and template
engines.  All functions are synchronous and side-effect free apart from
file I/O.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from charset_normalizer import from_bytes

from sitesync.errors import InvalidJson

# =============================================================================
# Path Validation
# =============================================================================


def validate_file_path(path_str: str) -> Path:
    """Validate and resolve an input file path.

    Args:
        path_str: Path string to an existing file.

    Returns:
        Resolved Path object pointing to the real file.

    Raises:
        ValueError: If path doesn't exist or is not a file.
    """
    resolved = Path(path_str).expanduser().resolve()
    if not resolved.exists():
        raise ValueError(f"File not found: {path_str}")
    if not resolved.is_file():
        raise ValueError(f"Path is not a file: {path_str}")
    return resolved


def validate_output_dir(path_str: str) -> Path:
    """Resolve an output directory path; it is created on demand later.

    Raises:
        ValueError: If the path exists but is not a directory.
    """
    resolved = Path(path_str).expanduser().resolve()
    if resolved.exists() and not resolved.is_dir():
        raise ValueError(f"Path is not a directory: {path_str}")
    return resolved


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    # JSON written by the exporters is always UTF-8; skip detection then.
    try:
        return (raw.decode("utf-8-sig"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def write_file(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Write content to a file, creating parent directories as needed.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    path.write_bytes(encoded)
    return len(encoded)


def read_json_object(path: Path) -> dict[str, Any]:
    """Read *path* and return its JSON root object.

    Raises:
        InvalidJson: If the content is not JSON or its root is not an object.
        OSError: If the file cannot be read.
    """
    content, _ = read_file_with_encoding(path)
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise InvalidJson(f"Invalid or corrupt JSON in {path.name}: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidJson(
            f"JSON root of {path.name} is {type(data).__name__}, expected an object"
        )
    return data


def dump_json(data: Any) -> str:
    """Pretty-print *data* the way exported files are written."""
    return json.dumps(data, indent=4, ensure_ascii=False)


# =============================================================================
# JSON file typing
# =============================================================================

_SETTINGS_MARKER_KEYS = (
    "bricks_global_settings",
    "bricks_theme_styles",
)


def detect_json_file_type(
    path: Path, option_prefix: str = "bricks_", template_kind: str = "bricks_template"
) -> str:
    """Classify a JSON file by content as ``template``, ``settings`` or ``unknown``.

    A file whose top-level keys include a known settings key, or consist
    only of *option_prefix* keys, is a settings snapshot even if other
    keys are present.  Otherwise a ``type`` equal to *template_kind* or an
    ``id`` plus ``content`` pair marks a template.
    """
    try:
        data = read_json_object(path)
    except (InvalidJson, OSError):
        return "unknown"

    if any(key in data for key in _SETTINGS_MARKER_KEYS):
        return "settings"
    if data.get("type") == template_kind or ("id" in data and "content" in data):
        return "template"
    if data and all(key.startswith(option_prefix) for key in data):
        return "settings"
    return "unknown"
