"""
Hierarchical configuration loader for sitesync.

Config files are found by convention, parsed as YAML with an ``!include``
tag for splitting group and site override sections into their own files,
merged top-level section by section (the most specific file wins) and
finally have ``${VAR}`` / ``${VAR:-default}`` references expanded.

Usage:
    from sitesync.config_loader import load_hierarchical_config
    from sitesync.config_schema import build_config

    config = build_config(load_hierarchical_config())
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SITESYNC_CONFIG"
PROJECT_DIR = ".sitesync"

# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+?)(?::-(?P<default>.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    there is none.  An unterminated ``${`` is left alone.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m["name"]) or (m["default"] or ""), value
    )


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return list(map(_interpolate_recursive, obj))
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    return obj


# ---------------------------------------------------------------------------
# YAML with !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader that understands ``!include <path>``.

    Relative paths are taken from the directory of the including file.
    Each loader knows the chain of files that led to it, so an include
    cycle is reported instead of recursing forever.  The tag is
    registered on this subclass only; ``yaml.safe_load`` is unaffected.
    """

    def __init__(self, stream: Any, chain: tuple[Path, ...] = ()) -> None:
        super().__init__(stream)
        self.chain = chain

    def construct_include(self, node: yaml.ScalarNode) -> Any:
        target = Path(self.construct_scalar(node))
        if not target.is_absolute():
            target = self.chain[-1].parent / target
        target = target.resolve()

        if target in self.chain:
            cycle = " -> ".join(str(p) for p in (*self.chain, target))
            raise ValueError(f"Circular include detected: {cycle}")
        if not target.is_file():
            raise FileNotFoundError(
                f"Include file not found: {target} (referenced from {self.chain[-1]})"
            )
        return _load_yaml_with_includes(target, _include_stack=list(self.chain))


ConfigLoader.add_constructor("!include", ConfigLoader.construct_include)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Parse one YAML file, following ``!include`` tags."""
    path = Path(path).resolve()
    chain = (*(_include_stack or ()), path)
    with open(path, encoding="utf-8") as fh:
        loader = ConfigLoader(fh, chain)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def _candidate_paths() -> list[Path]:
    candidates = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    project = Path.cwd() / PROJECT_DIR
    candidates += [project / "config.yml", project / "config.yaml"]
    candidates.append(Path.home() / ".config" / "sitesync" / "config.yml")
    return candidates


def discover_config_files() -> list[Path]:
    """Return the config files that exist, most specific first.

    Order: ``$SITESYNC_CONFIG``, ``.sitesync/config.yml`` and
    ``.sitesync/config.yaml`` in the working directory, then
    ``~/.config/sitesync/config.yml``.  A file reachable through more
    than one of these is listed once, at its most specific position.
    """
    found: list[Path] = []
    seen: set[Path] = set()
    for candidate in _candidate_paths():
        if not candidate.is_file():
            continue
        key = candidate.resolve()
        if key not in seen:
            seen.add(key)
            found.append(candidate)
    return found


# ---------------------------------------------------------------------------
# Starter file
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# sitesync configuration
#
# network:
#   global:
#     storage_location: child_theme   # child_theme | uploads_folder | custom_path
#     custom_path: ""
#     json_subdir: sitesync-json
#     settings_filename: bricks-builder-settings.json
#     template_filename_pattern: "template-{slug}.json"
#     excluded_keys: |
#       bricks_license_key
#     sync_mode: automatic            # automatic | export_only | import_only | manual
#     settings_sync_enabled: true
#     enabled: true
#   groups:
#     marketing:
#       name: Marketing sites
#       sites: ["2", "3"]
#       config:
#         storage_location: uploads_folder
#   site_overrides:
#     "4":
#       storage_location: custom_path
#       custom_path: /data
#
# store:
#   path: .sitesync/store.json
#
# logging:
#   level: INFO                    # default: INFO, WARNING with --scheduled
#   file: null
"""


def resolve_config_path() -> Path:
    """Return the config file in effect, or where a new one would go."""
    existing = discover_config_files()
    return existing[0] if existing else Path.cwd() / PROJECT_DIR / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter file if
    there is none yet.

    Args:
        target: Where to create the starter file.  Defaults to
            ``resolve_config_path()``.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    path = target or resolve_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def _read_sections(path: Path) -> dict[str, Any]:
    try:
        data = _load_yaml_with_includes(path)
    except (OSError, ValueError, yaml.YAMLError):
        logger.exception("Failed to load config file %s", path)
        raise
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "Config file %s has non-dict root (%s), skipping",
            path,
            type(data).__name__,
        )
        return {}
    return data


def load_hierarchical_config() -> dict[str, Any]:
    """Load every discovered config file and merge them.

    Top-level sections of a more specific file replace the same sections
    of a less specific one wholesale; there is no deep merge.  Env var
    references are expanded after merging.  With no config files at all
    the result is ``{}``, which ``build_config`` turns into the defaults.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        merged.update(_read_sections(path))
    return _interpolate_recursive(merged)
