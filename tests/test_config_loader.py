"""Tests for sitesync.config_loader: hierarchical config loading."""

import textwrap

import pytest
import yaml

from sitesync.config_loader import (
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
)
from sitesync.config_schema import StorageLocation, build_config


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run in tmp_path with no env config and an empty fake home."""
    monkeypatch.delenv("SITESYNC_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "fakehome"))
    return tmp_path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("SYNC_ROOT", "/data")
        assert interpolate_env_vars("${SYNC_ROOT}") == "/data"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-/srv}") == "/srv"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${EMPTY_VAR:-fallback}") == "fallback"

    def test_nested_structures_interpolated(self, monkeypatch):
        monkeypatch.setenv("SYNC_ROOT", "/data")
        data = {"global": {"custom_path": "${SYNC_ROOT}/json", "x": 5}}
        assert _interpolate_recursive(data) == {
            "global": {"custom_path": "/data/json", "x": 5}
        }

    def test_literal_dollar_brace_no_closing(self):
        assert interpolate_env_vars("${NO_CLOSE") == "${NO_CLOSE"


# -------------------------------------------------------------------------
# YAML !include support
# -------------------------------------------------------------------------


class TestIncludeDirective:
    """Tests for !include YAML loading via ConfigLoader subclass."""

    def test_include_relative_file(self, tmp_path):
        groups = tmp_path / "groups.yml"
        groups.write_text("shop:\n  sites: ['2']\n")

        main = tmp_path / "config.yml"
        main.write_text("groups: !include groups.yml\n")

        result = _load_yaml_with_includes(main)
        assert result == {"groups": {"shop": {"sites": ["2"]}}}

    def test_include_nonexistent_raises(self, tmp_path):
        main = tmp_path / "config.yml"
        main.write_text("data: !include missing.yml\n")

        with pytest.raises(FileNotFoundError, match="missing.yml"):
            _load_yaml_with_includes(main)

    def test_circular_include_raises(self, tmp_path):
        a = tmp_path / "a.yml"
        b = tmp_path / "b.yml"
        a.write_text("x: !include b.yml\n")
        b.write_text("y: !include a.yml\n")

        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(a)

    def test_global_safe_loader_not_polluted(self, tmp_path):
        """Verify that !include is NOT registered on yaml.SafeLoader."""
        cfg = tmp_path / "test.yml"
        cfg.write_text("x: !include other.yml\n")

        with pytest.raises(yaml.constructor.ConstructorError):
            with open(cfg) as fh:
                yaml.safe_load(fh)


# -------------------------------------------------------------------------
# Convention-based file discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    """Tests for discover_config_files() precedence and filtering."""

    def test_env_var_takes_highest_precedence(self, isolated, monkeypatch):
        custom = isolated / "custom.yml"
        custom.write_text("custom: true\n")
        monkeypatch.setenv("SITESYNC_CONFIG", str(custom))

        proj = isolated / ".sitesync" / "config.yml"
        proj.parent.mkdir(parents=True)
        proj.write_text("project: true\n")

        result = discover_config_files()
        assert result[0] == custom.resolve()

    def test_project_before_global(self, isolated):
        proj = isolated / ".sitesync" / "config.yml"
        proj.parent.mkdir(parents=True)
        proj.write_text("project: true\n")

        global_cfg = isolated / "fakehome" / ".config" / "sitesync" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text("global: true\n")

        result = discover_config_files()
        assert result.index(proj) < result.index(global_cfg)

    def test_empty_filesystem_returns_empty(self, isolated):
        assert discover_config_files() == []


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    """Tests for load_hierarchical_config() merge and interpolation."""

    def test_project_replaces_global_sections(self, isolated):
        global_cfg = isolated / "fakehome" / ".config" / "sitesync" / "config.yml"
        global_cfg.parent.mkdir(parents=True)
        global_cfg.write_text(
            textwrap.dedent("""\
            network:
              global:
                storage_location: uploads_folder
            logging:
              level: DEBUG
            """)
        )
        proj = isolated / ".sitesync" / "config.yml"
        proj.parent.mkdir(parents=True)
        proj.write_text(
            textwrap.dedent("""\
            network:
              global:
                storage_location: custom_path
                custom_path: /data
            """)
        )

        result = load_hierarchical_config()
        assert result["network"] == {
            "global": {"storage_location": "custom_path", "custom_path": "/data"}
        }
        assert result["logging"]["level"] == "DEBUG"

    def test_loaded_config_builds_network(self, isolated, monkeypatch):
        monkeypatch.setenv("SYNC_ROOT", "/srv/sync")
        proj = isolated / ".sitesync" / "config.yml"
        proj.parent.mkdir(parents=True)
        proj.write_text(
            textwrap.dedent("""\
            network:
              global:
                storage_location: custom_path
                custom_path: "${SYNC_ROOT}"
                excluded_keys: |
                  bricks_license_key
                  bricks_remote_templates
              site_overrides:
                3:
                  storage_location: child_theme
            """)
        )

        config = build_config(load_hierarchical_config())
        assert config.network.global_config.custom_path == "/srv/sync"
        assert config.network.global_config.excluded_keys == frozenset(
            {"bricks_license_key", "bricks_remote_templates"}
        )
        assert (
            config.network.site_overrides["3"].storage_location
            == StorageLocation.CHILD_THEME
        )

    def test_zero_config_returns_empty_dict(self, isolated):
        assert load_hierarchical_config() == {}


# -------------------------------------------------------------------------
# Bootstrapping
# -------------------------------------------------------------------------


class TestEnsureConfig:
    """Tests for ensure_config() starter file creation."""

    def test_creates_starter_file(self, isolated):
        path = ensure_config()
        assert path == isolated / ".sitesync" / "config.yml"
        assert path.exists()
        assert "storage_location" in path.read_text()

    def test_starter_file_is_zero_config(self, isolated):
        ensure_config()
        assert load_hierarchical_config() == {}

    def test_existing_file_left_untouched(self, isolated):
        proj = isolated / ".sitesync" / "config.yml"
        proj.parent.mkdir(parents=True)
        proj.write_text("logging:\n  level: DEBUG\n")

        assert ensure_config() == proj
        assert proj.read_text() == "logging:\n  level: DEBUG\n"
