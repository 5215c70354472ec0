"""Tests for storage directory resolution."""

import os
from pathlib import Path

import pytest

from sitesync.config_schema import SiteConfig, StorageLocation
from sitesync.errors import PathUnavailable, StorageNotFound, StoragePathNotConfigured
from sitesync.host import InMemoryHost
from sitesync.storage import (
    ACCESS_MARKER_CONTENT,
    ACCESS_MARKER_NAME,
    StoragePathResolver,
    require_directory,
    write_access_marker,
)
from sitesync.sync.models import ResolvedStorageLocation, StorageStatus

needs_permissions = pytest.mark.skipif(
    hasattr(os, "geteuid") and os.geteuid() == 0,
    reason="permission bits are not enforced for root",
)


class TestResolvePath:
    """Tests for StoragePathResolver.resolve_path()."""

    def test_custom_path_scenario(self, host, custom_config, tmp_path):
        result = StoragePathResolver(host).resolve_path("1", custom_config)
        assert result.status == StorageStatus.OK
        assert result.path == os.path.join(str(tmp_path / "data"), "sync", "")
        assert result.path.endswith(os.sep)
        assert result.readable and result.writable
        assert result.created is True
        assert os.path.isdir(result.path)

    def test_child_theme_uses_site_theme_dir(self, host, tmp_path):
        result = StoragePathResolver(host).resolve_path("2", SiteConfig())
        assert result.ok
        assert result.path == os.path.join(
            str(tmp_path / "themes" / "2"), "sitesync-json", ""
        )

    def test_uploads_folder_uses_site_uploads_dir(self, host, tmp_path):
        config = SiteConfig(storage_location=StorageLocation.UPLOADS_FOLDER)
        result = StoragePathResolver(host).resolve_path("3", config)
        assert result.path.startswith(str(tmp_path / "uploads" / "3"))

    def test_unset_location_is_not_configured(self, host):
        config = SiteConfig(storage_location=None)
        result = StoragePathResolver(host).resolve_path("1", config)
        assert result.status == StorageStatus.NOT_CONFIGURED
        assert result.path is None

    def test_empty_custom_path_is_error(self, host):
        config = SiteConfig(storage_location=StorageLocation.CUSTOM_PATH)
        result = StoragePathResolver(host).resolve_path("1", config)
        assert result.status == StorageStatus.ERROR

    def test_missing_theme_dir_is_error(self):
        result = StoragePathResolver(InMemoryHost()).resolve_path("1", SiteConfig())
        assert result.status == StorageStatus.ERROR

    def test_uncreatable_dir_is_not_found(self, host, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        config = SiteConfig(
            storage_location=StorageLocation.CUSTOM_PATH, custom_path=str(blocker)
        )
        result = StoragePathResolver(host).resolve_path("1", config)
        assert result.status == StorageStatus.NOT_FOUND

    def test_marker_written_on_creation(self, host, custom_config, sync_dir):
        StoragePathResolver(host).resolve_path("1", custom_config)
        marker = sync_dir / ACCESS_MARKER_NAME
        assert marker.read_text() == ACCESS_MARKER_CONTENT

    def test_existing_dir_not_marked_created(self, host, custom_config, sync_dir):
        sync_dir.mkdir(parents=True)
        result = StoragePathResolver(host).resolve_path("1", custom_config)
        assert result.ok
        assert result.created is False
        assert not (sync_dir / ACCESS_MARKER_NAME).exists()

    @needs_permissions
    def test_read_only_dir_is_not_writable(self, host, custom_config, sync_dir):
        sync_dir.mkdir(parents=True)
        sync_dir.chmod(0o555)
        try:
            result = StoragePathResolver(host).resolve_path("1", custom_config)
        finally:
            sync_dir.chmod(0o755)
        assert result.status == StorageStatus.NOT_WRITABLE
        assert result.readable is True
        assert result.writable is False

    @needs_permissions
    def test_unreadable_dir_reported_before_writability(
        self, host, custom_config, sync_dir
    ):
        sync_dir.mkdir(parents=True)
        sync_dir.chmod(0o000)
        try:
            result = StoragePathResolver(host).resolve_path("1", custom_config)
        finally:
            sync_dir.chmod(0o755)
        assert result.status == StorageStatus.NOT_READABLE


class TestWriteAccessMarker:
    """Tests for write_access_marker()."""

    def test_existing_marker_kept(self, tmp_path):
        marker = tmp_path / ACCESS_MARKER_NAME
        marker.write_text("custom rules\n")
        assert write_access_marker(str(tmp_path)) is True
        assert marker.read_text() == "custom rules\n"

    def test_failure_returns_false(self, tmp_path):
        assert write_access_marker(str(tmp_path / "missing")) is False


class TestRequireDirectory:
    """Tests for require_directory() error mapping."""

    def test_ok_returns_path(self, tmp_path):
        location = ResolvedStorageLocation(
            path=str(tmp_path) + os.sep,
            status=StorageStatus.OK,
            readable=True,
            writable=True,
        )
        assert require_directory(location, writable=True) == Path(tmp_path)

    def test_not_configured(self):
        location = ResolvedStorageLocation(status=StorageStatus.NOT_CONFIGURED)
        with pytest.raises(StoragePathNotConfigured):
            require_directory(location)

    def test_not_found(self, tmp_path):
        location = ResolvedStorageLocation(
            path=str(tmp_path / "x"), status=StorageStatus.NOT_FOUND
        )
        with pytest.raises(StorageNotFound):
            require_directory(location)

    def test_read_only_allowed_for_reading(self, tmp_path):
        location = ResolvedStorageLocation(
            path=str(tmp_path),
            status=StorageStatus.NOT_WRITABLE,
            readable=True,
        )
        assert require_directory(location) == Path(tmp_path)
        with pytest.raises(PathUnavailable):
            require_directory(location, writable=True)
