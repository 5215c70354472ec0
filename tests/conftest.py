"""Shared pytest fixtures for sitesync tests."""

from pathlib import Path

import pytest

from sitesync.config_schema import NetworkConfig, SiteConfig, StorageLocation
from sitesync.host import InMemoryHost
from sitesync.network_config import ConfigResolver
from sitesync.sync.models import ContentDocument
from sitesync.sync.settings import SettingsSyncEngine
from sitesync.sync.templates import TemplateSyncEngine


@pytest.fixture
def host(tmp_path: Path) -> InMemoryHost:
    """In-memory host with per-site theme and uploads dirs under tmp_path."""
    return InMemoryHost(
        theme_root=tmp_path / "themes", uploads_root=tmp_path / "uploads"
    )


@pytest.fixture
def custom_config(tmp_path: Path) -> SiteConfig:
    """Site configuration storing files under tmp_path/data/sync."""
    return SiteConfig(
        storage_location=StorageLocation.CUSTOM_PATH,
        custom_path=str(tmp_path / "data"),
        json_subdir="sync",
    )


@pytest.fixture
def resolver(custom_config: SiteConfig) -> ConfigResolver:
    return ConfigResolver(NetworkConfig(global_config=custom_config))


@pytest.fixture
def sync_dir(tmp_path: Path) -> Path:
    return tmp_path / "data" / "sync"


@pytest.fixture
def template_engine(host, resolver) -> TemplateSyncEngine:
    return TemplateSyncEngine(host, resolver)


@pytest.fixture
def settings_engine(host, resolver) -> SettingsSyncEngine:
    return SettingsSyncEngine(host, resolver)


@pytest.fixture
def make_template(host):
    """Factory fixture storing a template document on a site."""

    def _make(site_id="1", slug="faq", title="FAQ", body="[]", fields=None):
        site = host.site(site_id)
        identity = site.upsert_document(
            ContentDocument(slug=slug, title=title, body=body)
        )
        for key, value in (fields or {}).items():
            site.set_field(identity, key, value)
        return identity

    return _make
