"""Tests for SyncDispatcher save hook and scheduled runs."""

import json

import pytest

from sitesync.config_schema import NetworkConfig, SiteConfig, SyncMode
from sitesync.network_config import ConfigResolver
from sitesync.sync.models import ContentDocument
from sitesync.triggers import (
    GUARD_OPTION,
    GUARD_TTL_SECONDS,
    STEP_OK,
    SyncDispatcher,
)


class FakeClock:
    def __init__(self, now: float = 1_800_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def make_dispatcher(host, custom_config):
    """Build a dispatcher whose global config uses the given mode/flags."""

    def _make(clock=None, **overrides):
        config = custom_config.model_copy(update=overrides)
        resolver = ConfigResolver(NetworkConfig(global_config=config))
        return SyncDispatcher(host, resolver, clock=clock or FakeClock())

    return _make


# ---------------------------------------------------------------------------
# Save hook
# ---------------------------------------------------------------------------


class TestOnDocumentSaved:
    """Tests for SyncDispatcher.on_document_saved()."""

    @pytest.mark.parametrize("mode", [SyncMode.AUTOMATIC, SyncMode.EXPORT_ONLY])
    def test_exports_in_export_modes(self, make_dispatcher, make_template, sync_dir, mode):
        identity = make_template()
        summary = make_dispatcher(sync_mode=mode).on_document_saved("1", identity)
        assert summary is not None
        assert (sync_dir / "template-faq.json").exists()

    @pytest.mark.parametrize("mode", [SyncMode.IMPORT_ONLY, SyncMode.MANUAL])
    def test_no_export_in_other_modes(
        self, make_dispatcher, make_template, sync_dir, mode
    ):
        identity = make_template()
        assert make_dispatcher(sync_mode=mode).on_document_saved("1", identity) is None
        assert not (sync_dir / "template-faq.json").exists()

    def test_only_saved_document_exported(self, make_dispatcher, make_template, sync_dir):
        make_template(slug="other")
        identity = make_template(slug="faq")
        make_dispatcher().on_document_saved("1", identity)
        assert not (sync_dir / "template-other.json").exists()

    def test_non_template_ignored(self, make_dispatcher, host):
        identity = host.site("1").upsert_document(
            ContentDocument(slug="about", kind="page")
        )
        assert make_dispatcher().on_document_saved("1", identity) is None

    def test_disabled_site_ignored(self, make_dispatcher, make_template):
        identity = make_template()
        assert make_dispatcher(enabled=False).on_document_saved("1", identity) is None

    def test_auto_draft_ignored(self, make_dispatcher, host):
        identity = host.site("1").upsert_document(
            ContentDocument(slug="faq", status="auto-draft")
        )
        assert make_dispatcher().on_document_saved("1", identity) is None

    def test_storage_error_not_raised(self, host, make_template):
        identity = make_template()
        resolver = ConfigResolver(
            NetworkConfig(global_config=SiteConfig(storage_location=None))
        )
        assert SyncDispatcher(host, resolver).on_document_saved("1", identity) is None


# ---------------------------------------------------------------------------
# Scheduled runs
# ---------------------------------------------------------------------------


class TestRunSite:
    """Tests for SyncDispatcher.run_site()."""

    def test_automatic_runs_all_steps(self, make_dispatcher, host, make_template):
        make_template()
        host.site("1").set_option("bricks_global_settings", {"a": 1})
        steps = make_dispatcher().run_site("1")
        assert steps == {
            "templates_export": STEP_OK,
            "templates_import": STEP_OK,
            "settings_export": STEP_OK,
            "settings_import": STEP_OK,
        }
        assert list(steps) == [
            "templates_export",
            "templates_import",
            "settings_export",
            "settings_import",
        ]

    def test_settings_sync_disabled(self, make_dispatcher, make_template):
        make_template()
        steps = make_dispatcher(settings_sync_enabled=False).run_site("1")
        assert list(steps) == ["templates_export", "templates_import"]

    def test_export_only(self, make_dispatcher, make_template, sync_dir):
        make_template()
        steps = make_dispatcher(sync_mode=SyncMode.EXPORT_ONLY).run_site("1")
        assert list(steps) == ["templates_export", "settings_export"]
        assert (sync_dir / "template-faq.json").exists()

    def test_import_only_forces_templates(self, make_dispatcher, host, sync_dir):
        sync_dir.mkdir(parents=True)
        (sync_dir / "template-faq.json").write_text(
            json.dumps({"id": 3, "slug": "faq", "title": "FAQ", "content": ""})
        )
        (sync_dir / "bricks-builder-settings.json").write_text(
            json.dumps({"bricks_global_settings": {"a": 1}})
        )
        dispatcher = make_dispatcher(sync_mode=SyncMode.IMPORT_ONLY)
        assert dispatcher.run_site("2") == {
            "templates_import": STEP_OK,
            "settings_import": STEP_OK,
        }
        site = host.site("2")
        identity = site.list_documents("bricks_template")[0].identity
        site.set_field(identity, "local_edit", "x")

        dispatcher.run_site("2")
        assert len(site.list_documents("bricks_template")) == 1
        assert site.get_option("bricks_global_settings") == {"a": 1}

    def test_manual_skipped(self, make_dispatcher):
        assert make_dispatcher(sync_mode=SyncMode.MANUAL).run_site("1") is None

    def test_disabled_skipped(self, make_dispatcher):
        assert make_dispatcher(enabled=False).run_site("1") is None

    def test_step_failure_reported_not_raised(self, make_dispatcher, make_template):
        make_template()
        steps = make_dispatcher(sync_mode=SyncMode.EXPORT_ONLY).run_site("1")
        assert steps["settings_export"] == "no_settings"
        assert steps["templates_export"] == STEP_OK


class TestOverlapGuard:
    """Tests for the per-site scheduled run guard."""

    def test_guard_released_after_run(self, make_dispatcher, host, make_template):
        make_template()
        make_dispatcher().run_site("1")
        assert host.site("1").get_option(GUARD_OPTION) is None

    def test_recent_guard_skips_site(self, make_dispatcher, host):
        clock = FakeClock()
        host.site("1").set_option(GUARD_OPTION, clock.now - 10)
        assert make_dispatcher(clock=clock).run_site("1") is None
        assert host.site("1").get_option(GUARD_OPTION) == clock.now - 10

    def test_stale_guard_ignored(self, make_dispatcher, host, make_template):
        make_template()
        clock = FakeClock()
        host.site("1").set_option(GUARD_OPTION, clock.now - GUARD_TTL_SECONDS - 1)
        assert make_dispatcher(clock=clock).run_site("1") is not None
        assert host.site("1").get_option(GUARD_OPTION) is None

    def test_guard_released_on_unexpected_error(
        self, make_dispatcher, host, monkeypatch
    ):
        dispatcher = make_dispatcher()

        def boom(*args, **kwargs):
            raise RuntimeError("host went away")

        monkeypatch.setattr(dispatcher.templates, "export", boom)
        with pytest.raises(RuntimeError):
            dispatcher.run_site("1")
        assert host.site("1").get_option(GUARD_OPTION) is None


class TestRunTick:
    """Tests for SyncDispatcher.run_tick()."""

    def test_runs_every_known_site(self, make_dispatcher, host, make_template):
        make_template(site_id="1")
        make_template(site_id="2", slug="other")
        outcomes = make_dispatcher(settings_sync_enabled=False).run_tick()
        assert sorted(outcomes) == ["1", "2"]

    def test_explicit_sites(self, make_dispatcher, make_template):
        make_template(site_id="1")
        outcomes = make_dispatcher(settings_sync_enabled=False).run_tick(["1"])
        assert list(outcomes) == ["1"]

    def test_skipped_sites_omitted(self, make_dispatcher, make_template):
        make_template(site_id="1")
        assert make_dispatcher(sync_mode=SyncMode.MANUAL).run_tick() == {}
