"""Command line interface for sitesync.

Subcommands mirror the sync operations: ``config show``, ``settings
export|import``, ``templates list|export|import``, ``tick`` (one
scheduled run over all sites) and ``init`` (create a starter config).

The host store is the local JSON file named by ``store.path`` in the
config (or ``--store``).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from sitesync import __version__
from sitesync.config_loader import ensure_config, load_hierarchical_config
from sitesync.config_schema import UnifiedConfig, build_config
from sitesync.errors import PartialBatchFailure, SyncError
from sitesync.file_handler import (
    detect_json_file_type,
    validate_file_path,
    validate_output_dir,
)
from sitesync.host import JsonFileHost
from sitesync.logger import setup_logging
from sitesync.network_config import ConfigResolver
from sitesync.storage import StoragePathResolver
from sitesync.sync.reporter import (
    format_export_report,
    format_import_report,
    format_settings_report,
    summary_to_json,
)
from sitesync.sync.settings import SettingsSyncEngine
from sitesync.sync.templates import TemplateSyncEngine
from sitesync.triggers import SyncDispatcher

logger = logging.getLogger(__name__)

DEFAULT_SITE = "1"


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class CliContext:
    """Configuration, host and engines shared by the command handlers."""

    def __init__(self, config: UnifiedConfig, store_path: str | None = None) -> None:
        self.config = config
        self.host = JsonFileHost(
            Path(store_path or config.store.path).expanduser(),
            theme_root=config.store.theme_root,
            uploads_root=config.store.uploads_root,
        )
        self.resolver = ConfigResolver(config.network)
        self.storage = StoragePathResolver(self.host)
        self.settings = SettingsSyncEngine(
            self.host, self.resolver, self.storage, config.namespace
        )
        self.templates = TemplateSyncEngine(
            self.host, self.resolver, self.storage, config.namespace
        )


def _split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _emit(args: argparse.Namespace, summary: Any, text: str) -> None:
    if getattr(args, "format", "text") == "json":
        print(json.dumps(summary_to_json(summary), indent=2))
    else:
        print(text)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_config_show(ctx: CliContext, args: argparse.Namespace) -> int:
    config, source = ctx.resolver.resolve_with_source(args.site)
    location = ctx.storage.resolve_path(args.site, config)
    data = config.model_dump(mode="json")
    data["excluded_keys"] = sorted(config.excluded_keys)

    if args.format == "json":
        print(
            json.dumps(
                {
                    "site": args.site,
                    "source": source.value,
                    "config": data,
                    "storage": location.model_dump(mode="json"),
                },
                indent=2,
            )
        )
        return 0

    width = max(len(key) for key in data)
    print(f"Site {args.site} (configuration from {source.value} level)")
    for key, value in data.items():
        if isinstance(value, list):
            value = ", ".join(value) or "-"
        print(f"  {key:<{width}}  {value}")
    print(f"  {'storage':<{width}}  {location.status.value}: {location.message}")
    return 0


def _cmd_settings_export(ctx: CliContext, args: argparse.Namespace) -> int:
    path = ctx.settings.export(
        args.site, target_file=args.output_file, exclude=_split_list(args.exclude)
    )
    print(f"Settings exported to {path}")
    return 0


def _cmd_settings_import(ctx: CliContext, args: argparse.Namespace) -> int:
    source = validate_file_path(args.file) if args.file else None
    if source is not None:
        kind = detect_json_file_type(
            source,
            ctx.config.namespace.option_prefix,
            ctx.config.namespace.template_kind,
        )
        if kind == "template":
            print(f"Warning: {source} looks like a template file", file=sys.stderr)
    summary = ctx.settings.import_(
        args.site, source_file=source, exclude=_split_list(args.exclude)
    )
    _emit(args, summary, format_settings_report(summary))
    return 0


def _cmd_templates_list(ctx: CliContext, args: argparse.Namespace) -> int:
    rows = ctx.templates.list_templates(args.site)
    if args.format == "json":
        print(json.dumps(rows, indent=2))
        return 0
    if not rows:
        print(f"No templates found for site {args.site}")
        return 0
    print(f"{'ID':>6}  {'TYPE':<12}  {'SLUG':<30}  TITLE")
    for row in rows:
        print(
            f"{row['id']:>6}  {row['template_type'] or '-':<12}  "
            f"{row['slug']:<30}  {row['title']}"
        )
    return 0


def _cmd_templates_export(ctx: CliContext, args: argparse.Namespace) -> int:
    identities: list[int] | None = None
    if args.templates:
        try:
            identities = [int(v) for v in _split_list(args.templates)]
        except ValueError:
            print(
                f"Error: --templates must be comma-separated ids: {args.templates}",
                file=sys.stderr,
            )
            return 2
    target = validate_output_dir(args.output_dir) if args.output_dir else None
    summary = ctx.templates.export(
        args.site,
        identities=identities,
        target_dir=target,
        exclude=_split_list(args.exclude),
    )
    _emit(args, summary, format_export_report(summary))
    return 1 if summary.errors else 0


def _cmd_templates_import(ctx: CliContext, args: argparse.Namespace) -> int:
    summary = ctx.templates.import_(
        args.site,
        source_dir=args.input_dir,
        single_file=args.file,
        identity_hint=args.template_id,
        exclude=_split_list(args.exclude),
        force=args.force,
    )
    _emit(args, summary, format_import_report(summary))
    return 1 if summary.failed else 0


def _cmd_tick(ctx: CliContext, args: argparse.Namespace) -> int:
    dispatcher = SyncDispatcher(ctx.host, ctx.resolver, ctx.config.namespace)
    outcomes = dispatcher.run_tick(_split_list(args.sites) or None)
    print(json.dumps(outcomes, indent=2))
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_site(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--site",
        default=DEFAULT_SITE,
        help=f"Site id to operate on (default: {DEFAULT_SITE})",
    )


def _add_format(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Output format (default: text)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitesync",
        description="Export and import builder settings and templates as JSON files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show the effective configuration of site 2
  sitesync config show --site 2

  # Export all templates of site 1 to its storage directory
  sitesync templates export

  # Re-import every template file, even unchanged ones
  sitesync templates import --force

  # Run the scheduled sync for all sites (from cron)
  sitesync --scheduled tick
        """,
    )
    parser.add_argument("--store", help="Path of the JSON host store")
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default="text",
        help="Log line format (default: text)",
    )
    parser.add_argument(
        "--scheduled",
        action="store_true",
        help="Log to file only (LOG_FILE, default /tmp/sitesync.log)",
    )
    parser.add_argument(
        "--version", action="version", version=f"sitesync version {__version__}"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    # config
    config_parser = commands.add_parser("config", help="Inspect configuration")
    config_cmds = config_parser.add_subparsers(dest="action", required=True)
    show = config_cmds.add_parser("show", help="Show effective site configuration")
    _add_site(show)
    _add_format(show)
    show.set_defaults(handler=_cmd_config_show)

    # settings
    settings_parser = commands.add_parser("settings", help="Settings snapshot")
    settings_cmds = settings_parser.add_subparsers(dest="action", required=True)
    s_export = settings_cmds.add_parser("export", help="Export settings to JSON")
    _add_site(s_export)
    s_export.add_argument("--output-file", help="Write to this file instead")
    s_export.add_argument("--exclude", help="Comma-separated keys to leave out")
    s_export.set_defaults(handler=_cmd_settings_export)

    s_import = settings_cmds.add_parser("import", help="Import settings from JSON")
    _add_site(s_import)
    s_import.add_argument("--file", help="Read this file instead")
    s_import.add_argument("--exclude", help="Comma-separated keys to skip")
    _add_format(s_import)
    s_import.set_defaults(handler=_cmd_settings_import)

    # templates
    templates_parser = commands.add_parser("templates", help="Template documents")
    templates_cmds = templates_parser.add_subparsers(dest="action", required=True)
    t_list = templates_cmds.add_parser("list", help="List templates of a site")
    _add_site(t_list)
    _add_format(t_list)
    t_list.set_defaults(handler=_cmd_templates_list)

    t_export = templates_cmds.add_parser("export", help="Export templates to JSON")
    _add_site(t_export)
    t_export.add_argument("--output-dir", help="Write to this directory instead")
    t_export.add_argument("--templates", help="Comma-separated template ids")
    t_export.add_argument(
        "--exclude", help="Comma-separated payload or field keys to leave out"
    )
    _add_format(t_export)
    t_export.set_defaults(handler=_cmd_templates_export)

    t_import = templates_cmds.add_parser("import", help="Import templates from JSON")
    _add_site(t_import)
    t_import.add_argument("--input-dir", help="Read this directory instead")
    t_import.add_argument("--file", help="Import only this file name")
    t_import.add_argument(
        "--template-id",
        type=int,
        help="Import only files whose name contains this template id",
    )
    t_import.add_argument(
        "--exclude", help="Skip files whose name contains any of these"
    )
    t_import.add_argument(
        "--force", action="store_true", help="Import unchanged files too"
    )
    _add_format(t_import)
    t_import.set_defaults(handler=_cmd_templates_import)

    # tick
    tick = commands.add_parser("tick", help="Run the scheduled sync once")
    tick.add_argument("--sites", help="Comma-separated site ids (default: all)")
    tick.set_defaults(handler=_cmd_tick)

    # init
    commands.add_parser("init", help="Create a starter config file")

    return parser


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv()
    try:
        config = build_config(
            {} if args.command == "init" else load_hierarchical_config()
        )
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        mode="scheduled" if args.scheduled else "cli",
        debug=args.debug,
        log_file=args.log_file or config.logging.file,
        debug_format=args.log_format,
        level=config.logging.level,
    )

    if args.command == "init":
        path = ensure_config()
        print(f"Config file: {path}")
        return 0

    try:
        ctx = CliContext(config, store_path=args.store)
        return args.handler(ctx, args)
    except PartialBatchFailure as exc:
        if exc.summary is not None:
            _emit(args, exc.summary, format_settings_report(exc.summary))
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except SyncError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        # Path validation errors
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
