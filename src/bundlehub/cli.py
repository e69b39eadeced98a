# src/bundlehub/cli.py

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from bundlehub import log_utils
from bundlehub.constants import LOG_DIR_NAME
from bundlehub.exceptions import BundleHubError
from bundlehub.hub_validation import HubValidator
from bundlehub.migrations import MigrationRegistry, run_startup_migrations
from bundlehub.models import (
    InstallOptions,
    InstallScope,
    SearchQuery,
    SourceConfig,
    SourceType,
    UrlSeverity,
)
from bundlehub.registry import RegistryManager
from bundlehub.storage import Storage
from bundlehub.url_prober import UrlProber

SEVERITY_LABELS = {
    UrlSeverity.SUCCESS: "OK",
    UrlSeverity.WARNING: "WARN",
    UrlSeverity.ERROR: "FAIL",
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bundlehub",
        description="bundlehub - discover, install and update content bundles",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log verbosity",
    )
    parser.add_argument(
        "--home",
        help="Data directory (defaults to $BUNDLEHUB_HOME or the user data dir)",
    )
    parser.add_argument(
        "--workspace", help="Workspace directory for workspace-scope installs"
    )
    subparsers = parser.add_subparsers(dest="command")

    # Source management
    sources_parser = subparsers.add_parser("sources", help="Manage sources")
    sources_sub = sources_parser.add_subparsers(dest="sources_command", required=True)
    sources_sub.add_parser("list", help="List configured sources")
    add_parser = sources_sub.add_parser("add", help="Add a source")
    add_parser.add_argument("type", choices=[t.value for t in SourceType])
    add_parser.add_argument("url")
    add_parser.add_argument("--name")
    add_parser.add_argument("--branch")
    add_parser.add_argument("--collections-path")
    add_parser.add_argument("--base-path")
    add_parser.add_argument("--collection-filter")
    add_parser.add_argument("--priority", type=int)
    add_parser.add_argument("--token")
    add_parser.add_argument("--private", action="store_true")
    remove_parser = sources_sub.add_parser("remove", help="Remove a source")
    remove_parser.add_argument("source_id")
    remove_parser.add_argument(
        "--uninstall",
        action="store_true",
        help="Also uninstall bundles installed from this source",
    )
    for name in ("enable", "disable"):
        toggle = sources_sub.add_parser(name, help=f"{name.capitalize()} a source")
        toggle.add_argument("source_id")

    # Catalog
    search_parser = subparsers.add_parser("search", help="Search bundles")
    search_parser.add_argument("text", nargs="?")
    search_parser.add_argument("--tag", action="append", default=[])
    search_parser.add_argument("--env")
    search_parser.add_argument("--source")
    search_parser.add_argument("--limit", type=int)

    # Install lifecycle
    scope_choices = [s.value for s in InstallScope]
    install_parser = subparsers.add_parser("install", help="Install a bundle")
    install_parser.add_argument("source_id")
    install_parser.add_argument("bundle_id")
    install_parser.add_argument("--version")
    install_parser.add_argument(
        "--scope", choices=scope_choices, default=InstallScope.USER.value
    )
    install_parser.add_argument("--force", action="store_true")
    update_parser = subparsers.add_parser("update", help="Update an installed bundle")
    update_parser.add_argument("bundle_id")
    update_parser.add_argument("--scope", choices=scope_choices)
    update_parser.add_argument("--version")
    uninstall_parser = subparsers.add_parser("uninstall", help="Uninstall a bundle")
    uninstall_parser.add_argument("bundle_id")
    uninstall_parser.add_argument("--scope", choices=scope_choices)
    list_parser = subparsers.add_parser("list", help="List installed bundles")
    list_parser.add_argument("--scope", choices=scope_choices)
    subparsers.add_parser("outdated", help="List installed bundles with updates")

    # Sync and validation
    sync_parser = subparsers.add_parser("sync", help="Refresh source catalogs")
    sync_parser.add_argument("source_id", nargs="?")
    validate_parser = subparsers.add_parser("validate", help="Validate sources")
    validate_parser.add_argument("source_id", nargs="?")
    urls_parser = subparsers.add_parser("check-urls", help="Check URL reachability")
    urls_parser.add_argument("urls", nargs="+", metavar="URL")
    urls_parser.add_argument("--timeout", type=float)
    hub_parser = subparsers.add_parser("validate-hub", help="Validate a hub file")
    hub_parser.add_argument("file", type=Path)
    hub_parser.add_argument("--skip-urls", action="store_true")
    subparsers.add_parser("migrate", help="Run pending data migrations")
    return parser


def _print_validation(label: str, result) -> None:
    status = "valid" if result.valid else "INVALID"
    print(f"{label}: {status}")
    for error in result.errors:
        print(f"  error: {error}")
    for warning in result.warnings:
        print(f"  warning: {warning}")


async def _run_command(args: argparse.Namespace, storage: Storage) -> int:
    """
    Execute one parsed command.

    Returns:
        int: Process exit code.
    """
    if args.command == "check-urls":
        results = await UrlProber().check_urls(args.urls, args.timeout)
        for result in results:
            code = f" ({result.status_code})" if result.status_code else ""
            label = SEVERITY_LABELS[result.severity]
            print(f"[{label}] {result.url}: {result.message}{code}")
        return 1 if any(r.severity is UrlSeverity.ERROR for r in results) else 0

    if args.command == "validate-hub":
        result = await HubValidator().validate_file(
            args.file, check_urls=not args.skip_urls
        )
        _print_validation(str(args.file), result)
        return 0 if result.valid else 1

    registry = MigrationRegistry(storage)
    if args.command == "migrate":
        ran = await run_startup_migrations(storage, registry)
        if ran:
            print(f"Applied migrations: {', '.join(ran)}")
        else:
            print("No pending migrations")
        return 0
    await run_startup_migrations(storage, registry)

    manager = RegistryManager(storage)
    try:
        return await _run_registry_command(args, manager)
    finally:
        await manager.close()


async def _run_registry_command(
    args: argparse.Namespace, manager: RegistryManager
) -> int:
    if args.command == "sources":
        if args.sources_command == "list":
            for source in manager.list_sources():
                state = "enabled" if source.enabled else "disabled"
                print(
                    f"{source.id}  {source.type.value:<22} p={source.priority:<3} "
                    f"{state:<8} {source.name} <{source.url}>"
                )
        elif args.sources_command == "add":
            source = manager.add_source(
                args.type,
                args.url,
                name=args.name,
                config=SourceConfig(
                    branch=args.branch,
                    collections_path=args.collections_path,
                    base_path=args.base_path,
                    collection_filter=args.collection_filter,
                ),
                priority=args.priority,
                token=args.token,
                private=args.private,
            )
            print(f"Added source {source.id}")
        elif args.sources_command == "remove":
            removed = await manager.remove_source(
                args.source_id, uninstall_bundles=args.uninstall
            )
            print(f"Removed source {args.source_id}")
            for bundle_id in removed:
                print(f"  uninstalled {bundle_id}")
        else:
            source = manager.set_source_enabled(
                args.source_id, args.sources_command == "enable"
            )
            print(f"Source {source.id} {args.sources_command}d")
        return 0

    if args.command == "search":
        bundles = await manager.search_bundles(
            SearchQuery(
                text=args.text,
                tags=args.tag,
                environment=args.env,
                source_id=args.source,
                limit=args.limit,
            )
        )
        for bundle in bundles:
            print(f"{bundle.source_id}  {bundle.id} {bundle.version} - {bundle.name}")
        if not bundles:
            print("No bundles found")
        return 0

    if args.command == "install":
        record = await manager.install_bundle(
            args.source_id,
            args.bundle_id,
            InstallOptions(
                scope=InstallScope(args.scope), version=args.version, force=args.force
            ),
        )
        print(f"Installed {record.bundle_id} {record.version} to {record.install_path}")
        return 0

    if args.command == "update":
        record = await manager.update_bundle(
            args.bundle_id,
            InstallScope(args.scope) if args.scope else None,
            version=args.version,
        )
        print(f"{record.bundle_id} is now at {record.version}")
        return 0

    if args.command == "uninstall":
        await manager.uninstall_bundle(
            args.bundle_id, InstallScope(args.scope) if args.scope else None
        )
        print(f"Uninstalled {args.bundle_id}")
        return 0

    if args.command == "list":
        records = manager.list_installed(
            InstallScope(args.scope) if args.scope else None
        )
        for record in records:
            print(
                f"{record.bundle_id} {record.version} [{record.scope.value}] "
                f"from {record.source_id}"
            )
        if not records:
            print("No bundles installed")
        return 0

    if args.command == "outdated":
        updates = await manager.check_updates()
        for update in updates:
            print(
                f"{update.bundle_id} [{update.scope.value}] "
                f"{update.installed_version} -> {update.latest_version}"
            )
        if not updates:
            print("All installed bundles are up to date")
        return 0

    if args.command == "sync":
        if args.source_id:
            bundles = await manager.sync_source(args.source_id)
            print(f"Synced {len(bundles)} bundle(s)")
        else:
            counts = await manager.sync_all_sources()
            for source_id, count in counts.items():
                print(f"{source_id}: {count} bundle(s)")
        return 0

    if args.command == "validate":
        if args.source_id:
            results = [
                (
                    manager.get_source(args.source_id),
                    await manager.validate_source(args.source_id),
                )
            ]
        else:
            results = await manager.validate_all_sources()
        for source, result in results:
            _print_validation(f"{source.name} ({source.id})", result)
        return 0 if all(result.valid for _source, result in results) else 1

    return 1


def main(argv: Optional[List[str]] = None) -> None:
    """
    Entry point for the bundlehub command-line interface.

    Parses arguments, runs pending migrations and dispatches the subcommand.
    Exits with status 1 on any bundlehub error.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        log_utils.set_log_level(args.log_level)

    if args.command is None:
        parser.print_help()
        return

    try:
        storage = Storage(root=args.home, workspace=args.workspace)
        log_utils.add_file_logging(
            storage.paths.root / LOG_DIR_NAME, args.log_level or "INFO"
        )
        exit_code = asyncio.run(_run_command(args, storage))
    except BundleHubError as e:
        log_utils.logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        log_utils.logger.info("Interrupted")
        sys.exit(130)
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
