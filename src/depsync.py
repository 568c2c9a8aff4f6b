"""DepSync - keep an offline npm package store complete.

Scans the local store, resolves what is missing upstream (newer releases,
unresolved dependencies, sibling versions and platform binaries) and can
download the plan into the store.

    Returns:
        int: Exit code
"""
import asyncio
import json
import logging
import sys
from typing import Any, List

from args import parse_args
from cli_config import (
    build_sync_options,
    load_config,
    resolve_platforms,
    resolve_registry_url,
    resolve_storage,
    resolve_timeout,
)
from common.logging_utils import add_file_handler, configure_logging, extra_context, is_debug_enabled
from constants import ExitCodes
from registry.npm import NpmRegistryClient
from store.filesystem import FileSystemPackageStore
from sync.errors import ConfigError
from sync.models import PlatformConfig, SyncOptions
from sync.progress import logging_sink
from sync.service import SyncReport, SyncService

logger = logging.getLogger(__name__)


async def run_sync(
    registry_url: str,
    timeout: float,
    storage: str,
    options: SyncOptions,
    platforms: List[PlatformConfig],
    download: bool = False,
    retries: int = 0,
) -> SyncReport:
    """Run one sync against a live registry and a storage directory."""
    store = FileSystemPackageStore(storage)
    async with NpmRegistryClient(registry_url, timeout) as registry:
        service = SyncService(registry, store, progress=logging_sink)
        return await service.sync(options, platforms, download=download, retries=retries)


def write_report(report: SyncReport, path: str) -> None:
    """Write the JSON report to ``path``."""
    try:
        with open(path, "w", encoding="utf-8") as file:
            json.dump(report.to_dict(), file, ensure_ascii=False, indent=4)
        logging.info("JSON report saved to %s", path)
    except OSError as e:
        logging.error("JSON file couldn't be written to disk: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)


def print_summary(report: SyncReport) -> None:
    """Print the plan (and download outcome) to stdout."""
    print(f"Scanned {report.scanned} cached packages")
    if report.platforms:
        print(f"Target platforms: {', '.join(report.platforms)}")
    print(f"{len(report.plan)} packages to download")
    for pkg in report.plan:
        suffix = f" (required by {pkg.required_by})" if pkg.required_by else ""
        print(f"  {pkg.name}@{pkg.version} [{pkg.reason.value}]{suffix}")
    if report.batch is not None:
        batch = report.batch
        print(f"Downloaded {batch.succeeded}/{batch.total} packages, {batch.failed} failed")
        for pkg in batch.failed_packages:
            print(f"  failed: {pkg.name}@{pkg.version}")


def main(argv: Any = None) -> None:
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL)
    if args.LOG_FILE:
        add_file_handler(args.LOG_FILE)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main"),
        )

    try:
        config = load_config(args.CONFIG)
        options = build_sync_options(args, config)
        storage = resolve_storage(args, config)
        registry_url = resolve_registry_url(args, config)
        timeout = resolve_timeout(args, config)
        platforms = resolve_platforms(args, config)
        if args.RETRIES < 0:
            raise ConfigError(f"retries must be >= 0 (got {args.RETRIES})")
    except ConfigError as e:
        logging.error("Configuration error: %s", e)
        sys.exit(ExitCodes.CONFIG_ERROR.value)

    logging.info("Syncing %s against %s", storage, registry_url)
    try:
        report = asyncio.run(run_sync(
            registry_url, timeout, storage, options, platforms,
            download=args.DOWNLOAD, retries=args.RETRIES,
        ))
    except OSError as e:
        logging.error("Storage error: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    if args.OUTPUT:
        write_report(report, args.OUTPUT)
    print_summary(report)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(event="function_exit", component="cli", action="main", outcome="success"),
        )
    if args.ERROR_ON_FAILURES and report.batch is not None and not report.batch.success:
        sys.exit(ExitCodes.EXIT_WARNINGS.value)
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
