"""Argument parsing functionality for DepSync."""

import argparse

from constants import Constants
from sync.models import PLATFORM_PRESETS


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser."""
    parser = argparse.ArgumentParser(
        prog="depsync",
        description=(
            "DepSync - find and fetch npm packages missing from a local offline store"
        ),
        add_help=True,
    )

    parser.add_argument("-s", "--storage",
                        dest="STORAGE",
                        help="Local storage directory holding cached tarballs",
                        action="store", type=str)
    parser.add_argument("-r", "--registry",
                        dest="REGISTRY",
                        help=f"Upstream registry URL (default: {Constants.REGISTRY_URL_NPM})",
                        action="store", type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to YAML config file",
                        action="store", type=str)

    resolve_group = parser.add_argument_group("resolution")
    resolve_group.add_argument("--update-to-latest",
                               dest="UPDATE_TO_LATEST",
                               help="Add the latest dist-tag of every cached package",
                               action="store_true")
    resolve_group.add_argument("--complete-siblings",
                               dest="COMPLETE_SIBLINGS",
                               help="Add the highest patch and minor of every cached line",
                               action="store_true")
    resolve_group.add_argument("--include-dev",
                               dest="INCLUDE_DEV",
                               help="Follow devDependencies",
                               action="store_true")
    resolve_group.add_argument("--include-peer",
                               dest="INCLUDE_PEER",
                               help="Follow peerDependencies",
                               action="store_true")
    resolve_group.add_argument("--include-optional",
                               dest="INCLUDE_OPTIONAL",
                               help="Follow optionalDependencies",
                               action="store_true")
    resolve_group.add_argument("--max-depth",
                               dest="MAX_DEPTH",
                               help=f"Maximum BFS depth (default: {Constants.DEFAULT_MAX_DEPTH})",
                               action="store", type=int)
    resolve_group.add_argument("-j", "--concurrency",
                               dest="CONCURRENCY",
                               help=(f"Concurrent registry requests, {Constants.MIN_CONCURRENCY}-"
                                     f"{Constants.MAX_CONCURRENCY} (default: {Constants.DEFAULT_CONCURRENCY})"),
                               action="store", type=int)
    resolve_group.add_argument("--timeout",
                               dest="TIMEOUT",
                               help=f"Per-request timeout in seconds (default: {Constants.REQUEST_TIMEOUT})",
                               action="store", type=float)
    resolve_group.add_argument("--platform",
                               dest="PLATFORMS",
                               help=("Target platform for native binary packages; repeatable. "
                                     f"One of: {', '.join(sorted(PLATFORM_PRESETS))}"),
                               action="append", type=str)

    download_group = parser.add_argument_group("download")
    download_group.add_argument("--download",
                                dest="DOWNLOAD",
                                help="Download the planned packages into storage",
                                action="store_true")
    download_group.add_argument("--retries",
                                dest="RETRIES",
                                help="Retry passes over failed downloads (default: 0)",
                                action="store", type=int, default=0)

    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Write the JSON report to this file",
                        action="store", type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("--error-on-failures",
                        dest="ERROR_ON_FAILURES",
                        help="Exit with a non-zero status code if any download failed.",
                        action="store_true")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
