"""CLI configuration: YAML config file, environment overrides and CLI flags.

Precedence for every setting is CLI flag, then environment variable, then
config file, then built-in default.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from constants import Constants
from sync.errors import ConfigError
from sync.models import PLATFORM_PRESETS, PlatformConfig, SyncOptions

logger = logging.getLogger(__name__)

# option attribute -> accepted config keys
_OPTION_KEYS = {
    "update_to_latest": ("update_to_latest", "updateToLatest"),
    "complete_sibling_versions": ("complete_sibling_versions", "completeSiblingVersions"),
    "include_dev": ("include_dev", "includeDev"),
    "include_peer": ("include_peer", "includePeer"),
    "include_optional": ("include_optional", "includeOptional"),
    "max_depth": ("max_depth", "maxDepth"),
    "concurrency": ("concurrency",),
}

# option attribute -> argparse dest
_CLI_DESTS = {
    "update_to_latest": "UPDATE_TO_LATEST",
    "complete_sibling_versions": "COMPLETE_SIBLINGS",
    "include_dev": "INCLUDE_DEV",
    "include_peer": "INCLUDE_PEER",
    "include_optional": "INCLUDE_OPTIONAL",
    "max_depth": "MAX_DEPTH",
    "concurrency": "CONCURRENCY",
}


def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    """Load the YAML config file.

    Args:
        config_path: Path to a YAML file, or None.

    Returns:
        Parsed mapping; empty when no path is given or the file is missing.

    Raises:
        ConfigError: when the file cannot be parsed or is not a mapping.
    """
    if not config_path:
        return {}
    if not os.path.isfile(config_path):
        logger.warning("Config file not found: %s", config_path)
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    logger.info("Loaded config from: %s", config_path)
    return data


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return value


def build_sync_options(args: Any, config: Mapping[str, Any]) -> SyncOptions:
    """Merge config ``sync`` section and CLI flags into validated options.

    Boolean CLI flags only override when set; numeric flags when not None.

    Raises:
        ConfigError: on unknown value types or out-of-range values.
    """
    section = _section(config, "sync")
    values: Dict[str, Any] = {}
    for attr, keys in _OPTION_KEYS.items():
        for key in keys:
            if key in section:
                values[attr] = section[key]
                break
        cli_value = getattr(args, _CLI_DESTS[attr], None)
        if cli_value is None or cli_value is False:
            continue
        values[attr] = cli_value
    return SyncOptions(**values).validate()


def resolve_registry_url(args: Any, config: Mapping[str, Any]) -> str:
    """Registry base URL without a trailing slash."""
    url = (
        getattr(args, "REGISTRY", None)
        or os.environ.get(Constants.ENV_REGISTRY_URL)
        or _section(config, "registry").get("url")
        or Constants.REGISTRY_URL_NPM
    )
    return str(url).rstrip("/")


def resolve_timeout(args: Any, config: Mapping[str, Any]) -> float:
    """Per-request timeout in seconds.

    Raises:
        ConfigError: when the value is not a positive number.
    """
    value = getattr(args, "TIMEOUT", None)
    if value is None:
        value = _section(config, "registry").get("timeout", Constants.REQUEST_TIMEOUT)
    try:
        timeout = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"timeout must be a number (got {value!r})") from exc
    if timeout <= 0:
        raise ConfigError(f"timeout must be > 0 (got {timeout})")
    return timeout


def resolve_storage(args: Any, config: Mapping[str, Any]) -> str:
    """Local storage directory.

    Raises:
        ConfigError: when no storage path is configured anywhere.
    """
    path = (
        getattr(args, "STORAGE", None)
        or os.environ.get(Constants.ENV_STORAGE)
        or _section(config, "storage").get("path")
    )
    if not path:
        raise ConfigError(
            f"No storage path given (use --storage, {Constants.ENV_STORAGE} or storage.path)"
        )
    return os.path.expanduser(str(path))


def parse_platform(value: Any) -> PlatformConfig:
    """Build a PlatformConfig from a preset name or an os/arch/libc mapping.

    Raises:
        ConfigError: for unknown presets or incomplete mappings.
    """
    if isinstance(value, str):
        preset = PLATFORM_PRESETS.get(value.strip().lower())
        if preset is None:
            raise ConfigError(
                f"Unknown platform '{value}' (known: {', '.join(sorted(PLATFORM_PRESETS))})"
            )
        return preset
    if isinstance(value, Mapping):
        os_name = value.get("os")
        arch = value.get("arch")
        if not os_name or not arch:
            raise ConfigError(f"Platform entry needs 'os' and 'arch': {dict(value)}")
        libc = value.get("libc")
        return PlatformConfig(str(os_name), str(arch), str(libc) if libc else None)
    raise ConfigError(f"Invalid platform entry: {value!r}")


def resolve_platforms(args: Any, config: Mapping[str, Any]) -> List[PlatformConfig]:
    """Target platforms from ``--platform`` flags, else the config list."""
    entries: Iterable[Any] = getattr(args, "PLATFORMS", None) or config.get("platforms") or []
    if not isinstance(entries, (list, tuple)):
        raise ConfigError("Config 'platforms' must be a list")
    platforms: List[PlatformConfig] = []
    for entry in entries:
        platform = parse_platform(entry)
        if platform not in platforms:
            platforms.append(platform)
    return platforms
