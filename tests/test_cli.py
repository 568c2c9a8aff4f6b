"""Tests for argument parsing, config merging and the CLI entry point."""

import json
from unittest.mock import patch

import pytest

from args import parse_args
from cli_config import (
    build_sync_options,
    load_config,
    parse_platform,
    resolve_platforms,
    resolve_registry_url,
    resolve_storage,
    resolve_timeout,
)
from constants import Constants, ExitCodes
import depsync
from sync.errors import ConfigError
from sync.models import PLATFORM_PRESETS, DownloadBatch, DownloadReason, DownloadResult, PackageToDownload, PlatformConfig
from sync.service import SyncReport


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in (Constants.ENV_REGISTRY_URL, Constants.ENV_STORAGE, Constants.ENV_LOG_LEVEL):
        monkeypatch.delenv(var, raising=False)


class TestArgParsing:
    """CLI flags."""

    def test_defaults(self):
        ns = parse_args([])
        assert ns.STORAGE is None
        assert ns.UPDATE_TO_LATEST is False
        assert ns.MAX_DEPTH is None
        assert ns.RETRIES == 0
        assert ns.PLATFORMS is None

    def test_flags(self):
        ns = parse_args([
            "-s", "/srv/storage", "--update-to-latest", "--complete-siblings",
            "--include-peer", "--max-depth", "4", "-j", "12",
            "--platform", "linux-x64", "--platform", "darwin-arm64",
            "--download", "--retries", "2", "-o", "report.json",
        ])
        assert ns.STORAGE == "/srv/storage"
        assert ns.COMPLETE_SIBLINGS is True
        assert ns.INCLUDE_PEER is True
        assert ns.MAX_DEPTH == 4
        assert ns.CONCURRENCY == 12
        assert ns.PLATFORMS == ["linux-x64", "darwin-arm64"]
        assert ns.DOWNLOAD is True
        assert ns.OUTPUT == "report.json"


class TestConfig:
    """YAML config and precedence."""

    def test_load_config(self, tmp_path):
        path = tmp_path / "depsync.yml"
        path.write_text("registry:\n  url: http://mirror.local/\nsync:\n  maxDepth: 3\n", encoding="utf-8")
        config = load_config(str(path))
        assert config["registry"]["url"] == "http://mirror.local/"

    def test_missing_config_file(self, tmp_path):
        assert load_config(str(tmp_path / "nope.yml")) == {}
        assert load_config(None) == {}

    def test_non_mapping_config(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_cli_overrides_config(self):
        config = {"sync": {"maxDepth": 5, "includeDev": True, "concurrency": 8}}
        options = build_sync_options(parse_args(["--max-depth", "2"]), config)
        assert options.max_depth == 2
        assert options.include_dev is True
        assert options.concurrency == 8

    def test_snake_case_keys(self):
        options = build_sync_options(parse_args([]), {"sync": {"update_to_latest": True}})
        assert options.update_to_latest is True

    def test_invalid_option_value(self):
        with pytest.raises(ConfigError):
            build_sync_options(parse_args([]), {"sync": {"maxDepth": -1}})
        with pytest.raises(ConfigError):
            build_sync_options(parse_args([]), {"sync": {"includeDev": "yes"}})

    def test_registry_precedence(self, monkeypatch):
        config = {"registry": {"url": "http://from-config/"}}
        assert resolve_registry_url(parse_args([]), {}) == Constants.REGISTRY_URL_NPM
        assert resolve_registry_url(parse_args([]), config) == "http://from-config"
        monkeypatch.setenv(Constants.ENV_REGISTRY_URL, "http://from-env")
        assert resolve_registry_url(parse_args([]), config) == "http://from-env"
        assert resolve_registry_url(parse_args(["-r", "http://from-cli/"]), config) == "http://from-cli"

    def test_storage_required(self, monkeypatch):
        with pytest.raises(ConfigError):
            resolve_storage(parse_args([]), {})
        assert resolve_storage(parse_args([]), {"storage": {"path": "/data"}}) == "/data"
        monkeypatch.setenv(Constants.ENV_STORAGE, "/env")
        assert resolve_storage(parse_args([]), {"storage": {"path": "/data"}}) == "/env"

    def test_timeout(self):
        assert resolve_timeout(parse_args([]), {}) == Constants.REQUEST_TIMEOUT
        assert resolve_timeout(parse_args(["--timeout", "7.5"]), {}) == 7.5
        with pytest.raises(ConfigError):
            resolve_timeout(parse_args([]), {"registry": {"timeout": 0}})

    def test_platforms(self):
        config = {"platforms": ["linux-x64", {"os": "linux", "arch": "arm64", "libc": "musl"}]}
        platforms = resolve_platforms(parse_args([]), config)
        assert platforms == [PLATFORM_PRESETS["linux-x64"], PlatformConfig("linux", "arm64", "musl")]
        assert resolve_platforms(parse_args(["--platform", "win32-x64"]), config) == [PLATFORM_PRESETS["win32-x64"]]

    def test_no_platforms_by_default(self):
        assert resolve_platforms(parse_args([]), {}) == []

    def test_ingest_defaults_from_config(self):
        config = {
            "sync": {"updateToLatest": True, "includePeer": True, "includeOptional": True},
            "platforms": ["linux-x64", "win32-x64"],
        }
        options = build_sync_options(parse_args([]), config)
        assert (options.update_to_latest, options.include_peer, options.include_optional) == (True, True, True)
        assert resolve_platforms(parse_args([]), config) == [
            PLATFORM_PRESETS["linux-x64"], PLATFORM_PRESETS["win32-x64"],
        ]

    def test_unknown_platform(self):
        with pytest.raises(ConfigError):
            parse_platform("amiga-m68k")
        with pytest.raises(ConfigError):
            parse_platform({"os": "linux"})


def _report(failed: bool = False) -> SyncReport:
    plan = [PackageToDownload("lib", "1.1.0", DownloadReason.MISSING_DEPENDENCY, "app@1.0.0")]
    result = DownloadResult("lib", "1.1.0", error="boom") if failed else DownloadResult(
        "lib", "1.1.0", shasum="abc", integrity="sha512-x", size=3,
    )
    return SyncReport(scanned=1, plan=plan, batch=DownloadBatch.from_results(plan, [result]))


class TestMain:
    """Exit codes and report output."""

    def test_config_error_exit_code(self):
        with pytest.raises(SystemExit) as excinfo:
            depsync.main([])
        assert excinfo.value.code == ExitCodes.CONFIG_ERROR.value

    def test_writes_report(self, tmp_path):
        out = tmp_path / "report.json"

        async def _fake_run(*args, **kwargs):
            return _report()

        with patch("depsync.run_sync", _fake_run):
            with pytest.raises(SystemExit) as excinfo:
                depsync.main(["-s", str(tmp_path), "--download", "-o", str(out)])

        assert excinfo.value.code == ExitCodes.SUCCESS.value
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["toDownload"][0]["requiredBy"] == "app@1.0.0"
        assert data["download"]["succeeded"] == 1

    def test_error_on_failures(self, tmp_path):
        async def _fake_run(*args, **kwargs):
            return _report(failed=True)

        with patch("depsync.run_sync", _fake_run):
            with pytest.raises(SystemExit) as excinfo:
                depsync.main(["-s", str(tmp_path), "--download", "--error-on-failures"])
        assert excinfo.value.code == ExitCodes.EXIT_WARNINGS.value

    def test_negative_retries(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            depsync.main(["-s", str(tmp_path), "--retries", "-1"])
        assert excinfo.value.code == ExitCodes.CONFIG_ERROR.value
