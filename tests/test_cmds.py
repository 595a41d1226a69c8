# Copyright 2025 TIER IV, INC. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Tests for the operator command line tools."""

from __future__ import annotations

import argparse
import json
import sys

import pytest

from ota_update_libs.app_version import AppVersion
from ota_update_tools.__main__ import main
from ota_update_tools.cmds import check_cmd_args, fetch_update_cmd_args
from ota_update_tools.cmds.check import detect_legacy

from tests.conftest import write_file


@pytest.fixture
def run_cli(monkeypatch, capsys, apps_root, upgrade_root, tmp_path):
    """Run the tools against the test apps root, return the exit code and stdout."""
    monkeypatch.chdir(tmp_path)

    def _run(*argv: str) -> tuple[int, str]:
        _subcmd, *_rest = argv
        monkeypatch.setattr(
            sys,
            "argv",
            [
                "ota-update-tools",
                _subcmd,
                "--apps-root",
                str(apps_root),
                "--upgrade-root",
                str(upgrade_root),
                *_rest,
            ],
        )
        try:
            main()
            _code = 0
        except SystemExit as e:
            _code = e.code if isinstance(e.code, int) else 1
        return _code, capsys.readouterr().out

    return _run


class TestArgs:
    def test_check_args_registration(self):
        """Test that check command arguments are registered correctly."""
        arg_parser = argparse.ArgumentParser()
        sub_parser = arg_parser.add_subparsers()

        check_cmd_args(sub_parser)

        args = arg_parser.parse_args(
            ["check", "--client-version", "1.0.0", "--no-include-prerelease", "Demo"]
        )
        assert args.app == "Demo"
        assert args.client_version == "1.0.0"
        assert args.include_prerelease is False
        assert args.legacy is False
        assert hasattr(args, "handler")

    def test_modified_since_parsed(self):
        """Test that modified-since is parsed as ISO 8601."""
        arg_parser = argparse.ArgumentParser()
        sub_parser = arg_parser.add_subparsers()

        check_cmd_args(sub_parser)

        args = arg_parser.parse_args(
            ["check", "--modified-since", "2025-01-01T00:00:00+00:00", "Demo"]
        )
        assert args.modified_since.year == 2025

    @pytest.mark.parametrize(
        "extra, expected",
        [
            ([], False),
            (["--legacy"], True),
            (["--user-agent", "AppUpdater/1.2.0"], True),
            (["--user-agent", "AppUpdater/2.0.0"], False),
            (["--updater-version", "1.9.9"], True),
        ],
    )
    def test_detect_legacy(self, extra, expected):
        """Test legacy detection from the client header options."""
        arg_parser = argparse.ArgumentParser()
        sub_parser = arg_parser.add_subparsers()

        fetch_update_cmd_args(sub_parser)

        args = arg_parser.parse_args(["fetch-update", *extra, "Demo"])
        assert detect_legacy(args, AppVersion.parse("2.0.0")) is expected


class TestCommands:
    def test_check(self, run_cli, demo_app):
        """Test checking a client at the latest stable."""
        code, out = run_cli(
            "check", "--client-version", "1.0.0", "--no-include-prerelease", "Demo"
        )
        assert code == 0
        assert json.loads(out) == {"app": "Demo", "upToDate": True}

    def test_check_legacy(self, run_cli, demo_app):
        """Test legacy clients are never up to date."""
        code, out = run_cli(
            "check",
            "--client-version",
            "1.0.0",
            "--no-include-prerelease",
            "--user-agent",
            "AppUpdater/1.0.0",
            "Demo",
        )
        assert code == 0
        assert json.loads(out)["upToDate"] is False

    def test_list_upgrades(self, run_cli, demo_app):
        """Test listing upgrades prints the camelCase summary."""
        code, out = run_cli("list-upgrades", "Demo", "0.9.0")
        assert code == 0
        _info = json.loads(out)
        assert _info["targetVersion"] == "1.0.0"
        assert [_u["id"] for _u in _info["upgrades"]] == ["app-update-1.0.0"]

    def test_list_upgrades_up_to_date(self, run_cli, demo_app):
        """Test listing upgrades for an up to date client."""
        code, out = run_cli("list-upgrades", "Demo", "1.0.0")
        assert code == 0
        assert json.loads(out) == {"app": "Demo", "upToDate": True}

    def test_build_package(self, run_cli, demo_app):
        """Test building the upgrade package."""
        code, out = run_cli("build-package", "Demo", "0.9.0")
        assert code == 0
        _summary = json.loads(out)
        assert _summary["contentType"] == "application/gzip"
        assert _summary["path"].startswith(str(demo_app / "cache"))

    def test_fetch_update_saved(self, run_cli, demo_app, tmp_path):
        """Test fetching the plain update into an output folder."""
        code, out = run_cli(
            "fetch-update", "--no-include-prerelease", "-o", str(tmp_path / "out"), "Demo"
        )
        assert code == 0
        _summary = json.loads(out)
        assert _summary["downloadName"] == "demo-1.0.0.tar.gz"
        assert (tmp_path / "out" / "demo-1.0.0.tar.gz").read_bytes() == (
            demo_app / "demo-1.0.0.tar.gz"
        ).read_bytes()

    def test_latest_info(self, run_cli, demo_app):
        """Test printing out the latest files."""
        code, out = run_cli("latest-info", "--include-prerelease", "Demo")
        assert code == 0
        _info = json.loads(out)
        assert _info["stable"]["file"] == "demo-1.0.0.tar.gz"
        assert _info["prerelease"]["version"] == "1.1.0-beta.ab12cd3"

    def test_not_found(self, run_cli):
        """Test client errors exit with code 2."""
        code, out = run_cli("list-upgrades", "Unknown", "1.0.0")
        assert code == 2
        assert out.startswith("ERR: NotFound:")

    def test_server_error(self, run_cli, apps_root):
        """Test server side errors exit with code 1."""
        write_file(apps_root / "Docs" / "docs-1.0.0.txt", b"text")
        code, out = run_cli("fetch-update", "Docs")
        assert code == 1
        assert out.startswith("ERR: CorruptAsset:")


class TestCodecCommands:
    def test_pack_unpack(self, monkeypatch, capsys, tmp_path):
        """Test packing a folder and unpacking it again."""
        write_file(tmp_path / "src" / "bin" / "app", b"binary")
        _archive = tmp_path / "app.tar.gz"

        monkeypatch.setattr(
            sys, "argv", ["ota-update-tools", "pack", str(tmp_path / "src"), str(_archive)]
        )
        main()
        assert json.loads(capsys.readouterr().out)["files"] == 1

        monkeypatch.setattr(
            sys,
            "argv",
            ["ota-update-tools", "unpack", str(_archive), str(tmp_path / "dst")],
        )
        main()
        assert json.loads(capsys.readouterr().out)["files"] == 1
        assert (tmp_path / "dst" / "bin" / "app").read_bytes() == b"binary"

    def test_pack_missing_folder(self, monkeypatch, capsys, tmp_path):
        """Test packing a folder that doesn't exist."""
        monkeypatch.setattr(
            sys,
            "argv",
            ["ota-update-tools", "pack", str(tmp_path / "missing"), "out.tar.gz"],
        )
        with pytest.raises(SystemExit):
            main()
        assert capsys.readouterr().out.startswith("ERR:")
