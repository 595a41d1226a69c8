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

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from ota_update_libs.errors import CorruptAsset, InvalidInput, InvalidVersion, NotFound
from ota_update_libs.tar_codec import extract_tar_gz
from ota_update_libs.update_service import (
    EXE_CONTENT_TYPE,
    GZIP_CONTENT_TYPE,
    ServedFile,
    UpdateService,
    make_etag,
)

from tests.conftest import BASE_MTIME, write_file, write_manifest


@pytest.fixture
def service(server_cfg, demo_app) -> UpdateService:
    return UpdateService.from_config(server_cfg)


class TestCheckVersion:
    def test_up_to_date_on_stable_track(self, service):
        """Test a client at the latest stable is up to date on the stable track."""
        assert service.check_version("Demo", "1.0.0", include_prerelease=False)

    def test_outdated_on_prerelease_track(self, service):
        """Test the newer pre-release is offered when pre-releases are included."""
        assert not service.check_version("Demo", "1.0.0", include_prerelease=True)

    def test_legacy_client_never_up_to_date(self, service):
        """Test legacy clients are always told to update."""
        assert not service.check_version(
            "Demo", "1.1.0", include_prerelease=False, legacy=True
        )

    def test_modified_since(self, service):
        """Test the latest file's mtime against the client's timestamp."""
        _base = datetime.fromtimestamp(BASE_MTIME, tz=timezone.utc)
        assert service.check_version(
            "Demo", None, modified_since=_base, include_prerelease=False
        )
        assert not service.check_version(
            "Demo",
            None,
            modified_since=_base - timedelta(seconds=1),
            include_prerelease=False,
        )

    def test_checksum(self, service, demo_app):
        """Test the md5 checksum reported by the client is compared."""
        _md5 = hashlib.md5((demo_app / "demo-1.0.0.tar.gz").read_bytes()).hexdigest()
        assert service.check_version(
            "Demo", "1.0.0", checksum=_md5.upper(), include_prerelease=False
        )
        assert not service.check_version(
            "Demo", "1.0.0", checksum="0" * 32, include_prerelease=False
        )

    def test_no_version_info(self, service):
        """Test a client without version or timestamp is never up to date."""
        assert not service.check_version("Demo", None, include_prerelease=False)

    def test_empty_app_folder(self, service, apps_root):
        """Test an app without update files is up to date."""
        (apps_root / "Empty").mkdir()
        assert service.check_version("Empty", "0.1.0")

    @pytest.mark.parametrize("app_id", ["Unknown", "../Demo", ""])
    def test_unknown_app(self, service, app_id):
        """Test unknown or invalid app ids."""
        with pytest.raises(NotFound):
            service.check_version(app_id, "1.0.0")

    def test_invalid_version(self, service):
        """Test malformed client versions are rejected."""
        with pytest.raises(InvalidVersion):
            service.check_version("Demo", "one.two")


class TestListApplicableUpgrades:
    def test_synthetic_app_update(self, service):
        """Test an outdated client gets the synthetic app update."""
        info = service.list_applicable_upgrades("Demo", "0.9.0")

        assert info is not None
        assert info.current_version == "0.9.0"
        assert info.target_version == "1.0.0"
        assert [_u.id for _u in info.upgrades] == ["app-update-1.0.0"]
        assert info.requires_download

    def test_camel_case_output(self, service):
        """Test the summary is exported with camelCase field names."""
        info = service.list_applicable_upgrades("Demo", "0.9.0")

        assert info is not None
        _exported = info.model_dump(by_alias=True)
        assert set(_exported) == {
            "currentVersion",
            "targetVersion",
            "upgrades",
            "packageSize",
            "requiresDownload",
        }

    def test_manifests_in_order(self, service, demo_app):
        """Test applicable manifests come before the app update."""
        write_manifest(demo_app, id="config", priority=2, dependencies=["driver"])
        write_manifest(demo_app, id="driver", priority=5)
        write_manifest(demo_app, id="old", appliesTo={"maxVersion": "0.5.0"})

        info = service.list_applicable_upgrades("Demo", "0.9.0")

        assert info is not None
        assert [_u.id for _u in info.upgrades] == [
            "driver",
            "config",
            "app-update-1.0.0",
        ]

    def test_prerelease_target(self, service):
        """Test the pre-release becomes the target when requested."""
        info = service.list_applicable_upgrades("Demo", "1.0.0", include_prerelease=True)

        assert info is not None
        assert info.target_version == "1.1.0-beta.ab12cd3"

    def test_up_to_date(self, service):
        """Test an up to date client gets nothing."""
        assert service.list_applicable_upgrades("Demo", "1.0.0") is None

    def test_self_update_only(self, service, make_updater):
        """Test an outdated updater alone makes an upgrade list."""
        make_updater("2.1.0")

        info = service.list_applicable_upgrades(
            "Demo", "1.0.0", updater_version="2.0.0"
        )

        assert info is not None
        assert [_u.id for _u in info.upgrades] == ["updater-self-update-2.1.0"]

    @pytest.mark.parametrize("client_version", [None, "", "   "])
    def test_missing_client_version(self, service, client_version):
        """Test the client version is required."""
        with pytest.raises(InvalidInput):
            service.list_applicable_upgrades("Demo", client_version)

    def test_unknown_app(self, service):
        """Test upgrades of an unknown app."""
        with pytest.raises(NotFound):
            service.list_applicable_upgrades("Unknown", "1.0.0")

    def test_no_versioned_update(self, service, apps_root):
        """Test an app without a versioned update has no target version."""
        write_file(apps_root / "Plain" / "plain.tar.gz", b"payload")
        with pytest.raises(NotFound):
            service.list_applicable_upgrades("Plain", "1.0.0")


class TestFetchUpgradePackage:
    def test_package_served(self, service, demo_app, tmp_path):
        """Test the upgrade package is served from the cache."""
        served = service.fetch_upgrade_package("Demo", "0.9.0")

        assert served.path.parent == demo_app / "cache"
        assert served.content_type == GZIP_CONTENT_TYPE
        assert served.download_name == served.path.name
        assert served.size == served.path.stat().st_size
        assert b"".join(served.iter_chunks(chunk_size=64)) == served.path.read_bytes()

        extract_tar_gz(served.path, tmp_path / "extracted")
        assert (
            tmp_path / "extracted" / "upgrades" / "app-update-1.0.0" / "manifest.json"
        ).is_file()

    def test_up_to_date(self, service):
        """Test no package is served to an up to date client."""
        with pytest.raises(NotFound):
            service.fetch_upgrade_package("Demo", "1.0.0")

    def test_missing_client_version(self, service):
        """Test the client version is required."""
        with pytest.raises(InvalidInput):
            service.fetch_upgrade_package("Demo", None)


class TestFetchPlainUpdate:
    def test_stable(self, service, demo_app):
        """Test the latest stable update is served under its own name."""
        served = service.fetch_plain_update("Demo", include_prerelease=False)

        assert served.path == demo_app / "demo-1.0.0.tar.gz"
        assert served.content_type == GZIP_CONTENT_TYPE
        assert served.download_name == "demo-1.0.0.tar.gz"
        assert served.last_modified == datetime.fromtimestamp(
            BASE_MTIME, tz=timezone.utc
        )
        assert served.etag == make_etag(BASE_MTIME, served.size)

    def test_prerelease_renamed(self, service):
        """Test files not named `<name>-<version>` are served as update.tar.gz."""
        served = service.fetch_plain_update("Demo", include_prerelease=True)

        assert served.path.name == "demo-1.1.0-beta.ab12cd3.tar.gz"
        assert served.download_name == "update.tar.gz"

    def test_executable(self, service, apps_root):
        """Test executables are served as is."""
        write_file(apps_root / "Tool" / "tool-1.0.0.exe", b"MZ")

        served = service.fetch_plain_update("Tool", legacy=True)

        assert served.content_type == EXE_CONTENT_TYPE
        assert served.download_name == "tool-1.0.0.exe"

    def test_legacy_with_updater_due(self, service, demo_app, make_updater):
        """Test legacy clients get the combined archive."""
        make_updater("2.1.0")

        served = service.fetch_plain_update("Demo", include_prerelease=False, legacy=True)

        assert served.path.parent == demo_app / "cache"
        assert served.path.name.startswith("app-with-updater-")
        assert served.download_name == served.path.name
        assert served.content_type == GZIP_CONTENT_TYPE

    def test_legacy_without_updater_due(self, service, demo_app, make_updater):
        """Test legacy clients get the plain update if no updater update is due."""
        make_updater("1.5.0")

        served = service.fetch_plain_update("Demo", include_prerelease=False, legacy=True)

        assert served.path == demo_app / "demo-1.0.0.tar.gz"

    def test_corrupt_asset(self, service, apps_root):
        """Test update files of an unexpected type."""
        write_file(apps_root / "Docs" / "docs-1.0.0.txt", b"text")
        with pytest.raises(CorruptAsset):
            service.fetch_plain_update("Docs")

    def test_no_update_file(self, service, apps_root):
        """Test an app folder without update files."""
        (apps_root / "Empty").mkdir()
        with pytest.raises(NotFound):
            service.fetch_plain_update("Empty")


class TestLatestInfo:
    def test_stable_only(self, service):
        """Test the pre-release is hidden unless requested."""
        info = service.latest_info("Demo")

        assert info.stable is not None
        assert info.stable.version == "1.0.0"
        assert info.stable.file == "demo-1.0.0.tar.gz"
        assert info.prerelease is None

    def test_with_prerelease(self, service):
        """Test the pre-release track is reported when requested."""
        info = service.latest_info("Demo", include_prerelease=True)

        assert info.prerelease is not None
        assert info.prerelease.version == "1.1.0-beta.ab12cd3"
        assert info.prerelease.last_modified == datetime.fromtimestamp(
            BASE_MTIME + 3600, tz=timezone.utc
        )


class TestServedFile:
    @pytest.mark.parametrize(
        "fname, download_name",
        [
            ("app-1.2.3.tar.gz", "app-1.2.3.tar.gz"),
            ("app.tar.gz", "update.tar.gz"),
            ("my-app-1.2.3.tar.gz", "update.tar.gz"),
            ("App-2.0.0.EXE", "App-2.0.0.EXE"),
            ("setup.exe", "update.exe"),
        ],
    )
    def test_download_name(self, tmp_path, fname, download_name):
        """Test the download name of stored update files."""
        _fpath = write_file(tmp_path / fname, b"payload")
        assert ServedFile.for_update_file(_fpath).download_name == download_name
