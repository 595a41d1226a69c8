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
"""The operations exposed to the request handling layer."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from typing_extensions import Self

from ota_update_libs.app_version import AppVersion
from ota_update_libs.common import CancelToken
from ota_update_libs.config import ServerConfig
from ota_update_libs.errors import InvalidInput, NotFound
from ota_update_libs.legacy_compat import LegacyPackager
from ota_update_libs.package_builder import PackageBuilder, PackageCache
from ota_update_libs.update_locator import UpdateLocator
from ota_update_libs.upgrade_manifest import UpgradeInfo, UpgradeSummary
from ota_update_libs.upgrade_resolver import UpgradeResolver

from .schema import LatestFileInfo, LatestInfo, ServedFile

logger = logging.getLogger(__name__)

VersionLike = Union[str, AppVersion]


def _parse_client_version(version: Optional[VersionLike]) -> Optional[AppVersion]:
    if version is None or isinstance(version, AppVersion):
        return version
    return AppVersion.parse(version)


def _require_client_version(version: Optional[VersionLike]) -> AppVersion:
    if version is None or (isinstance(version, str) and not version.strip()):
        raise InvalidInput("client version is required")
    return AppVersion.parse(version) if isinstance(version, str) else version


class UpdateService:
    """Entry point of the upgrade engine for one server configuration."""

    def __init__(
        self,
        cfg: ServerConfig,
        *,
        locator: UpdateLocator,
        resolver: UpgradeResolver,
        builder: PackageBuilder,
        legacy_packager: LegacyPackager,
    ) -> None:
        self.cfg = cfg
        self.locator = locator
        self.resolver = resolver
        self.builder = builder
        self.legacy_packager = legacy_packager

    @classmethod
    def from_config(cls, cfg: ServerConfig) -> Self:
        locator = UpdateLocator(cfg.apps_root, dict(cfg.app_names))
        resolver = UpgradeResolver(
            locator,
            updater_app_name=cfg.updater_app_name,
            installer_staging_dir=cfg.staging_dir,
        )
        cache = PackageCache(cfg.fallback_cache_root)
        builder = PackageBuilder(
            resolver,
            cache,
            upgrade_root=cfg.upgrade_root,
            scratch_root=cfg.scratch_root,
            chunk_size=cfg.read_chunk_size,
        )
        legacy_packager = LegacyPackager(
            locator,
            cache,
            updater_app_name=cfg.updater_app_name,
            min_updater_version=cfg.min_updater_version,
            device_root=cfg.device_root,
            updater_install_dir=cfg.updater_install_dir,
            scratch_root=cfg.scratch_root,
            chunk_size=cfg.read_chunk_size,
        )
        return cls(
            cfg,
            locator=locator,
            resolver=resolver,
            builder=builder,
            legacy_packager=legacy_packager,
        )

    def _get_app_folder(self, app_id: str) -> Path:
        if not (_folder := self.locator.get_folder(app_id)):
            logger.info(f"request for non-existing app: {app_id}")
            raise NotFound(f"app not found: {app_id}")
        return _folder

    def check_version(
        self,
        app_id: str,
        client_version: Optional[VersionLike],
        modified_since: Optional[datetime] = None,
        checksum: Optional[str] = None,
        include_prerelease: bool = True,
        *,
        legacy: bool = False,
    ) -> bool:
        """Whether the client of <app_id> is up to date.

        Legacy clients are never up to date, they have to download the plain
            update to get the embedded updater.
        """
        app_folder = self._get_app_folder(app_id)
        _client_version = _parse_client_version(client_version)
        if legacy:
            logger.info(f"{app_id}: legacy updater at {_client_version}, force update")
            return False

        up_to_date = self.locator.check_version(
            app_folder, _client_version, modified_since, checksum, include_prerelease
        )
        logger.info(f"{app_id}@{_client_version} is up to date: {up_to_date}")
        return up_to_date

    def list_applicable_upgrades(
        self,
        app_id: str,
        client_version: Optional[VersionLike],
        include_prerelease: bool = False,
        updater_version: Optional[VersionLike] = None,
    ) -> Optional[UpgradeInfo]:
        """List the upgrades the client would receive.

        Returns:
            The upgrade summary, or None if the client is up to date.

        Raises:
            InvalidInput: if the client version is missing or malformed.
            NotFound: if the app or its latest version cannot be found.
        """
        _client_version = _require_client_version(client_version)
        result = self.resolver.get_applicable_upgrades(
            app_id,
            _client_version,
            include_prerelease,
            _parse_client_version(updater_version),
        )
        if result is None:
            raise NotFound(f"no version found for {app_id}")
        if not result.upgrades:
            return None

        return UpgradeInfo(
            current_version=str(client_version).strip(),
            target_version=str(result.target_version),
            upgrades=[
                UpgradeSummary(id=_u.id, name=_u.name, priority=_u.priority)
                for _u in result.upgrades
            ],
            package_size=result.estimated_size,
        )

    def fetch_upgrade_package(
        self,
        app_id: str,
        client_version: Optional[VersionLike],
        include_prerelease: bool = False,
        updater_version: Optional[VersionLike] = None,
        *,
        cancel: CancelToken | None = None,
    ) -> ServedFile:
        _client_version = _require_client_version(client_version)
        _package = self.builder.build_upgrade_package(
            app_id,
            _client_version,
            include_prerelease,
            _parse_client_version(updater_version),
            cancel=cancel,
        )
        if _package is None:
            raise NotFound(f"no upgrade package for {app_id}@{_client_version}")

        logger.info(f"serving upgrade package {_package.name}")
        return ServedFile.for_package(_package)

    def fetch_plain_update(
        self,
        app_id: str,
        include_prerelease: bool = True,
        legacy: bool = False,
        *,
        cancel: CancelToken | None = None,
    ) -> ServedFile:
        """Serve the latest update file of <app_id>.

        Legacy clients get the update with the latest updater embedded, if an
            updater update is due and the update file is a tarball.

        Raises:
            NotFound: if the app or its update file cannot be found.
            CorruptAsset: if the update file is neither an executable nor a tarball.
        """
        self._get_app_folder(app_id)
        if not (
            _update_file := self.locator.get_update_file_for_app(
                app_id, include_prerelease
            )
        ):
            logger.error(f"no update file found for app: {app_id}")
            raise NotFound(f"no update file found for app: {app_id}")

        # validate the stored asset before doing anything with it
        served = ServedFile.for_update_file(_update_file)
        if legacy:
            logger.info(f"{app_id}: legacy updater detected")
            if _combined := self.legacy_packager.package_app_update_with_updater(
                app_id,
                _update_file,
                self.cfg.device_app_folder(app_id),
                cancel=cancel,
            ):
                logger.info(f"serving combined package {_combined.name}")
                return ServedFile.for_package(_combined)
        return served

    def latest_info(self, app_id: str, include_prerelease: bool = False) -> LatestInfo:
        app_folder = self._get_app_folder(app_id)
        _info = self.locator.get_latest_update_info(app_folder)
        _prerelease = _info.latest_prerelease if include_prerelease else None
        return LatestInfo(
            stable=(
                LatestFileInfo.from_record(_info.latest_stable)
                if _info.latest_stable
                else None
            ),
            prerelease=LatestFileInfo.from_record(_prerelease) if _prerelease else None,
        )
