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
"""Stage resolved upgrades into a deployable tar.gz package.

Package layout:
    package-manifest.json
    upgrades/<upgrade_id>/manifest.json
    upgrades/<upgrade_id>/<payload files>
"""

from __future__ import annotations

import logging
import tempfile
from functools import partial
from pathlib import Path
from typing import Optional

from ota_update_libs.app_version import AppVersion
from ota_update_libs.common import CancelToken, check_cancelled
from ota_update_libs.common.io import (
    DEFAULT_FILE_CHUNK_SIZE,
    copy_file,
    copy_tree,
    remove_file,
)
from ota_update_libs.errors import (
    BuildFailed,
    IntegrityMismatch,
    NotFound,
    SourceMissing,
)
from ota_update_libs.tar_codec import create_tar_gz
from ota_update_libs.update_locator import TAR_GZ_EXT
from ota_update_libs.upgrade_manifest import (
    ApplicableUpgradesResult,
    AppUpdateUpgrade,
    FileDirective,
    SelfUpdateUpgrade,
    StandardUpgrade,
    UpgradeManifest,
    UpgradePackageManifest,
)
from ota_update_libs.upgrade_resolver import UpgradeResolver

from .cache import CACHE_DIRNAME, PackageCache, compute_fingerprint

logger = logging.getLogger(__name__)

PACKAGE_MANIFEST_FNAME = "package-manifest.json"
UPGRADE_MANIFEST_FNAME = "manifest.json"
UPGRADES_DIRNAME = "upgrades"
SCRATCH_DIR_PREFIX = "ota-upgrade-build-"


class PackageBuilder:
    """Build (or reuse from cache) the upgrade package of one client.

    Args:
        resolver (UpgradeResolver): resolves the applicable upgrades.
        cache (PackageCache): where built packages are published.
        upgrade_root (Path): default base path of standard upgrade sources.
        scratch_root (Path | None): parent of the per build scratch dirs,
            system temp dir if not specified.
        chunk_size (int): chunk size for copying and encoding.
    """

    def __init__(
        self,
        resolver: UpgradeResolver,
        cache: PackageCache,
        *,
        upgrade_root: Path,
        scratch_root: Optional[Path] = None,
        chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
    ) -> None:
        self._resolver = resolver
        self._cache = cache
        self.upgrade_root = Path(upgrade_root)
        self.scratch_root = scratch_root
        self.chunk_size = chunk_size

    def build_upgrade_package(
        self,
        app_name: str,
        client_version: AppVersion,
        include_prerelease: bool,
        installer_version: Optional[AppVersion] = None,
        *,
        cancel: CancelToken | None = None,
    ) -> Optional[Path]:
        """Return the package for <app_name> at <client_version>.

        Returns:
            The path to the cached package, or None if there is nothing to
                build for this client.
        """
        result = self._resolver.get_applicable_upgrades(
            app_name, client_version, include_prerelease, installer_version
        )
        if result is None or not result.upgrades:
            logger.debug(f"{app_name}@{client_version}: nothing to package")
            return None

        if not (app_folder := self._resolver.locator.get_folder(app_name)):
            raise NotFound(f"app folder not found for {app_name}")

        fingerprint = compute_fingerprint(client_version, result.upgrade_ids)
        return self._cache.get_or_build(
            app_name,
            app_folder / CACHE_DIRNAME,
            f"{fingerprint}{TAR_GZ_EXT}",
            partial(self._build, result, client_version, cancel=cancel),
            cancel=cancel,
        )

    def _build(
        self,
        result: ApplicableUpgradesResult,
        client_version: AppVersion,
        output: Path,
        *,
        cancel: CancelToken | None = None,
    ) -> None:
        if self.scratch_root is not None:
            self.scratch_root.mkdir(parents=True, exist_ok=True)
        scratch_dir = Path(
            tempfile.mkdtemp(prefix=SCRATCH_DIR_PREFIX, dir=self.scratch_root)
        )
        try:
            self.stage_package(result, client_version, scratch_dir, cancel=cancel)
            create_tar_gz(scratch_dir, output, cancel=cancel, chunk_size=self.chunk_size)
        finally:
            remove_file(scratch_dir)

    def stage_package(
        self,
        result: ApplicableUpgradesResult,
        client_version: AppVersion,
        package_dir: Path,
        *,
        cancel: CancelToken | None = None,
    ) -> None:
        _package_manifest = UpgradePackageManifest(
            from_version=str(client_version),
            to_version=str(result.target_version),
            upgrades=result.upgrade_ids,
        )
        (package_dir / PACKAGE_MANIFEST_FNAME).write_text(
            _package_manifest.export_json(), encoding="utf-8"
        )

        upgrades_dir = package_dir / UPGRADES_DIRNAME
        upgrades_dir.mkdir(exist_ok=True)
        for _upgrade in result.upgrades:
            check_cancelled(cancel)
            if _upgrade.id in (".", "..") or "/" in _upgrade.id or "\\" in _upgrade.id:
                raise BuildFailed(f"invalid upgrade id: {_upgrade.id!r}")
            _upgrade_dir = upgrades_dir / _upgrade.id
            _upgrade_dir.mkdir()
            _staged = self.stage_upgrade(_upgrade, _upgrade_dir, cancel=cancel)
            (_upgrade_dir / UPGRADE_MANIFEST_FNAME).write_text(
                _staged.export_json(), encoding="utf-8"
            )

    def stage_upgrade(
        self,
        upgrade: UpgradeManifest,
        upgrade_dir: Path,
        *,
        cancel: CancelToken | None = None,
    ) -> UpgradeManifest:
        """Populate <upgrade_dir> with the payload of <upgrade>.

        Returns:
            The manifest to ship along with the payload, for synthetic upgrades
                it has the file directive of the payload filled in.
        """
        if isinstance(upgrade, AppUpdateUpgrade):
            return self._stage_app_update(upgrade, upgrade_dir, cancel=cancel)
        if isinstance(upgrade, SelfUpdateUpgrade):
            return self._stage_self_update(upgrade, upgrade_dir, cancel=cancel)
        if isinstance(upgrade, StandardUpgrade):
            return self._stage_standard(upgrade, upgrade_dir, cancel=cancel)
        raise TypeError(f"unsupported upgrade kind: {type(upgrade).__name__}")

    def _stage_standard(
        self,
        upgrade: StandardUpgrade,
        upgrade_dir: Path,
        *,
        cancel: CancelToken | None = None,
    ) -> StandardUpgrade:
        _src = upgrade.source_dir(self.upgrade_root)
        if not _src.is_dir():
            logger.warning(f"{upgrade.id}: upgrade source path not found: {_src}")
            raise SourceMissing(f"upgrade source path not found: {_src}")

        _count = copy_tree(_src, upgrade_dir, chunk_size=self.chunk_size, cancel=cancel)
        logger.debug(f"{upgrade.id}: staged {_count} files from {_src}")
        return upgrade

    def _stage_app_update(
        self,
        upgrade: AppUpdateUpgrade,
        upgrade_dir: Path,
        *,
        cancel: CancelToken | None = None,
    ) -> AppUpdateUpgrade:
        _src = upgrade.source_file
        if not _src.is_file():
            raise SourceMissing(f"app update file not found: {_src}")

        logger.info(f"{upgrade.id}: packaging app update from {_src}")
        _written = copy_file(
            _src, upgrade_dir / _src.name, chunk_size=self.chunk_size, cancel=cancel
        )
        # no target, explode into the root of the app folder on the client
        upgrade.files = [FileDirective(path=_src.name, explode=True, size=_written)]
        return upgrade

    def _stage_self_update(
        self,
        upgrade: SelfUpdateUpgrade,
        upgrade_dir: Path,
        *,
        cancel: CancelToken | None = None,
    ) -> SelfUpdateUpgrade:
        _src = upgrade.source_file
        if not _src.is_file():
            raise SourceMissing(f"updater file not found: {_src}")

        logger.info(f"{upgrade.id}: packaging updater self-update from {_src}")
        _dst = upgrade_dir / _src.name
        _expected = _src.stat().st_size
        copy_file(_src, _dst, chunk_size=self.chunk_size, cancel=cancel)
        if (_copied := _dst.stat().st_size) != _expected:
            raise IntegrityMismatch(
                f"{upgrade.id}: copied updater size mismatch: {_copied} != {_expected}"
            )

        upgrade.files = [
            FileDirective(
                path=_src.name,
                target=upgrade.staging_target,
                explode=True,
                size=_copied,
            )
        ]
        return upgrade
