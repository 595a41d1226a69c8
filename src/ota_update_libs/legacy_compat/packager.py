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
"""Combined app update + updater archives for legacy clients.

Legacy clients don't speak the upgrade protocol, the only way to get a new
    updater onto them is to embed it into the plain app update: the combined
    archive carries the updater under `upgrade/` together with a `run.sh`
    that the legacy client executes after extracting the app update.
"""

from __future__ import annotations

import hashlib
import logging
import os
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
from ota_update_libs.errors import IntegrityMismatch, NotFound
from ota_update_libs.package_builder import CACHE_DIRNAME, PackageCache
from ota_update_libs.tar_codec import create_tar_gz, extract_tar_gz
from ota_update_libs.update_locator import TAR_GZ_EXT, UpdateFileRecord, UpdateLocator

from .run_script import generate_run_script

logger = logging.getLogger(__name__)

LEGACY_UPGRADE_DIRNAME = "upgrade"
EMBEDDED_UPDATER_FNAME = "updater-new.tar.gz"
RUN_SCRIPT_FNAME = "run.sh"
RUN_SCRIPT_MODE = 0o755
BOOTSTRAP_DIRNAME = "bootstrap"
COMBINED_PACKAGE_PREFIX = "app-with-updater"
COMBINED_PACKAGE_DIGEST_LEN = 32
SCRATCH_DIR_PREFIX = "ota-legacy-build-"


def combined_package_fname(app_update: Path, updater: Path) -> str:
    """Cache file name of the combination of <app_update> and <updater>.

    Both assets are identified by their name, size and mtime, a changed asset
        yields a new cache entry.
    """
    _hasher = hashlib.sha256()
    for _asset in (app_update, updater):
        _stat = _asset.stat()
        _hasher.update(f"{_asset.name}\0{_stat.st_size}\0{_stat.st_mtime_ns}\0".encode())
    return (
        f"{COMBINED_PACKAGE_PREFIX}-"
        f"{_hasher.hexdigest()[:COMBINED_PACKAGE_DIGEST_LEN]}{TAR_GZ_EXT}"
    )


class LegacyPackager:
    """Embed the latest updater into plain app updates served to legacy clients.

    Args:
        locator (UpdateLocator): locates the app and updater folders.
        cache (PackageCache): where combined archives are published.
        updater_app_name (str): app name of the updater.
        min_updater_version (AppVersion): an updater is only embedded when
            the latest stable updater is at least this version.
        device_root (str): the home folder of apps on the device.
        updater_install_dir (str): where the run script installs the updater.
    """

    def __init__(
        self,
        locator: UpdateLocator,
        cache: PackageCache,
        *,
        updater_app_name: str,
        min_updater_version: AppVersion,
        device_root: str,
        updater_install_dir: str,
        scratch_root: Optional[Path] = None,
        chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
    ) -> None:
        self._locator = locator
        self._cache = cache
        self.updater_app_name = updater_app_name
        self.min_updater_version = min_updater_version
        self.device_root = device_root
        self.updater_install_dir = updater_install_dir
        self.scratch_root = scratch_root
        self.chunk_size = chunk_size

    def latest_updater(self) -> Optional[UpdateFileRecord]:
        if not (_folder := self._locator.get_folder(self.updater_app_name)):
            logger.debug("updater folder not found")
            return None
        return self._locator.scan_latest(_folder, include_prerelease=False)

    def updater_update_due(self) -> Optional[UpdateFileRecord]:
        """Return the updater to embed, None if no updater update is due."""
        _latest = self.latest_updater()
        if _latest is None or _latest.version is None:
            logger.debug("no stable versioned updater found")
            return None

        _due = not _latest.version < self.min_updater_version
        logger.info(
            f"updater update due: {_due} "
            f"(latest: {_latest.version}, min: {self.min_updater_version})"
        )
        return _latest if _due else None

    def package_app_update_with_updater(
        self,
        app_name: str,
        app_update_path: Path,
        app_folder_name: Optional[str] = None,
        *,
        cancel: CancelToken | None = None,
    ) -> Optional[Path]:
        """Build (or reuse) the combined archive for <app_update_path>.

        Returns:
            The path to the combined archive, or None if the app update should
                be served unmodified.
        """
        if not app_update_path.name.lower().endswith(TAR_GZ_EXT):
            logger.info(
                f"{app_update_path.name} is not a tar.gz archive, "
                "serve it without embedded updater"
            )
            return None

        if (_updater := self.updater_update_due()) is None:
            logger.info("no updater update due, serve app update as is")
            return None

        if not (app_folder := self._locator.get_folder(app_name)):
            raise NotFound(f"app folder not found for {app_name}")

        _bootstrap_dir = _updater.path.parent / BOOTSTRAP_DIRNAME
        _build = partial(
            self._build,
            app_update_path,
            _updater.path,
            _bootstrap_dir,
            app_folder_name or app_name.lower(),
            cancel=cancel,
        )
        return self._cache.get_or_build(
            app_name,
            app_folder / CACHE_DIRNAME,
            combined_package_fname(app_update_path, _updater.path),
            _build,
            cancel=cancel,
        )

    def _build(
        self,
        app_update_path: Path,
        updater_path: Path,
        bootstrap_dir: Path,
        app_folder_name: str,
        output: Path,
        *,
        cancel: CancelToken | None = None,
    ) -> None:
        logger.info(f"packaging {app_update_path.name} with updater {updater_path.name}")
        if self.scratch_root is not None:
            self.scratch_root.mkdir(parents=True, exist_ok=True)
        scratch_dir = Path(
            tempfile.mkdtemp(prefix=SCRATCH_DIR_PREFIX, dir=self.scratch_root)
        )
        try:
            extract_tar_gz(
                app_update_path, scratch_dir, cancel=cancel, chunk_size=self.chunk_size
            )
            check_cancelled(cancel)

            upgrade_dir = scratch_dir / LEGACY_UPGRADE_DIRNAME
            upgrade_dir.mkdir(exist_ok=True)

            _embedded = upgrade_dir / EMBEDDED_UPDATER_FNAME
            _expected = updater_path.stat().st_size
            if (
                _written := copy_file(
                    updater_path, _embedded, chunk_size=self.chunk_size, cancel=cancel
                )
            ) != _expected:
                raise IntegrityMismatch(
                    f"embedded updater size mismatch: {_written} != {_expected}"
                )

            _with_bootstrap = False
            if bootstrap_dir.is_dir():
                _count = copy_tree(
                    bootstrap_dir,
                    upgrade_dir / BOOTSTRAP_DIRNAME,
                    chunk_size=self.chunk_size,
                    cancel=cancel,
                )
                _with_bootstrap = _count > 0
                logger.debug(f"bundled {_count} bootstrap files from {bootstrap_dir}")

            _run_script = upgrade_dir / RUN_SCRIPT_FNAME
            _run_script.write_text(
                generate_run_script(
                    app_folder=app_folder_name,
                    device_root=self.device_root,
                    updater_fname=EMBEDDED_UPDATER_FNAME,
                    destination_dir=self.updater_install_dir,
                    bootstrap_dirname=BOOTSTRAP_DIRNAME if _with_bootstrap else None,
                ),
                encoding="utf-8",
            )
            os.chmod(_run_script, RUN_SCRIPT_MODE)

            create_tar_gz(scratch_dir, output, cancel=cancel, chunk_size=self.chunk_size)
            logger.info(
                f"packaged app update with updater: {output.stat().st_size} bytes"
            )
        finally:
            remove_file(scratch_dir)
