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
"""Locate app folders and the latest update file within them."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Mapping, Optional

from ota_update_libs.app_version import AppVersion
from ota_update_libs.common import as_utc
from ota_update_libs.common.io import file_md5

from .schema import AppUpdateInfo, UpdateFileRecord

logger = logging.getLogger(__name__)


def _is_plain_name(name: str) -> bool:
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


class UpdateLocator:
    """Resolve app folders and rank the update files stored in them.

    Args:
        apps_root (Path): the folder holding one sub folder per app.
        app_names (Mapping[str, str]): read-only app name to folder name mapping.
    """

    def __init__(self, apps_root: Path, app_names: Mapping[str, str]) -> None:
        self.apps_root = Path(apps_root)
        self._app_names = app_names

    def get_folder(self, app_name: str) -> Optional[Path]:
        if not _is_plain_name(app_name):
            logger.warning(f"reject invalid app name: {app_name!r}")
            return None

        if (_mapped := self._app_names.get(app_name)) is not None:
            _folder = self.apps_root / _mapped
            if _folder.is_dir():
                return _folder
            logger.warning(f"{app_name=} is mapped to {_folder}, which doesn't exist")
            return None

        _folder = self.apps_root / app_name
        if _folder.is_dir():
            return _folder
        return None

    @staticmethod
    def scan_folder(folder: Path) -> list[UpdateFileRecord]:
        """List all update file records directly under <folder>."""
        if not folder.is_dir():
            return []
        return [
            UpdateFileRecord.from_path(_entry)
            for _entry in folder.iterdir()
            if _entry.is_file() and not _entry.name.startswith(".")
        ]

    def scan_latest(
        self, folder: Path, include_prerelease: bool
    ) -> Optional[UpdateFileRecord]:
        _candidates = self.scan_folder(folder)
        if not include_prerelease:
            _candidates = [_r for _r in _candidates if not _r.is_prerelease]
        if not _candidates:
            return None
        return max(_candidates, key=lambda _r: _r.rank_key)

    def get_latest_update_info(self, folder: Path) -> AppUpdateInfo:
        return AppUpdateInfo(
            latest_stable=self.scan_latest(folder, include_prerelease=False),
            latest_prerelease=self.scan_latest(folder, include_prerelease=True),
        )

    def get_update_file_for_app(
        self, app_name: str, include_prerelease: bool
    ) -> Optional[Path]:
        if not (_folder := self.get_folder(app_name)):
            return None
        if _latest := self.scan_latest(_folder, include_prerelease):
            return _latest.path
        return None

    def check_version(
        self,
        folder: Path,
        client_version: Optional[AppVersion],
        client_modified_since: Optional[datetime],
        client_checksum: Optional[str],
        include_prerelease: bool,
    ) -> bool:
        """Check whether the client is up to date with the latest file in <folder>.

        Returns:
            True if up-to-date, otherwise False.
        """
        latest = self.scan_latest(folder, include_prerelease)
        if latest is None:
            logger.debug(f"no update file in {folder}, treat as up to date")
            return True

        if client_version is None and client_modified_since is None:
            return False

        if (
            latest.version is not None
            and client_version is not None
            and client_version < latest.version
        ):
            return False

        if (
            client_modified_since is not None
            and latest.last_modified > as_utc(client_modified_since)
        ):
            return False

        if client_checksum:
            _checksum = file_md5(latest.path).hexdigest()
            return _checksum.lower() == client_checksum.strip().lower()
        return True
