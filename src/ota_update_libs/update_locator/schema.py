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
"""Records of the update files stored in one app folder."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from ota_update_libs.app_version import AppVersion
from ota_update_libs.common import mtime_utc

TAR_GZ_EXT = ".tar.gz"
EXE_EXT = ".exe"
SUPPORTED_EXTS = (TAR_GZ_EXT, EXE_EXT)

UPDATE_FNAME_PATTERN = re.compile(
    r"^(?P<name>.+?)-(?P<version>[vV]?\d+(?:\.\d+){1,3}"
    r"(?:-(?:alpha|beta|preview|rc)(?:\.[0-9A-Za-z]+)?)?)$",
    re.IGNORECASE,
)


def split_update_fname(fname: str) -> tuple[str, str] | None:
    """Split <fname> into stem and one of the supported extensions."""
    _lower = fname.lower()
    for _ext in SUPPORTED_EXTS:
        if _lower.endswith(_ext) and len(fname) > len(_ext):
            return fname[: -len(_ext)], fname[-len(_ext) :]
    return None


def version_from_fname(fname: str) -> Optional[AppVersion]:
    """Derive the version from `<name>-<version>.<ext>`, None if not possible."""
    if not (_split := split_update_fname(fname)):
        return None
    _stem, _ = _split
    if not (_ma := UPDATE_FNAME_PATTERN.match(_stem)):
        return None
    return AppVersion.try_parse(_ma.group("version"))


@dataclass(frozen=True)
class UpdateFileRecord:
    """One update file found during a folder scan, never persisted.

    A file without a parseable version is a wildcard, it is always the latest.
    """

    path: Path
    version: Optional[AppVersion]
    last_modified: datetime

    @classmethod
    def from_path(cls, fpath: Path) -> UpdateFileRecord:
        return cls(
            path=fpath,
            version=version_from_fname(fpath.name),
            last_modified=mtime_utc(fpath),
        )

    @property
    def is_wildcard(self) -> bool:
        return self.version is None

    @property
    def is_prerelease(self) -> bool:
        return self.version is not None and self.version.is_prerelease

    @property
    def rank_key(self) -> Tuple[int, tuple, datetime, str]:
        """Bigger is newer: wildcard first, then version, then mtime."""
        if self.version is None:
            return 1, (), self.last_modified, self.path.name
        return 0, self.version.sort_key, self.last_modified, self.path.name


@dataclass(frozen=True)
class AppUpdateInfo:
    """The latest file of the stable and the pre-release track of one app."""

    latest_stable: Optional[UpdateFileRecord] = None
    latest_prerelease: Optional[UpdateFileRecord] = None
