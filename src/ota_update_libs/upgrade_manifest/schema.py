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
"""Upgrade manifest documents, camelCase JSON on the wire.

Manifests loaded from disk are always `StandardUpgrade`. `AppUpdateUpgrade` and
    `SelfUpdateUpgrade` are synthesized per resolution; they carry their kind
    specific payload as excluded fields and still export the legacy
    `metadata.Type` discriminator so that update clients can tell them apart.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import Field

from ota_update_libs.app_version import AppVersion
from ota_update_libs.common import AliasEnabledModel

METADATA_TYPE_KEY = "Type"


class UpgradeKind(str, Enum):
    STANDARD = "Standard"
    APP_UPDATE = "AppUpdate"
    SELF_UPDATE = "UpdaterSelfUpdate"


class VersionRange(AliasEnabledModel):
    """Client versions a manifest applies to.

    `min_version` is inclusive, `max_version` is exclusive.
    """

    min_version: Optional[AppVersion] = None
    max_version: Optional[AppVersion] = None
    exclude_versions: Optional[List[str]] = None

    def contains(self, version: AppVersion) -> bool:
        if self.min_version is not None and version < self.min_version:
            return False
        if self.max_version is not None and not version < self.max_version:
            return False
        if self.exclude_versions:
            _literals = {version.raw, version.format()}
            for _excluded in self.exclude_versions:
                if _excluded in _literals:
                    return False
                if (_parsed := AppVersion.try_parse(_excluded)) and _parsed == version:
                    return False
        return True


class UpgradeStorage(AliasEnabledModel):
    type: Optional[str] = None
    base_path: Optional[str] = None
    path: Optional[str] = None


class FileDirective(AliasEnabledModel):
    """Placement of one file of an upgrade on the client."""

    path: str
    target: Optional[str] = None
    permissions: Optional[str] = None
    required: bool = False
    executable: bool = False
    explode: bool = False
    backup: bool = False
    run_order: int = 0
    size: int = 0
    checksum: Optional[str] = None


class UpgradeChecksum(AliasEnabledModel):
    algorithm: str
    value: str


class UpgradeManifest(AliasEnabledModel):
    kind: ClassVar[UpgradeKind]

    id: str = Field(min_length=1)
    name: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None
    type: Optional[str] = None
    applies_to: Optional[VersionRange] = None
    target_version: Optional[AppVersion] = None
    priority: int = 0
    dependencies: List[str] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    storage: Optional[UpgradeStorage] = None
    files: List[FileDirective] = Field(default_factory=list)
    pre_install_script: Optional[str] = None
    post_install_script: Optional[str] = None
    rollback_script: Optional[str] = None
    checksum: Optional[UpgradeChecksum] = None
    metadata: Optional[Dict[str, Any]] = None

    def applies_to_version(self, version: AppVersion) -> bool:
        return self.applies_to is None or self.applies_to.contains(version)

    @property
    def estimated_size(self) -> int:
        return sum(_f.size for _f in self.files)


class StandardUpgrade(UpgradeManifest):
    kind = UpgradeKind.STANDARD

    def source_dir(self, default_base: Path) -> Path:
        """Where the upgrade payload is stored on the server."""
        _storage = self.storage
        _base = Path(_storage.base_path) if _storage and _storage.base_path else default_base
        _rel = _storage.path if _storage and _storage.path else ""
        return _base / _rel


class AppUpdateUpgrade(UpgradeManifest):
    kind = UpgradeKind.APP_UPDATE

    source_file: Path = Field(exclude=True)


class SelfUpdateUpgrade(UpgradeManifest):
    kind = UpgradeKind.SELF_UPDATE

    source_file: Path = Field(exclude=True)
    staging_target: str = Field(exclude=True)


class UpgradePackageManifest(AliasEnabledModel):
    """The package level manifest at the root of an upgrade package."""

    from_version: str
    to_version: str
    upgrades: List[str] = Field(default_factory=list)


class ApplicableUpgradesResult(AliasEnabledModel):
    target_version: AppVersion
    upgrades: List[UpgradeManifest] = Field(default_factory=list)
    estimated_size: int = 0

    @property
    def upgrade_ids(self) -> list[str]:
        return [_u.id for _u in self.upgrades]


class UpgradeSummary(AliasEnabledModel):
    id: str
    name: Optional[str] = None
    priority: int = 0


class UpgradeInfo(AliasEnabledModel):
    """Summary returned to clients asking for applicable upgrades."""

    current_version: str
    target_version: str
    upgrades: List[UpgradeSummary]
    package_size: int
    requires_download: bool = True
