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
"""Server configuration, loaded from a YAML or JSON file."""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import Field
from typing_extensions import Self

from ota_update_libs.app_version import AppVersion
from ota_update_libs.common import AliasEnabledModel, StrOrPath

logger = logging.getLogger(__name__)

DEFAULT_APPS_ROOT = "apps"
DEFAULT_UPGRADE_ROOT = "upgrade"
DEFAULT_UPDATER_APP_NAME = "Updater"
DEFAULT_MIN_UPDATER_VERSION = "2.0.0"
DEFAULT_DEVICE_ROOT = "/home/device"
DEFAULT_FALLBACK_CACHE_DIRNAME = "ota-update-cache"
DEFAULT_READ_CHUNK_SIZE = 1024**2  # 1MiB


def _default_fallback_cache_root() -> Path:
    return Path(tempfile.gettempdir()) / DEFAULT_FALLBACK_CACHE_DIRNAME


class ServerConfig(AliasEnabledModel):
    apps_root: Path = Path(DEFAULT_APPS_ROOT)
    upgrade_root: Path = Path(DEFAULT_UPGRADE_ROOT)
    app_names: Dict[str, str] = Field(default_factory=dict)
    app_folder_mapping: Dict[str, str] = Field(default_factory=dict)
    updater_app_name: str = DEFAULT_UPDATER_APP_NAME
    min_updater_version: AppVersion = AppVersion.parse(DEFAULT_MIN_UPDATER_VERSION)
    device_root: str = DEFAULT_DEVICE_ROOT
    installer_staging_dir: Optional[str] = None
    fallback_cache_root: Path = Field(default_factory=_default_fallback_cache_root)
    scratch_root: Optional[Path] = None
    read_chunk_size: int = Field(default=DEFAULT_READ_CHUNK_SIZE, gt=0)

    @property
    def updater_install_dir(self) -> str:
        return f"{self.device_root.rstrip('/')}/updater"

    @property
    def staging_dir(self) -> str:
        if self.installer_staging_dir:
            return self.installer_staging_dir.rstrip("/")
        return f"{self.updater_install_dir}/pending-update"

    def device_app_folder(self, app_name: str) -> str:
        """The folder name of <app_name> on the device."""
        if (_folder := self.app_folder_mapping.get(app_name)) is not None:
            return _folder
        logger.warning(
            f"unknown app name {app_name!r} in app folder mapping, "
            f"use default folder name: {app_name.lower()}"
        )
        return app_name.lower()

    def resolve_paths(self, base_dir: Path) -> Self:
        """Return a copy with relative server side paths anchored at <base_dir>."""
        _update = {}
        for _field in ("apps_root", "upgrade_root", "fallback_cache_root", "scratch_root"):
            _value: Optional[Path] = getattr(self, _field)
            if _value is not None and not _value.is_absolute():
                _update[_field] = base_dir / _value
        return self.model_copy(update=_update)


def load_config(fpath: StrOrPath) -> ServerConfig:
    fpath = Path(fpath)
    _raw_text = fpath.read_text(encoding="utf-8")
    if fpath.suffix in (".yaml", ".yml"):
        _raw = yaml.safe_load(_raw_text) or {}
    elif fpath.suffix == ".json":
        _raw = json.loads(_raw_text)
    else:
        raise ValueError(f"{fpath} is not a JSON or YAML file.")
    return ServerConfig.model_validate(_raw).resolve_paths(fpath.parent.resolve())
