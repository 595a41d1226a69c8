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
"""Shared test fixtures for ota-update-libs tests."""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any, Callable

import pytest

from ota_update_libs.config import ServerConfig
from ota_update_libs.tar_codec import create_tar_gz
from ota_update_libs.upgrade_manifest import MANIFESTS_DIRNAME

# 2025-01-01T00:00:00Z
BASE_MTIME = 1735689600


def set_mtime(fpath: Path, mtime: int) -> None:
    os.utime(fpath, (mtime, mtime))


def write_file(fpath: Path, content: bytes = b"", mtime: int | None = None) -> Path:
    fpath.parent.mkdir(parents=True, exist_ok=True)
    fpath.write_bytes(content)
    if mtime is not None:
        set_mtime(fpath, mtime)
    return fpath


def write_tar_gz(fpath: Path, files: dict[str, bytes], mtime: int | None = None) -> Path:
    """Create a tar.gz archive at <fpath> holding <files>."""
    _src = fpath.parent / f".src-{fpath.name}"
    for _rel, _content in files.items():
        write_file(_src / _rel, _content)
    fpath.parent.mkdir(parents=True, exist_ok=True)
    create_tar_gz(_src, fpath)
    shutil.rmtree(_src)
    if mtime is not None:
        set_mtime(fpath, mtime)
    return fpath


def write_manifest(app_folder: Path, **fields: Any) -> Path:
    """Write an upgrade manifest with camelCase <fields> into <app_folder>."""
    _manifests_dir = app_folder / MANIFESTS_DIRNAME
    _manifests_dir.mkdir(parents=True, exist_ok=True)
    _fpath = _manifests_dir / f"{fields['id']}.json"
    _fpath.write_text(json.dumps(fields, indent=2))
    return _fpath


@pytest.fixture
def apps_root(tmp_path: Path) -> Path:
    _apps_root = tmp_path / "apps"
    _apps_root.mkdir()
    return _apps_root


@pytest.fixture
def upgrade_root(tmp_path: Path) -> Path:
    _upgrade_root = tmp_path / "upgrade"
    _upgrade_root.mkdir()
    return _upgrade_root


@pytest.fixture
def server_cfg(tmp_path: Path, apps_root: Path, upgrade_root: Path) -> ServerConfig:
    return ServerConfig(
        apps_root=apps_root,
        upgrade_root=upgrade_root,
        app_folder_mapping={"Demo": "demo"},
        fallback_cache_root=tmp_path / "fallback-cache",
        scratch_root=tmp_path / "scratch",
    )


@pytest.fixture
def demo_app(apps_root: Path) -> Path:
    """App `Demo` with one stable and one newer pre-release update."""
    _folder = apps_root / "Demo"
    write_tar_gz(
        _folder / "demo-1.0.0.tar.gz",
        {"demo/app.bin": b"demo 1.0.0", "demo/VERSION": b"1.0.0"},
        mtime=BASE_MTIME,
    )
    write_tar_gz(
        _folder / "demo-1.1.0-beta.ab12cd3.tar.gz",
        {"demo/app.bin": b"demo 1.1.0 beta", "demo/VERSION": b"1.1.0-beta"},
        mtime=BASE_MTIME + 3600,
    )
    return _folder


@pytest.fixture
def make_updater(apps_root: Path) -> Callable[..., Path]:
    def _make(version: str = "2.1.0", *, bootstrap: dict[str, bytes] | None = None):
        _folder = apps_root / "Updater"
        _updater = write_tar_gz(
            _folder / f"updater-{version}.tar.gz",
            {"updater/run-updater": b"#!/bin/sh\necho updater\n"},
            mtime=BASE_MTIME,
        )
        for _name, _content in (bootstrap or {}).items():
            write_file(_folder / "bootstrap" / _name, _content)
        return _updater

    return _make
