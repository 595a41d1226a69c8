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
"""Response shapes of the boundary operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Generator, Optional

from ota_update_libs.common import AliasEnabledModel, CancelToken, mtime_utc
from ota_update_libs.common.io import DEFAULT_FILE_CHUNK_SIZE, iter_file_chunks
from ota_update_libs.errors import CorruptAsset
from ota_update_libs.update_locator import EXE_EXT, TAR_GZ_EXT, UpdateFileRecord

GZIP_CONTENT_TYPE = "application/gzip"
EXE_CONTENT_TYPE = "application/vnd.microsoft.portable-executable"
GZIP_EXT = ".gz"
DEFAULT_DOWNLOAD_STEM = "update"


def make_etag(last_modified: int, size: int) -> str:
    return f'"{last_modified:x}-{size:x}"'


@dataclass(frozen=True)
class ServedFile:
    """A file to be streamed to an update client."""

    path: Path
    content_type: str
    download_name: str
    last_modified: datetime
    size: int

    @property
    def etag(self) -> str:
        return make_etag(int(self.last_modified.timestamp()), self.size)

    def iter_chunks(
        self,
        *,
        chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
        cancel: CancelToken | None = None,
    ) -> Generator[bytes, None, None]:
        yield from iter_file_chunks(self.path, chunk_size=chunk_size, cancel=cancel)

    @classmethod
    def for_update_file(cls, fpath: Path) -> ServedFile:
        """Serve a stored update file.

        The original file name is kept only if it is in `<name>-<version>` form,
            otherwise the file is served as `update.tar.gz` or `update.exe`.

        Raises:
            CorruptAsset: if <fpath> is neither an executable nor a tarball.
        """
        _fname = fpath.name
        _lower = _fname.lower()
        if _lower.endswith(EXE_EXT):
            _content_type, _ext = EXE_CONTENT_TYPE, EXE_EXT
        elif _lower.endswith(GZIP_EXT):
            _content_type, _ext = GZIP_CONTENT_TYPE, TAR_GZ_EXT
        else:
            raise CorruptAsset(
                f"{fpath} is neither an executable nor a tarball, "
                "please contact the administrator"
            )

        _download_name = (
            _fname if _fname.count("-") == 1 else f"{DEFAULT_DOWNLOAD_STEM}{_ext}"
        )
        return cls(
            path=fpath,
            content_type=_content_type,
            download_name=_download_name,
            last_modified=mtime_utc(fpath),
            size=fpath.stat().st_size,
        )

    @classmethod
    def for_package(cls, fpath: Path) -> ServedFile:
        """Serve a package built by the server under its own file name."""
        return cls(
            path=fpath,
            content_type=GZIP_CONTENT_TYPE,
            download_name=fpath.name,
            last_modified=mtime_utc(fpath),
            size=fpath.stat().st_size,
        )


class LatestFileInfo(AliasEnabledModel):
    version: Optional[str] = None
    file: str
    last_modified: datetime

    @classmethod
    def from_record(cls, record: UpdateFileRecord) -> LatestFileInfo:
        return cls(
            version=str(record.version) if record.version else None,
            file=record.path.name,
            last_modified=record.last_modified,
        )


class LatestInfo(AliasEnabledModel):
    stable: Optional[LatestFileInfo] = None
    prerelease: Optional[LatestFileInfo] = None
