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
"""Encode a directory tree into a gzip compressed TAR stream."""

from __future__ import annotations

import gzip
import logging
import os
from pathlib import Path
from typing import BinaryIO, Iterator, Tuple

from ota_update_libs.common import CancelToken, check_cancelled
from ota_update_libs.common.io import DEFAULT_FILE_CHUNK_SIZE
from ota_update_libs.errors import IntegrityMismatch

from .header import ZERO_BLOCK, build_header, padding_size

logger = logging.getLogger(__name__)

DEFAULT_COMPRESS_LEVEL = 6


def iter_tree_files(root: Path) -> Iterator[Tuple[str, Path]]:
    """Yield (archive name, fpath) of every regular file under <root>, sorted."""
    for curdir, dirnames, files in os.walk(root):
        dirnames.sort()
        curdir = Path(curdir)
        for _fname in sorted(files):
            _fpath = curdir / _fname
            if not _fpath.is_file():
                continue
            yield _fpath.relative_to(root).as_posix(), _fpath


def write_tar(
    root: Path,
    stream: BinaryIO,
    *,
    cancel: CancelToken | None = None,
    chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
) -> int:
    """Write every file under <root> as TAR into <stream>, return the file count."""
    _count = 0
    for _arcname, _fpath in iter_tree_files(root):
        check_cancelled(cancel)
        _stat = _fpath.stat()
        _size = _stat.st_size
        stream.write(
            build_header(
                _arcname,
                size=_size,
                mtime=int(_stat.st_mtime),
                mode=_stat.st_mode & 0o777,
            )
        )

        _written = 0
        with open(_fpath, "rb") as _src:
            while _written < _size and (
                _chunk := _src.read(min(chunk_size, _size - _written))
            ):
                check_cancelled(cancel)
                _written += stream.write(_chunk)
        if _written != _size:
            raise IntegrityMismatch(
                f"{_fpath} changed during archiving: {_written=}, expected {_size}"
            )

        if _pad := padding_size(_size):
            stream.write(bytes(_pad))
        _count += 1

    stream.write(ZERO_BLOCK)
    stream.write(ZERO_BLOCK)
    logger.debug(f"archived {_count} files from {root}")
    return _count


def write_tar_gz(
    root: Path,
    stream: BinaryIO,
    *,
    cancel: CancelToken | None = None,
    chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
    compresslevel: int = DEFAULT_COMPRESS_LEVEL,
) -> int:
    # NOTE: fixed gzip mtime and no embedded filename keep the output reproducible
    with gzip.GzipFile(
        filename="", mode="wb", fileobj=stream, compresslevel=compresslevel, mtime=0
    ) as _gz:
        return write_tar(root, _gz, cancel=cancel, chunk_size=chunk_size)  # type: ignore[arg-type]


def create_tar_gz(
    root: Path,
    output: Path,
    *,
    cancel: CancelToken | None = None,
    chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
    compresslevel: int = DEFAULT_COMPRESS_LEVEL,
) -> int:
    """Encode the tree at <root> into the tar.gz file <output>."""
    logger.debug(f"creating tar.gz archive {output} from {root}")
    with open(output, "wb") as _output:
        return write_tar_gz(
            root,
            _output,
            cancel=cancel,
            chunk_size=chunk_size,
            compresslevel=compresslevel,
        )
