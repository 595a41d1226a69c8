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
"""Common shared helper functions for IO."""

from __future__ import annotations

import hashlib
import os
import shutil
from functools import partial
from pathlib import Path
from typing import Generator

from .cancel import CancelToken, check_cancelled

DEFAULT_FILE_CHUNK_SIZE = 1024**2  # 1MiB


def cal_file_digest(
    fpath: str | Path,
    digest,
    chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
    *,
    cancel: CancelToken | None = None,
) -> hashlib._Hash:
    """Generate file digest with <digest> and returns Hash object."""
    digestobj = hashlib.new(digest) if isinstance(digest, str) else digest()
    with open(fpath, "rb") as f:
        while _chunk := f.read(chunk_size):
            check_cancelled(cancel)
            digestobj.update(_chunk)
    return digestobj


file_md5 = partial(cal_file_digest, digest=hashlib.md5)
file_md5.__doc__ = "Generate file digest with md5, as update clients report it."


def iter_file_chunks(
    fpath: Path,
    *,
    chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
    cancel: CancelToken | None = None,
) -> Generator[bytes, None, None]:
    with open(fpath, "rb") as f:
        while _chunk := f.read(chunk_size):
            check_cancelled(cancel)
            yield _chunk


def copy_file(
    src: Path,
    dst: Path,
    *,
    chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
    cancel: CancelToken | None = None,
) -> int:
    """Copy <src> to <dst> chunk by chunk, return the number of bytes written.

    File mode bits are copied along with the contents.
    """
    _written = 0
    with open(dst, "wb") as _dst:
        for _chunk in iter_file_chunks(src, chunk_size=chunk_size, cancel=cancel):
            _written += _dst.write(_chunk)
    shutil.copymode(src, dst)
    return _written


def copy_tree(
    src: Path,
    dst: Path,
    *,
    chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
    cancel: CancelToken | None = None,
) -> int:
    """Recursively copy the directory <src> into <dst>, return the file count."""
    _count = 0
    dst.mkdir(parents=True, exist_ok=True)
    for curdir, dirnames, files in os.walk(src):
        check_cancelled(cancel)
        dirnames.sort()
        curdir = Path(curdir)
        _dst_dir = dst / curdir.relative_to(src)
        _dst_dir.mkdir(parents=True, exist_ok=True)
        for _fname in sorted(files):
            check_cancelled(cancel)
            copy_file(
                curdir / _fname, _dst_dir / _fname, chunk_size=chunk_size, cancel=cancel
            )
            _count += 1
    return _count


def remove_file(_fpath: Path, *, ignore_error: bool = True) -> None:
    """Use proper way to remove <_fpath>."""
    try:
        _fpath.unlink(missing_ok=True)
    except IsADirectoryError:
        return shutil.rmtree(_fpath, ignore_errors=ignore_error)
    except PermissionError:
        # NOTE: on some platforms unlinking a directory raises PermissionError
        if _fpath.is_dir():
            return shutil.rmtree(_fpath, ignore_errors=ignore_error)
        if not ignore_error:
            raise
    except Exception:
        if not ignore_error:
            raise
