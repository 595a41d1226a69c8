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
"""Decode a (gzip compressed) TAR stream into a destination directory.

Entries whose sanitized name would resolve outside of the destination are
skipped, their contents are still consumed to keep the stream aligned.
"""

from __future__ import annotations

import gzip
import logging
import os
import zlib
from pathlib import Path
from typing import BinaryIO, Optional

from ota_update_libs.common import CancelToken, check_cancelled
from ota_update_libs.common.io import DEFAULT_FILE_CHUNK_SIZE
from ota_update_libs.errors import CorruptAsset

from .header import (
    BLOCK_SIZE,
    GNU_LONGNAME,
    PAX_GLOBAL_HEADER,
    PAX_HEADER,
    ZERO_BLOCK,
    TarHeader,
    padding_size,
    parse_header,
    parse_pax_path,
)

logger = logging.getLogger(__name__)

MAX_META_ENTRY_SIZE = 1024**2  # 1MiB


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    _buf = bytearray()
    while len(_buf) < size:
        if not (_chunk := stream.read(size - len(_buf))):
            break
        _buf += _chunk
    return bytes(_buf)


def _read_payload(stream: BinaryIO, size: int) -> bytes:
    """Read a small entry payload together with its block padding."""
    _payload = _read_exact(stream, size + padding_size(size))
    if len(_payload) != size + padding_size(size):
        raise CorruptAsset("tar stream truncated within a meta entry")
    return _payload[:size]


def _consume(
    stream: BinaryIO,
    size: int,
    dst: Optional[BinaryIO] = None,
    *,
    cancel: CancelToken | None,
    chunk_size: int,
) -> None:
    """Read <size> bytes plus block padding from <stream>, optionally into <dst>."""
    _remaining = size
    while _remaining > 0:
        check_cancelled(cancel)
        if not (_chunk := stream.read(min(_remaining, chunk_size))):
            raise CorruptAsset(f"tar stream truncated, {_remaining} bytes missing")
        if dst is not None:
            dst.write(_chunk)
        _remaining -= len(_chunk)

    if (_pad := padding_size(size)) and len(_read_exact(stream, _pad)) != _pad:
        raise CorruptAsset("tar stream truncated within block padding")


def sanitize_entry_path(dest_root: Path, name: str) -> Optional[Path]:
    """Map entry <name> into <dest_root>, None if it escapes <dest_root>.

    <dest_root> must be an absolute path.
    """
    _sanitized = name.replace("\\", "/").lstrip("/")
    if not _sanitized:
        return None
    _target = Path(os.path.normpath(dest_root / _sanitized))
    if _target == dest_root or dest_root not in _target.parents:
        return None
    return _target


def _write_regular(
    stream: BinaryIO,
    header: TarHeader,
    target: Path,
    *,
    cancel: CancelToken | None,
    chunk_size: int,
) -> bool:
    """Extract one regular file, False if <target> cannot be created.

    An earlier entry might occupy <target> or one of its parents with another
        file type, such entry is skipped with its contents consumed.
    """
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        _dst = open(target, "wb")
    except OSError as e:
        logger.warning(f"skip tar entry clashing with extracted files: {target}, {e!r}")
        _consume(stream, header.size, cancel=cancel, chunk_size=chunk_size)
        return False

    with _dst:
        _consume(stream, header.size, _dst, cancel=cancel, chunk_size=chunk_size)
    os.chmod(target, header.mode & 0o777)
    os.utime(target, (header.mtime, header.mtime))
    return True


def read_tar(
    stream: BinaryIO,
    dest_root: Path,
    *,
    cancel: CancelToken | None = None,
    chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
) -> list[Path]:
    """Extract the TAR <stream> into <dest_root>, return the extracted files."""
    dest_root = Path(os.path.abspath(dest_root))
    dest_root.mkdir(parents=True, exist_ok=True)

    extracted: list[Path] = []
    _long_name: Optional[str] = None
    while True:
        check_cancelled(cancel)
        _block = _read_exact(stream, BLOCK_SIZE)
        if not _block or _block == ZERO_BLOCK:
            break
        header = parse_header(_block)

        if header.typeflag in (GNU_LONGNAME, PAX_HEADER):
            if header.size > MAX_META_ENTRY_SIZE:
                raise CorruptAsset(f"oversized tar meta entry: {header.size}")
            _payload = _read_payload(stream, header.size)
            if header.typeflag == GNU_LONGNAME:
                _long_name = _payload.split(b"\0", 1)[0].decode(
                    "utf-8", errors="surrogateescape"
                )
            elif (_pax_path := parse_pax_path(_payload)) is not None:
                _long_name = _pax_path
            continue
        if header.typeflag == PAX_GLOBAL_HEADER:
            _consume(stream, header.size, cancel=cancel, chunk_size=chunk_size)
            continue

        _name = _long_name if _long_name is not None else header.name
        _long_name = None
        if not _name:
            break

        _target = sanitize_entry_path(dest_root, _name)
        if _target is None:
            logger.warning(f"skip tar entry with suspicious path: {_name!r}")
            _consume(stream, header.size, cancel=cancel, chunk_size=chunk_size)
            continue

        if header.is_dir:
            try:
                _target.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning(f"skip tar dir entry clashing with extracted files: {e!r}")
            _consume(stream, header.size, cancel=cancel, chunk_size=chunk_size)
        elif header.is_regular:
            if _write_regular(
                stream, header, _target, cancel=cancel, chunk_size=chunk_size
            ):
                extracted.append(_target)
        else:
            logger.warning(
                f"skip unsupported tar entry {_name!r} (type {header.typeflag!r})"
            )
            _consume(stream, header.size, cancel=cancel, chunk_size=chunk_size)
    return extracted


def read_tar_gz(
    stream: BinaryIO,
    dest_root: Path,
    *,
    cancel: CancelToken | None = None,
    chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
) -> list[Path]:
    try:
        with gzip.GzipFile(fileobj=stream, mode="rb") as _gz:
            return read_tar(_gz, dest_root, cancel=cancel, chunk_size=chunk_size)  # type: ignore[arg-type]
    except (gzip.BadGzipFile, EOFError, zlib.error) as e:
        raise CorruptAsset(f"invalid gzip stream: {e!r}") from e


def extract_tar_gz(
    archive: Path,
    dest_root: Path,
    *,
    cancel: CancelToken | None = None,
    chunk_size: int = DEFAULT_FILE_CHUNK_SIZE,
) -> list[Path]:
    """Extract the tar.gz file <archive> into <dest_root>."""
    logger.debug(f"extracting {archive} to {dest_root}")
    with open(archive, "rb") as _src:
        return read_tar_gz(_src, dest_root, cancel=cancel, chunk_size=chunk_size)
