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
"""USTAR header records.

Layout of the 512 bytes header block(offset, length):
    name(0, 100), mode(100, 8), uid(108, 8), gid(116, 8), size(124, 12),
    mtime(136, 12), chksum(148, 8), typeflag(156, 1), linkname(157, 100),
    magic(257, 6), version(263, 2), uname(265, 32), gname(297, 32),
    devmajor(329, 8), devminor(337, 8), prefix(345, 155).

Numeric fields are octal ASCII. The checksum is the sum of all header bytes
    with the checksum field itself counted as ASCII spaces.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ota_update_libs.errors import CorruptAsset

logger = logging.getLogger(__name__)

BLOCK_SIZE = 512
ZERO_BLOCK = bytes(BLOCK_SIZE)

NAME_SIZE = 100
PREFIX_SIZE = 155
MAX_OCTAL_SIZE = 0o77777777777  # 11 octal digits

REGTYPE = b"0"
AREGTYPE = b"\0"
DIRTYPE = b"5"
GNU_LONGNAME = b"L"
PAX_HEADER = b"x"
PAX_GLOBAL_HEADER = b"g"

USTAR_MAGIC = b"ustar\0"
USTAR_VERSION = b"00"
DEFAULT_FILE_MODE = 0o644
PLACEHOLDER_ID = b"0000000 "

_CHKSUM_OFFSET, _CHKSUM_LEN = 148, 8


def padding_size(size: int) -> int:
    return (BLOCK_SIZE - size % BLOCK_SIZE) % BLOCK_SIZE


def _split_long_name(name: bytes) -> tuple[bytes, bytes]:
    """Split <name> into (prefix, name) at a `/`, or truncate it."""
    if len(name) <= NAME_SIZE:
        return b"", name
    for _idx in range(len(name) - 1, -1, -1):
        if name[_idx : _idx + 1] != b"/":
            continue
        _prefix, _name = name[:_idx], name[_idx + 1 :]
        if len(_name) > NAME_SIZE:
            break
        if _name and len(_prefix) <= PREFIX_SIZE:
            return _prefix, _name
    logger.warning(f"entry name too long, truncated: {name!r}")
    _cut = NAME_SIZE
    # never cut inside a multi-byte utf-8 sequence
    while _cut > 0 and name[_cut] & 0xC0 == 0x80:
        _cut -= 1
    return b"", name[:_cut]


def _header_checksums(block: bytes | bytearray) -> tuple[int, int]:
    """Return the unsigned and the signed checksum of <block>."""
    _spaces = 0x20 * _CHKSUM_LEN
    _rest = bytes(block[:_CHKSUM_OFFSET]) + bytes(block[_CHKSUM_OFFSET + _CHKSUM_LEN :])
    _unsigned = sum(_rest) + _spaces
    _signed = sum(_b - 256 if _b > 127 else _b for _b in _rest) + _spaces
    return _unsigned, _signed


def build_header(
    name: str,
    *,
    size: int,
    mtime: int,
    mode: int = DEFAULT_FILE_MODE,
    typeflag: bytes = REGTYPE,
) -> bytes:
    if not 0 <= size <= MAX_OCTAL_SIZE:
        raise ValueError(f"{name}: {size=} cannot be stored in a ustar header")

    buf = bytearray(BLOCK_SIZE)
    _prefix, _name = _split_long_name(name.encode("utf-8"))
    buf[0 : len(_name)] = _name
    buf[100:108] = f"{mode & 0o7777:07o} ".encode()
    buf[108:116] = PLACEHOLDER_ID
    buf[116:124] = PLACEHOLDER_ID
    buf[124:136] = f"{size:011o} ".encode()
    buf[136:148] = f"{max(mtime, 0) & MAX_OCTAL_SIZE:011o} ".encode()
    buf[156:157] = typeflag
    buf[257:263] = USTAR_MAGIC
    buf[263:265] = USTAR_VERSION
    buf[345 : 345 + len(_prefix)] = _prefix

    _chksum, _ = _header_checksums(buf)
    buf[_CHKSUM_OFFSET : _CHKSUM_OFFSET + _CHKSUM_LEN] = f"{_chksum:06o} \0".encode()
    return bytes(buf)


def _parse_number(field: bytes, *, field_name: str) -> int:
    if field[:1] and field[0] & 0x80:  # GNU base-256 extension
        _res = 0
        for _b in bytes([field[0] & 0x7F]) + field[1:]:
            _res = (_res << 8) | _b
        return _res

    _stripped = field.split(b"\0", 1)[0].strip(b" \0")
    if not _stripped:
        return 0
    try:
        return int(_stripped, 8)
    except ValueError:
        raise CorruptAsset(f"invalid {field_name} field in tar header: {field!r}") from None


def _parse_str(field: bytes) -> str:
    return field.split(b"\0", 1)[0].decode("utf-8", errors="surrogateescape")


@dataclass
class TarHeader:
    name: str
    mode: int
    size: int
    mtime: int
    typeflag: bytes

    @property
    def is_regular(self) -> bool:
        return self.typeflag in (REGTYPE, AREGTYPE)

    @property
    def is_dir(self) -> bool:
        return self.typeflag == DIRTYPE


def parse_header(block: bytes) -> TarHeader:
    if len(block) != BLOCK_SIZE:
        raise CorruptAsset(f"incomplete tar header: {len(block)} bytes")

    _stored = _parse_number(block[148:156], field_name="chksum")
    if _stored not in _header_checksums(block):
        raise CorruptAsset("tar header checksum mismatch")

    _name = _parse_str(block[0:100])
    if block[257:262] == USTAR_MAGIC[:5] and (_prefix := _parse_str(block[345:500])):
        _name = f"{_prefix}/{_name}"

    return TarHeader(
        name=_name,
        mode=_parse_number(block[100:108], field_name="mode") or DEFAULT_FILE_MODE,
        size=_parse_number(block[124:136], field_name="size"),
        mtime=_parse_number(block[136:148], field_name="mtime"),
        typeflag=block[156:157],
    )


def parse_pax_path(payload: bytes) -> str | None:
    """Return the `path` record of a pax extended header payload, if any."""
    _res, _pos = None, 0
    while _pos < len(payload):
        _space = payload.find(b" ", _pos)
        if _space < 0:
            break
        try:
            _len = int(payload[_pos:_space])
        except ValueError:
            raise CorruptAsset("invalid pax extended header record") from None
        if _len <= 0:
            break
        _record = payload[_space + 1 : _pos + _len].rstrip(b"\n")
        _key, _, _value = _record.partition(b"=")
        if _key == b"path":
            _res = _value.decode("utf-8", errors="surrogateescape")
        _pos += _len
    return _res
