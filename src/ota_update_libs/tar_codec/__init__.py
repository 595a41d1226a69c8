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
"""Streaming TAR(+gzip) codec, the wire format of update packages."""

from .decoder import extract_tar_gz, read_tar, read_tar_gz, sanitize_entry_path
from .encoder import create_tar_gz, iter_tree_files, write_tar, write_tar_gz
from .header import BLOCK_SIZE, TarHeader, build_header, parse_header

__all__ = [
    "BLOCK_SIZE",
    "TarHeader",
    "build_header",
    "create_tar_gz",
    "extract_tar_gz",
    "iter_tree_files",
    "parse_header",
    "read_tar",
    "read_tar_gz",
    "sanitize_entry_path",
    "write_tar",
    "write_tar_gz",
]
