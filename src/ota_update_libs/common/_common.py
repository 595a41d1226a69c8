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

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

DEFAULT_TMP_FNAME_PREFIX = "tmp"


def tmp_fname(
    hint: str = "",
    prefix: str = DEFAULT_TMP_FNAME_PREFIX,
    suffix: str = "",
    sep: str = "_",
    *,
    random_bytes: int = 4,
) -> str:
    return f"{prefix}{sep}{hint}{sep}{os.urandom(random_bytes).hex()}{suffix}"


def mtime_utc(fpath: Path) -> datetime:
    """Return the last modification time of <fpath>, trimmed to whole seconds."""
    _mtime = int(fpath.stat().st_mtime)
    return datetime.fromtimestamp(_mtime, tz=timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Normalize <dt> to an aware UTC datetime, naive input is treated as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
