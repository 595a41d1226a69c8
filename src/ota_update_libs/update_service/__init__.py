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
"""Boundary operations over the upgrade engine."""

from .schema import (
    EXE_CONTENT_TYPE,
    GZIP_CONTENT_TYPE,
    LatestFileInfo,
    LatestInfo,
    ServedFile,
    make_etag,
)
from .service import UpdateService

__all__ = [
    "EXE_CONTENT_TYPE",
    "GZIP_CONTENT_TYPE",
    "LatestFileInfo",
    "LatestInfo",
    "ServedFile",
    "UpdateService",
    "make_etag",
]
