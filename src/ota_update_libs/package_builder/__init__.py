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
"""Package building with an on-disk, per app cache."""

from .builder import (
    PACKAGE_MANIFEST_FNAME,
    UPGRADE_MANIFEST_FNAME,
    UPGRADES_DIRNAME,
    PackageBuilder,
)
from .cache import CACHE_DIRNAME, PackageCache, compute_fingerprint, probe_writable

__all__ = [
    "CACHE_DIRNAME",
    "PACKAGE_MANIFEST_FNAME",
    "UPGRADES_DIRNAME",
    "UPGRADE_MANIFEST_FNAME",
    "PackageBuilder",
    "PackageCache",
    "compute_fingerprint",
    "probe_writable",
]
