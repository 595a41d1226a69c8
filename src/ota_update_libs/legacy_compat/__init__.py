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
"""Compatibility path for clients predating the upgrade protocol."""

from .detect import detect_updater_version, is_legacy_client
from .packager import (
    EMBEDDED_UPDATER_FNAME,
    LEGACY_UPGRADE_DIRNAME,
    RUN_SCRIPT_FNAME,
    LegacyPackager,
    combined_package_fname,
)
from .run_script import generate_run_script

__all__ = [
    "EMBEDDED_UPDATER_FNAME",
    "LEGACY_UPGRADE_DIRNAME",
    "RUN_SCRIPT_FNAME",
    "LegacyPackager",
    "combined_package_fname",
    "detect_updater_version",
    "generate_run_script",
    "is_legacy_client",
]
