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

from .build_package import build_package_cmd_args
from .check import check_cmd_args
from .codec import pack_cmd_args, unpack_cmd_args
from .fetch_update import fetch_update_cmd_args
from .latest_info import latest_info_cmd_args
from .list_upgrades import list_upgrades_cmd_args

__all__ = [
    "build_package_cmd_args",
    "check_cmd_args",
    "fetch_update_cmd_args",
    "latest_info_cmd_args",
    "list_upgrades_cmd_args",
    "pack_cmd_args",
    "unpack_cmd_args",
]
