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
"""Detect update clients that predate the upgrade protocol."""

from __future__ import annotations

import logging
import re
from typing import Mapping, Optional

from ota_update_libs.app_version import AppVersion

logger = logging.getLogger(__name__)

USER_AGENT_HEADER = "User-Agent"
UPDATER_VERSION_HEADER = "X-Updater-Version"
USER_AGENT_PATTERN = re.compile(r"AppUpdater/(?P<version>\d+\.\d+\.\d+)")

DEFAULT_MIN_UPDATER_VERSION = AppVersion.parse("2.0.0")


def _get_header(headers: Mapping[str, str], name: str) -> str:
    """Case-insensitive header lookup."""
    if (_value := headers.get(name)) is not None:
        return _value.strip()

    _name = name.lower()
    for _key, _value in headers.items():
        if _key.lower() == _name:
            return _value.strip()
    return ""


def detect_updater_version(headers: Mapping[str, str]) -> Optional[AppVersion]:
    """Find the version of the requesting updater from the request headers.

    The `AppUpdater/<x.y.z>` marker in the User-Agent takes precedence over
        the `X-Updater-Version` header.
    """
    if _user_agent := _get_header(headers, USER_AGENT_HEADER):
        if _ma := USER_AGENT_PATTERN.search(_user_agent):
            if _version := AppVersion.try_parse(_ma.group("version")):
                logger.debug(f"detected updater version {_version} from User-Agent")
                return _version

    if _header_version := _get_header(headers, UPDATER_VERSION_HEADER):
        if _version := AppVersion.try_parse(_header_version):
            logger.debug(f"detected updater version {_version} from header")
            return _version
        logger.debug(f"ignore unparsable updater version: {_header_version!r}")
    return None


def is_legacy_client(
    headers: Mapping[str, str],
    min_version: AppVersion = DEFAULT_MIN_UPDATER_VERSION,
) -> bool:
    """Whether the request comes from an updater older than <min_version>.

    A request without a (parsable) updater version is treated as legacy.
    """
    _version = detect_updater_version(headers)
    if _version is None:
        logger.debug("no updater version detected, assume legacy updater")
        return True

    _legacy = _version < min_version
    logger.debug(f"updater {_version}, legacy: {_legacy} (min: {min_version})")
    return _legacy
