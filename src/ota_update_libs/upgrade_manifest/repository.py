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
"""Load upgrade manifests from a manifest directory."""

from __future__ import annotations

import logging
from pathlib import Path

from .schema import StandardUpgrade

logger = logging.getLogger(__name__)

MANIFESTS_DIRNAME = "upgrade-manifests"
MANIFEST_SUFFIX = ".json"


def load_manifest(fpath: Path) -> StandardUpgrade:
    return StandardUpgrade.model_validate_json(fpath.read_bytes())


def load_all_manifests(manifests_dir: Path) -> list[StandardUpgrade]:
    """Load every manifest file directly under <manifests_dir>.

    A missing directory yields an empty list. Each file is parsed on its own,
        a malformed file is logged and skipped without failing the others.
    Manifests are always loaded fresh, nothing is cached between calls.
    """
    if not manifests_dir.is_dir():
        logger.debug(f"manifest dir {manifests_dir} not found")
        return []

    res: list[StandardUpgrade] = []
    for _fpath in sorted(manifests_dir.glob(f"*{MANIFEST_SUFFIX}")):
        if not _fpath.is_file():
            continue
        try:
            res.append(load_manifest(_fpath))
        except (OSError, ValueError) as e:
            logger.error(f"failed to parse manifest {_fpath}, skip: {e!r}")
    return res
