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
"""The shell script a legacy client runs to install the embedded updater."""

from __future__ import annotations

import shlex

RUN_SCRIPT_TEMPLATE = """\
#!/bin/bash

# Upgrade script to install the updater bundled with this app update.
# Generated by the update server, do not edit.

APP_FOLDER={app_folder}
UPGRADE_DIR={device_root}/"$APP_FOLDER"/upgrade
UPDATER_PATH="$UPGRADE_DIR"/{updater_fname}
DESTINATION_DIR={destination_dir}

if [ ! -f "$UPDATER_PATH" ]; then
    echo "[Upgrade] ERROR: Updater archive not found: $UPDATER_PATH"
    exit 1
fi

mkdir -p "$DESTINATION_DIR"

echo "[Upgrade] Extracting updater archive..."
if tar -xzf "$UPDATER_PATH" -C "$DESTINATION_DIR"; then
    echo "[Upgrade] Updater extracted to $DESTINATION_DIR"
else
    echo "[Upgrade] ERROR: Extraction failed."
    exit 1
fi
"""

BOOTSTRAP_TEMPLATE = """
BOOTSTRAP_DIR="$UPGRADE_DIR"/{bootstrap_dirname}
if [ -d "$BOOTSTRAP_DIR" ]; then
    for _script in "$BOOTSTRAP_DIR"/*.sh; do
        [ -f "$_script" ] || continue
        echo "[Upgrade] Running bootstrap step $_script"
        bash "$_script" || exit 1
    done
fi
"""

RUN_SCRIPT_EPILOGUE = """
# NOTE: the upgrade folder is removed by the startup script after this script completes
"""


def generate_run_script(
    *,
    app_folder: str,
    device_root: str,
    updater_fname: str,
    destination_dir: str,
    bootstrap_dirname: str | None = None,
) -> str:
    res = RUN_SCRIPT_TEMPLATE.format(
        app_folder=shlex.quote(app_folder),
        device_root=shlex.quote(device_root.rstrip("/")),
        updater_fname=shlex.quote(updater_fname),
        destination_dir=shlex.quote(destination_dir),
    )
    if bootstrap_dirname:
        res += BOOTSTRAP_TEMPLATE.format(bootstrap_dirname=shlex.quote(bootstrap_dirname))
    return res + RUN_SCRIPT_EPILOGUE
