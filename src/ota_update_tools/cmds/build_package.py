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

import logging
from typing import TYPE_CHECKING

from ota_update_tools._utils import (
    exit_on_engine_error,
    load_update_service,
    print_json,
    served_file_summary,
)

if TYPE_CHECKING:
    from argparse import ArgumentParser, Namespace, _SubParsersAction


logger = logging.getLogger(__name__)


def build_package_cmd_args(
    sub_arg_parser: _SubParsersAction[ArgumentParser], *parent_parser: ArgumentParser
) -> None:
    build_package_arg_parser = sub_arg_parser.add_parser(
        name="build-package",
        help=(
            _help_txt
            := "Build (or reuse from cache) the upgrade package for a client of an app."
        ),
        description=_help_txt,
        parents=parent_parser,
    )
    build_package_arg_parser.add_argument(
        "--include-prerelease",
        action="store_true",
        help="Upgrade to the latest pre-release if it is newer than the latest stable.",
    )
    build_package_arg_parser.add_argument(
        "--updater-version",
        help="Version of the client's updater, enables the updater self-update.",
    )
    build_package_arg_parser.add_argument("app", help="The app to upgrade.")
    build_package_arg_parser.add_argument(
        "client_version", help="The version the client is currently running."
    )
    build_package_arg_parser.set_defaults(handler=build_package_cmd)


@exit_on_engine_error
def build_package_cmd(args: Namespace) -> None:
    logger.debug(f"calling {build_package_cmd.__name__} with {args}")
    service = load_update_service(args)
    served = service.fetch_upgrade_package(
        args.app,
        args.client_version,
        args.include_prerelease,
        args.updater_version,
    )
    print_json(served_file_summary(served))
