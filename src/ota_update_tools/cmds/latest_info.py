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

from ota_update_tools._utils import exit_on_engine_error, load_update_service

if TYPE_CHECKING:
    from argparse import ArgumentParser, Namespace, _SubParsersAction


logger = logging.getLogger(__name__)


def latest_info_cmd_args(
    sub_arg_parser: _SubParsersAction[ArgumentParser], *parent_parser: ArgumentParser
) -> None:
    latest_info_arg_parser = sub_arg_parser.add_parser(
        name="latest-info",
        help=(_help_txt := "Print out the latest stable and pre-release files of an app."),
        description=_help_txt,
        parents=parent_parser,
    )
    latest_info_arg_parser.add_argument(
        "--include-prerelease",
        action="store_true",
        help="Also print out the latest pre-release.",
    )
    latest_info_arg_parser.add_argument("app", help="The app to inspect.")
    latest_info_arg_parser.set_defaults(handler=latest_info_cmd)


@exit_on_engine_error
def latest_info_cmd(args: Namespace) -> None:
    logger.debug(f"calling {latest_info_cmd.__name__} with {args}")
    service = load_update_service(args)
    print(service.latest_info(args.app, args.include_prerelease).export_json())
