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

import argparse
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from ota_update_libs.legacy_compat import is_legacy_client
from ota_update_libs.legacy_compat.detect import (
    UPDATER_VERSION_HEADER,
    USER_AGENT_HEADER,
)
from ota_update_tools._utils import (
    exit_on_engine_error,
    load_update_service,
    print_json,
)

if TYPE_CHECKING:
    from argparse import ArgumentParser, Namespace, _SubParsersAction


logger = logging.getLogger(__name__)


def add_client_headers_args(arg_parser: ArgumentParser) -> None:
    arg_parser.add_argument(
        "--user-agent",
        help="User-Agent header sent by the client, used for legacy client detection.",
    )
    arg_parser.add_argument(
        "--updater-version",
        help="X-Updater-Version header sent by the client, used for legacy client detection.",
    )
    arg_parser.add_argument(
        "--legacy",
        action="store_true",
        help="Treat the client as a legacy client regardless of the headers.",
    )


def detect_legacy(args: Namespace, min_version) -> bool:
    if args.legacy:
        return True
    _headers = {}
    if args.user_agent:
        _headers[USER_AGENT_HEADER] = args.user_agent
    if args.updater_version:
        _headers[UPDATER_VERSION_HEADER] = args.updater_version
    # without any client headers the operator acts on behalf of a current client
    return bool(_headers) and is_legacy_client(_headers, min_version)


def check_cmd_args(
    sub_arg_parser: _SubParsersAction[ArgumentParser], *parent_parser: ArgumentParser
) -> None:
    check_arg_parser = sub_arg_parser.add_parser(
        name="check",
        help=(_help_txt := "Check whether a client of an app is up to date."),
        description=_help_txt,
        parents=parent_parser,
    )
    check_arg_parser.add_argument(
        "--client-version",
        help="The version the client is currently running.",
    )
    check_arg_parser.add_argument(
        "--modified-since",
        type=datetime.fromisoformat,
        help="Last modified time of the client's update file, in ISO 8601 format.",
    )
    check_arg_parser.add_argument(
        "--checksum",
        help="MD5 checksum of the client's update file.",
    )
    check_arg_parser.add_argument(
        "--include-prerelease",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Consider pre-release updates.",
    )
    add_client_headers_args(check_arg_parser)
    check_arg_parser.add_argument("app", help="The app to check.")
    check_arg_parser.set_defaults(handler=check_cmd)


@exit_on_engine_error
def check_cmd(args: Namespace) -> None:
    logger.debug(f"calling {check_cmd.__name__} with {args}")
    service = load_update_service(args)
    up_to_date = service.check_version(
        args.app,
        args.client_version,
        args.modified_since,
        args.checksum,
        args.include_prerelease,
        legacy=detect_legacy(args, service.cfg.min_updater_version),
    )
    print_json({"app": args.app, "upToDate": up_to_date})
