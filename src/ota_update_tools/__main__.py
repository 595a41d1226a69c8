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


def main():
    import argparse
    import functools
    import logging
    from collections.abc import Callable
    from typing import TYPE_CHECKING

    from ota_update_libs import version
    from ota_update_tools._utils import configure_logging

    from .cmds import (
        build_package_cmd_args,
        check_cmd_args,
        fetch_update_cmd_args,
        latest_info_cmd_args,
        list_upgrades_cmd_args,
        pack_cmd_args,
        unpack_cmd_args,
    )

    if TYPE_CHECKING:
        from argparse import ArgumentParser, _SubParsersAction

    logger = logging.getLogger(__name__)

    arg_parser = argparse.ArgumentParser(
        description="Operator tools for the OTA update server",
    )

    def missing_subcmd(_):
        print("Please specify subcommand.")
        print(arg_parser.format_help())

    arg_parser.set_defaults(handler=missing_subcmd)

    # ------ top-level parser ------ #
    arg_parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging for this script",
    )

    # ------ shared by sub commands working on a server configuration ------ #
    server_cfg_parser = argparse.ArgumentParser(add_help=False)
    server_cfg_parser.add_argument(
        "--config",
        help="Server configuration file, YAML or JSON. Built-in defaults if not specified.",
    )
    server_cfg_parser.add_argument(
        "--apps-root",
        help="Override the folder holding one sub folder per app.",
    )
    server_cfg_parser.add_argument(
        "--upgrade-root",
        help="Override the default base path of upgrade sources.",
    )

    sub_arg_parser: _SubParsersAction[ArgumentParser] = arg_parser.add_subparsers(
        title="available sub-commands",
        parser_class=functools.partial(
            argparse.ArgumentParser,
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        ),  # type: ignore
    )

    # ------ sub commands registering ------ #

    version_cmd = sub_arg_parser.add_parser(
        name="version",
        help="Print the ota-update-libs version.",
    )
    version_cmd.set_defaults(
        handler=lambda _: print(f"Build with ota-update-libs v{version}.")
    )

    check_cmd_args(sub_arg_parser, server_cfg_parser)
    list_upgrades_cmd_args(sub_arg_parser, server_cfg_parser)
    build_package_cmd_args(sub_arg_parser, server_cfg_parser)
    fetch_update_cmd_args(sub_arg_parser, server_cfg_parser)
    latest_info_cmd_args(sub_arg_parser, server_cfg_parser)
    pack_cmd_args(sub_arg_parser)
    unpack_cmd_args(sub_arg_parser)

    # ------ top-level args parsing ----- #
    args = arg_parser.parse_args()
    if args.debug:
        configure_logging(logging.DEBUG)
        logger.debug("Set to debug logging.")
    else:
        configure_logging(logging.INFO)

    # ------ execute command ------ #
    handler: Callable = args.handler
    handler(args)


if __name__ == "__main__":
    main()
