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
from pathlib import Path
from typing import TYPE_CHECKING

from ota_update_libs.tar_codec import create_tar_gz, extract_tar_gz
from ota_update_tools._utils import exit_on_engine_error, exit_with_err_msg, print_json

if TYPE_CHECKING:
    from argparse import ArgumentParser, Namespace, _SubParsersAction


logger = logging.getLogger(__name__)


def pack_cmd_args(
    sub_arg_parser: _SubParsersAction[ArgumentParser], *parent_parser: ArgumentParser
) -> None:
    pack_arg_parser = sub_arg_parser.add_parser(
        name="pack",
        help=(_help_txt := "Pack a folder into a tar.gz archive."),
        description=_help_txt,
        parents=parent_parser,
    )
    pack_arg_parser.add_argument("src", help="The folder to pack.")
    pack_arg_parser.add_argument("output", help="The tar.gz archive to create.")
    pack_arg_parser.set_defaults(handler=pack_cmd)


@exit_on_engine_error
def pack_cmd(args: Namespace) -> None:
    logger.debug(f"calling {pack_cmd.__name__} with {args}")
    src, output = Path(args.src), Path(args.output)
    if not src.is_dir():
        exit_with_err_msg(f"{src} is not a folder!")

    _count = create_tar_gz(src, output)
    print_json({"archive": str(output), "files": _count, "size": output.stat().st_size})


def unpack_cmd_args(
    sub_arg_parser: _SubParsersAction[ArgumentParser], *parent_parser: ArgumentParser
) -> None:
    unpack_arg_parser = sub_arg_parser.add_parser(
        name="unpack",
        help=(_help_txt := "Unpack a tar.gz archive into a folder."),
        description=_help_txt,
        parents=parent_parser,
    )
    unpack_arg_parser.add_argument("archive", help="The tar.gz archive to unpack.")
    unpack_arg_parser.add_argument("dest", help="The folder to unpack into.")
    unpack_arg_parser.set_defaults(handler=unpack_cmd)


@exit_on_engine_error
def unpack_cmd(args: Namespace) -> None:
    logger.debug(f"calling {unpack_cmd.__name__} with {args}")
    archive, dest = Path(args.archive), Path(args.dest)
    if not archive.is_file():
        exit_with_err_msg(f"{archive} is not a file!")

    extracted = extract_tar_gz(archive, dest)
    print_json({"dest": str(dest), "files": len(extracted)})
