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
from pathlib import Path
from typing import TYPE_CHECKING

from ota_update_libs.common import tmp_fname
from ota_update_tools._utils import (
    exit_on_engine_error,
    load_update_service,
    print_json,
    served_file_summary,
)

from .check import add_client_headers_args, detect_legacy

if TYPE_CHECKING:
    from argparse import ArgumentParser, Namespace, _SubParsersAction


logger = logging.getLogger(__name__)


def fetch_update_cmd_args(
    sub_arg_parser: _SubParsersAction[ArgumentParser], *parent_parser: ArgumentParser
) -> None:
    fetch_update_arg_parser = sub_arg_parser.add_parser(
        name="fetch-update",
        help=(_help_txt := "Fetch the latest plain update file of an app."),
        description=_help_txt,
        parents=parent_parser,
    )
    fetch_update_arg_parser.add_argument(
        "--include-prerelease",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Consider pre-release updates.",
    )
    fetch_update_arg_parser.add_argument(
        "-o",
        "--output",
        help="Save the served file into this folder, under its download name.",
    )
    add_client_headers_args(fetch_update_arg_parser)
    fetch_update_arg_parser.add_argument("app", help="The app to fetch update for.")
    fetch_update_arg_parser.set_defaults(handler=fetch_update_cmd)


@exit_on_engine_error
def fetch_update_cmd(args: Namespace) -> None:
    logger.debug(f"calling {fetch_update_cmd.__name__} with {args}")
    service = load_update_service(args)
    served = service.fetch_plain_update(
        args.app,
        args.include_prerelease,
        detect_legacy(args, service.cfg.min_updater_version),
    )
    summary = served_file_summary(served)

    if args.output:
        output_dir = Path(args.output)
        output_dir.mkdir(parents=True, exist_ok=True)
        _dst = output_dir / served.download_name
        _tmp = output_dir / tmp_fname(served.download_name)
        try:
            with open(_tmp, "wb") as _f:
                for _chunk in served.iter_chunks(chunk_size=service.cfg.read_chunk_size):
                    _f.write(_chunk)
            _tmp.replace(_dst)
        finally:
            _tmp.unlink(missing_ok=True)
        summary["savedTo"] = str(_dst)
    print_json(summary)
