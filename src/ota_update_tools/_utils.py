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

import json
import logging
import sys
from functools import wraps
from pathlib import Path
from typing import Any, Callable, NoReturn, TypeVar

from ota_update_libs.config import ServerConfig, load_config
from ota_update_libs.errors import UpdateServerError
from ota_update_libs.update_service import ServedFile, UpdateService

RT = TypeVar("RT")

LOGGING_FORMAT = (
    "[%(asctime)s][%(levelname)s]-%(name)s:%(funcName)s:%(lineno)d,%(message)s"
)

CLIENT_ERROR_EXIT_CODE = 2

logger = logging.getLogger(__name__)


def configure_logging(log_level):
    logging.basicConfig(level=logging.CRITICAL, format=LOGGING_FORMAT, force=True)
    _tool_logger = logging.getLogger("ota_update_tools")
    _tool_logger.setLevel(log_level)
    _libs_logger = logging.getLogger("ota_update_libs")
    _libs_logger.setLevel(log_level)


def exit_with_err_msg(err_msg: str, exit_code: int = 1) -> NoReturn:
    print(f"ERR: {err_msg}")
    sys.exit(exit_code)


def exit_on_engine_error(_func: Callable[..., RT]) -> Callable[..., RT]:
    """Report engine failures as `ERR: ...`, exit 2 for client errors, 1 otherwise."""

    @wraps(_func)
    def _wrapped(*args, **kwargs) -> RT:
        try:
            return _func(*args, **kwargs)
        except UpdateServerError as e:
            logger.debug(f"{_func.__name__} failed: {e!r}", exc_info=e)
            exit_with_err_msg(
                f"{e.__class__.__name__}: {e}",
                CLIENT_ERROR_EXIT_CODE if e.client_error else 1,
            )

    return _wrapped


def load_server_config(args) -> ServerConfig:
    if args.config:
        cfg = load_config(args.config)
    else:
        cfg = ServerConfig().resolve_paths(Path.cwd())

    _update = {}
    if args.apps_root:
        _update["apps_root"] = Path(args.apps_root).resolve()
    if args.upgrade_root:
        _update["upgrade_root"] = Path(args.upgrade_root).resolve()
    return cfg.model_copy(update=_update) if _update else cfg


def load_update_service(args) -> UpdateService:
    return UpdateService.from_config(load_server_config(args))


def print_json(obj: Any) -> None:
    print(json.dumps(obj, indent=2, default=str))


def served_file_summary(served: ServedFile) -> dict[str, Any]:
    return {
        "path": str(served.path),
        "contentType": served.content_type,
        "downloadName": served.download_name,
        "lastModified": served.last_modified.isoformat(),
        "size": served.size,
        "etag": served.etag,
    }
