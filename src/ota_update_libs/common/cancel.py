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
"""Cooperative cancellation for blocking file operations."""

from __future__ import annotations

import threading
import time

from ota_update_libs.errors import OperationCancelled


class CancelToken:
    """A thread-safe cancellation flag with an optional deadline.

    Long running operations call `check` between chunks and between
        per-file steps, the token itself never interrupts anything.
    """

    def __init__(self, *, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("operation cancelled by caller")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise OperationCancelled("operation exceeded its deadline")


def check_cancelled(cancel: CancelToken | None) -> None:
    if cancel is not None:
        cancel.check()
