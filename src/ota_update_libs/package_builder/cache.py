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
"""On-disk cache of built packages.

Archives are published atomically: they are written to a temporary file
    inside the cache directory first and then renamed into place, so readers
    never observe a partially written archive. At most one build per cache
    entry runs at a time within one process.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Iterable, Optional

from typing_extensions import TypeAlias

from ota_update_libs.app_version import AppVersion
from ota_update_libs.common import CancelToken, check_cancelled, tmp_fname
from ota_update_libs.common.io import remove_file
from ota_update_libs.errors import CachePermissionDenied

logger = logging.getLogger(__name__)

CACHE_DIRNAME = "cache"
FINGERPRINT_PREFIX = "upgrade"
FINGERPRINT_DIGEST_LEN = 32

PerEntryLock: TypeAlias = threading.Lock
EntryLockRecord: TypeAlias = "tuple[PerEntryLock, int]"


def compute_fingerprint(
    client_version: AppVersion | str, upgrade_ids: Iterable[str]
) -> str:
    """Derive the cache key of one resolved package.

    The key only depends on the client version and the set of upgrade ids,
        the order of <upgrade_ids> doesn't matter.
    """
    _client = str(client_version)
    _hasher = hashlib.sha256(_client.encode("utf-8"))
    for _id in sorted(upgrade_ids):
        _hasher.update(b"\0")
        _hasher.update(_id.encode("utf-8"))
    return (
        f"{FINGERPRINT_PREFIX}-{_client}-"
        f"{_hasher.hexdigest()[:FINGERPRINT_DIGEST_LEN]}"
    )


def probe_writable(folder: Path) -> bool:
    """Check whether we can create files under <folder>, creating it if needed."""
    try:
        folder.mkdir(parents=True, exist_ok=True)
        _probe = folder / tmp_fname("probe", prefix=".tmp")
        _probe.touch()
        _probe.unlink()
    except OSError as e:
        logger.debug(f"{folder} is not writable: {e!r}")
        return False
    return True


class PackageCache:
    """Cache directories and per entry build coordination.

    Each app prefers its own cache directory (inside the app folder), if that
        one is not writable, `<fallback_root>/<app_name>` is used instead.

    This class is for multi-threads use.
    """

    def __init__(self, fallback_root: Path) -> None:
        self.fallback_root = Path(fallback_root)

        # protects the lock table itself, per entry locks are dropped
        #   once no one is waiting for them anymore.
        self._lock_table_lock = threading.Lock()
        self._entry_locks: dict[str, EntryLockRecord] = {}

    @contextmanager
    def entry_lock(self, key: str) -> Generator[None]:
        with self._lock_table_lock:
            _lock, _refs = self._entry_locks.get(key, (None, 0))
            if _lock is None:
                _lock = threading.Lock()
            self._entry_locks[key] = (_lock, _refs + 1)

        try:
            with _lock:
                yield
        finally:
            with self._lock_table_lock:
                _lock, _refs = self._entry_locks[key]
                if _refs <= 1:
                    del self._entry_locks[key]
                else:
                    self._entry_locks[key] = (_lock, _refs - 1)

    @property
    def pending_entries(self) -> int:
        with self._lock_table_lock:
            return len(self._entry_locks)

    def fallback_dir_for(self, app_name: str) -> Path:
        return self.fallback_root / app_name

    def cache_dir_for(self, app_name: str, preferred_dir: Path) -> Path:
        """Resolve the cache directory to write to for <app_name>.

        Raises:
            CachePermissionDenied: if neither the preferred nor the fallback
                cache directory is writable.
        """
        if probe_writable(preferred_dir):
            return preferred_dir

        _fallback = self.fallback_dir_for(app_name)
        logger.warning(
            f"cache dir {preferred_dir} is not writable, fall back to {_fallback}"
        )
        if probe_writable(_fallback):
            return _fallback
        raise CachePermissionDenied(
            f"no writable cache dir for {app_name}: {preferred_dir}, {_fallback}"
        )

    def lookup(self, app_name: str, preferred_dir: Path, fname: str) -> Optional[Path]:
        for _dir in (preferred_dir, self.fallback_dir_for(app_name)):
            if (_cached := _dir / fname).is_file():
                return _cached
        return None

    def get_or_build(
        self,
        app_name: str,
        preferred_dir: Path,
        fname: str,
        build: Callable[[Path], None],
        *,
        cancel: CancelToken | None = None,
    ) -> Path:
        """Return the cached <fname>, building it with <build> on cache miss.

        <build> is called with the temporary output path, it must write the
            complete archive there. Whatever <build> raises is propagated, and
            nothing gets published in that case.
        """
        if _cached := self.lookup(app_name, preferred_dir, fname):
            logger.info(f"cache hit: {_cached}")
            return _cached

        with self.entry_lock(f"{app_name}/{fname}"):
            # another thread might have built it while we were waiting
            if _cached := self.lookup(app_name, preferred_dir, fname):
                logger.info(f"cache hit: {_cached}")
                return _cached

            check_cancelled(cancel)
            _cache_dir = self.cache_dir_for(app_name, preferred_dir)
            _cache_dir.mkdir(parents=True, exist_ok=True)
            _dst = _cache_dir / fname
            _tmp = _cache_dir / tmp_fname(fname, prefix=".tmp")
            try:
                build(_tmp)
                check_cancelled(cancel)
                os.replace(_tmp, _dst)
            finally:
                remove_file(_tmp)

        logger.info(f"published {_dst}")
        return _dst
