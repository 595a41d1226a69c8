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
"""Resolve the ordered set of upgrades applicable to one client."""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Sequence, Tuple

from ota_update_libs.app_version import AppVersion
from ota_update_libs.errors import (
    DependencyCycle,
    DuplicateUpgrade,
    NotFound,
    UpgradeConflict,
)
from ota_update_libs.update_locator import AppUpdateInfo, UpdateFileRecord, UpdateLocator
from ota_update_libs.upgrade_manifest import (
    MANIFESTS_DIRNAME,
    METADATA_TYPE_KEY,
    ApplicableUpgradesResult,
    AppUpdateUpgrade,
    SelfUpdateUpgrade,
    UpgradeKind,
    UpgradeManifest,
    VersionRange,
    load_all_manifests,
)

logger = logging.getLogger(__name__)

APP_UPDATE_PRIORITY = 100
SELF_UPDATE_PRIORITY = 1000
SELF_UPDATE_POST_INSTALL_SCRIPT = 'echo "update-staged" > .pending-update'


def pick_target(
    info: AppUpdateInfo, include_prerelease: bool
) -> Optional[UpdateFileRecord]:
    """Pick the pre-release track only if requested and strictly newer."""
    stable, prerelease = info.latest_stable, info.latest_prerelease
    if include_prerelease and prerelease is not None and prerelease.version:
        if stable is None or stable.version is None or stable.version < prerelease.version:
            return prerelease
    return stable


def filter_applicable(
    manifests: Sequence[UpgradeManifest],
    client_version: AppVersion,
    latest_version: AppVersion,
) -> list[UpgradeManifest]:
    return [
        _m
        for _m in manifests
        if _m.applies_to_version(client_version)
        and (_m.target_version is None or not latest_version < _m.target_version)
    ]


def check_conflicts(manifests: Sequence[UpgradeManifest]) -> None:
    _ids = {_m.id for _m in manifests}
    for _m in manifests:
        for _conflict in _m.conflicts:
            if _conflict != _m.id and _conflict in _ids:
                raise UpgradeConflict(
                    f"upgrade {_m.id} conflicts with applicable upgrade {_conflict}"
                )


def resolve_upgrade_order(manifests: Sequence[UpgradeManifest]) -> list[UpgradeManifest]:
    """Order <manifests> so that every upgrade comes after its dependencies.

    Roots are visited in ascending priority (id as tie-break), each visit is a
        depth-first walk over the declared dependencies, tracked with an
        explicit stack instead of recursion. Dependencies outside of <manifests>
        are ignored.

    Raises:
        DuplicateUpgrade: if two manifests share one id.
        DependencyCycle: if a manifest is reached again while still being visited.
    """
    by_id: dict[str, UpgradeManifest] = {}
    for _m in manifests:
        if _m.id in by_id:
            raise DuplicateUpgrade(f"upgrade id {_m.id} is declared more than once")
        by_id[_m.id] = _m

    ordered: list[UpgradeManifest] = []
    visited: set[str] = set()
    visiting: set[str] = set()

    for _root in sorted(manifests, key=lambda _m: (_m.priority, _m.id)):
        if _root.id in visited:
            continue

        visiting.add(_root.id)
        stack: list[Tuple[UpgradeManifest, Iterator[str]]] = [
            (_root, iter(_root.dependencies))
        ]
        while stack:
            _node, _deps = stack[-1]
            for _dep_id in _deps:
                if _dep_id in visited:
                    continue
                if _dep_id in visiting:
                    raise DependencyCycle(
                        f"circular dependency detected: {_node.id} -> {_dep_id}"
                    )
                if (_dep := by_id.get(_dep_id)) is None:
                    logger.debug(f"{_node.id}: dependency {_dep_id} is not applicable")
                    continue
                visiting.add(_dep_id)
                stack.append((_dep, iter(_dep.dependencies)))
                break
            else:
                stack.pop()
                visiting.discard(_node.id)
                visited.add(_node.id)
                ordered.append(_node)
    return ordered


def append_synthetic(ordered: list[UpgradeManifest], upgrade: UpgradeManifest) -> None:
    """Append the server generated <upgrade>, its id must not be taken."""
    if any(_m.id == upgrade.id for _m in ordered):
        raise DuplicateUpgrade(
            f"upgrade id {upgrade.id} is reserved for a server generated upgrade"
        )
    ordered.append(upgrade)


class UpgradeResolver:
    def __init__(
        self,
        locator: UpdateLocator,
        *,
        updater_app_name: str,
        installer_staging_dir: str,
    ) -> None:
        self._locator = locator
        self.updater_app_name = updater_app_name
        self.installer_staging_dir = installer_staging_dir.rstrip("/")

    @property
    def locator(self) -> UpdateLocator:
        return self._locator

    def latest_updater(self) -> Optional[UpdateFileRecord]:
        """The newest stable artifact of the updater app."""
        if not (_folder := self._locator.get_folder(self.updater_app_name)):
            logger.debug("updater folder not found")
            return None
        return self._locator.scan_latest(_folder, include_prerelease=False)

    def make_self_update(
        self, installer_version: AppVersion
    ) -> Optional[SelfUpdateUpgrade]:
        _latest = self.latest_updater()
        if _latest is None or _latest.version is None:
            return None
        if not installer_version < _latest.version:
            return None

        _version = _latest.version
        return SelfUpdateUpgrade(
            id=f"updater-self-update-{_version}",
            name=f"Updater Self-Update {_version}",
            description="Update of the updater itself",
            version=str(_version),
            target_version=_version,
            priority=SELF_UPDATE_PRIORITY,
            post_install_script=SELF_UPDATE_POST_INSTALL_SCRIPT,
            metadata={METADATA_TYPE_KEY: UpgradeKind.SELF_UPDATE.value},
            source_file=_latest.path,
            staging_target=f"{self.installer_staging_dir}/updater-{_version}",
        )

    @staticmethod
    def make_app_update(latest: UpdateFileRecord) -> AppUpdateUpgrade:
        _version = latest.version
        assert _version is not None
        return AppUpdateUpgrade(
            id=f"app-update-{_version}",
            name=f"Application Update {_version}",
            description="Main application update",
            version=str(_version),
            applies_to=VersionRange(max_version=_version),
            target_version=_version,
            priority=APP_UPDATE_PRIORITY,
            metadata={METADATA_TYPE_KEY: UpgradeKind.APP_UPDATE.value},
            source_file=latest.path,
        )

    def get_applicable_upgrades(
        self,
        app_name: str,
        client_version: AppVersion,
        include_prerelease: bool,
        installer_version: Optional[AppVersion] = None,
    ) -> Optional[ApplicableUpgradesResult]:
        """Resolve the upgrades for <app_name> at <client_version>.

        Returns:
            None if no target version can be resolved, otherwise the result,
                whose upgrade list is empty when the client is up to date.

        Raises:
            NotFound: if the app folder doesn't exist.
            DependencyCycle, UpgradeConflict, DuplicateUpgrade: if the applicable
                manifests cannot be ordered, no partial result is returned.
        """
        if not (app_folder := self._locator.get_folder(app_name)):
            raise NotFound(f"app folder not found for {app_name}")

        _info = self._locator.get_latest_update_info(app_folder)
        _target = pick_target(_info, include_prerelease)
        if _target is None or _target.version is None:
            logger.warning(f"no latest version found for {app_name}")
            return None
        latest_version = _target.version

        _manifests = load_all_manifests(app_folder / MANIFESTS_DIRNAME)
        applicable = filter_applicable(_manifests, client_version, latest_version)
        check_conflicts(applicable)
        ordered = resolve_upgrade_order(applicable)

        if client_version < latest_version:
            append_synthetic(ordered, self.make_app_update(_target))

        if installer_version is not None:
            if _self_update := self.make_self_update(installer_version):
                logger.info(f"inject updater self-update manifest {_self_update.id}")
                append_synthetic(ordered, _self_update)

        return ApplicableUpgradesResult(
            target_version=latest_version,
            upgrades=ordered,
            estimated_size=sum(_u.estimated_size for _u in ordered),
        )
