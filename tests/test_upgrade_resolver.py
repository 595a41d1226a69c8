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

import pytest

from ota_update_libs.app_version import AppVersion
from ota_update_libs.errors import (
    DependencyCycle,
    DuplicateUpgrade,
    NotFound,
    UpgradeConflict,
)
from ota_update_libs.update_locator import UpdateLocator
from ota_update_libs.upgrade_manifest import (
    AppUpdateUpgrade,
    SelfUpdateUpgrade,
    StandardUpgrade,
    UpgradeKind,
)
from ota_update_libs.upgrade_resolver import (
    APP_UPDATE_PRIORITY,
    UpgradeResolver,
    filter_applicable,
    resolve_upgrade_order,
)

from tests.conftest import BASE_MTIME, write_file, write_manifest

V = AppVersion.parse


def _manifest(_id: str, priority: int = 0, deps=(), **kwargs) -> StandardUpgrade:
    return StandardUpgrade(id=_id, priority=priority, dependencies=list(deps), **kwargs)


@pytest.fixture
def resolver(apps_root) -> UpgradeResolver:
    return UpgradeResolver(
        UpdateLocator(apps_root, {}),
        updater_app_name="Updater",
        installer_staging_dir="/home/device/updater/pending-update/",
    )


class TestResolveUpgradeOrder:
    def test_dependency_before_dependent(self):
        """Test dependencies come before their dependents."""
        manifests = [_manifest("A", 3), _manifest("B", 1, ["A"]), _manifest("C", 2)]

        ordered = [_m.id for _m in resolve_upgrade_order(manifests)]

        assert ordered.index("A") < ordered.index("B")
        assert sorted(ordered) == ["A", "B", "C"]

    def test_priority_then_dfs(self):
        """Test roots are visited in ascending priority."""
        manifests = [_manifest("A", 3), _manifest("B", 1, ["A"]), _manifest("C", 2)]
        assert [_m.id for _m in resolve_upgrade_order(manifests)] == ["A", "B", "C"]

    def test_stable_across_calls(self):
        """Test the order is reproducible, whatever the input order."""
        manifests = [
            _manifest("d", 1, ["b", "c"]),
            _manifest("b", 2, ["a"]),
            _manifest("c", 2, ["a"]),
            _manifest("a", 5),
            _manifest("e", 1),
        ]
        first = [_m.id for _m in resolve_upgrade_order(manifests)]

        for _ in range(3):
            assert [_m.id for _m in resolve_upgrade_order(manifests[::-1])] == first
        assert first == ["a", "b", "c", "d", "e"]

    def test_cycle(self):
        """Test a dependency cycle fails the resolution."""
        manifests = [_manifest("X", deps=["Y"]), _manifest("Y", deps=["X"])]
        with pytest.raises(DependencyCycle):
            resolve_upgrade_order(manifests)

    def test_self_dependency(self):
        """Test a manifest depending on itself is a cycle."""
        with pytest.raises(DependencyCycle):
            resolve_upgrade_order([_manifest("X", deps=["X"])])

    def test_long_cycle(self):
        """Test cycle detection over a longer chain."""
        manifests = [_manifest(f"m{i}", deps=[f"m{(i + 1) % 50}"]) for i in range(50)]
        with pytest.raises(DependencyCycle):
            resolve_upgrade_order(manifests)

    def test_deep_chain(self):
        """Test a deep dependency chain doesn't hit the recursion limit."""
        manifests = [_manifest(f"m{i:05d}", deps=[f"m{i + 1:05d}"]) for i in range(5000)]
        ordered = resolve_upgrade_order(manifests)
        assert ordered[0].id == "m04999"
        assert ordered[-1].id == "m00000"

    def test_missing_dependency_ignored(self):
        """Test dependencies outside the set are ignored."""
        ordered = resolve_upgrade_order([_manifest("A", deps=["not-applicable"])])
        assert [_m.id for _m in ordered] == ["A"]

    def test_duplicate_id(self):
        """Test duplicated ids fail the resolution."""
        with pytest.raises(DuplicateUpgrade):
            resolve_upgrade_order([_manifest("A"), _manifest("A", 1)])


class TestFilterApplicable:
    def test_filter(self):
        """Test filtering by applicability range and target version."""
        manifests = [
            _manifest("in-range", applies_to={"minVersion": "0.5.0", "maxVersion": "1.0.0"}),
            _manifest("too-old", applies_to={"maxVersion": "0.9.0"}),
            _manifest("future", target_version="2.0.0"),
            _manifest("current", target_version="1.0.0"),
            _manifest("any"),
        ]
        result = filter_applicable(manifests, V("0.9.0"), V("1.0.0"))
        assert [_m.id for _m in result] == ["in-range", "current", "any"]


class TestGetApplicableUpgrades:
    def test_unknown_app(self, resolver):
        """Test an unknown app raises NotFound."""
        with pytest.raises(NotFound):
            resolver.get_applicable_upgrades("Nope", V("1.0.0"), False)

    def test_no_version(self, resolver, apps_root):
        """Test an app without versioned files yields None."""
        (apps_root / "Empty").mkdir()
        assert resolver.get_applicable_upgrades("Empty", V("1.0.0"), False) is None

    def test_up_to_date(self, resolver, demo_app):
        """Test an up to date client gets no upgrades."""
        result = resolver.get_applicable_upgrades("Demo", V("1.0.0"), False)
        assert result is not None
        assert result.upgrades == []
        assert result.target_version == V("1.0.0")

    def test_app_update_injected(self, resolver, demo_app):
        """Test an outdated client gets a synthetic app update."""
        result = resolver.get_applicable_upgrades("Demo", V("0.9.0"), False)

        assert result is not None
        assert result.upgrade_ids == ["app-update-1.0.0"]
        _app_update = result.upgrades[0]
        assert isinstance(_app_update, AppUpdateUpgrade)
        assert _app_update.priority == APP_UPDATE_PRIORITY
        assert _app_update.metadata == {"Type": UpgradeKind.APP_UPDATE.value}
        assert _app_update.source_file == demo_app / "demo-1.0.0.tar.gz"

    def test_prerelease_track(self, resolver, demo_app):
        """Test the pre-release is targeted only when requested."""
        result = resolver.get_applicable_upgrades("Demo", V("1.0.0"), True)

        assert result is not None
        assert result.target_version == V("1.1.0-beta")
        assert result.upgrade_ids == ["app-update-1.1.0-beta.ab12cd3"]

    def test_stable_preferred_when_newer(self, resolver, apps_root):
        """Test the stable track wins if it is newer than the pre-release."""
        folder = apps_root / "App"
        write_file(folder / "app-2.0.0.tar.gz", mtime=BASE_MTIME)
        write_file(folder / "app-1.9.0-rc.1.tar.gz", mtime=BASE_MTIME)

        result = resolver.get_applicable_upgrades("App", V("1.0.0"), True)

        assert result is not None and result.target_version == V("2.0.0")

    def test_manifests_then_synthetic(self, resolver, demo_app):
        """Test manifests are ordered first, synthetic upgrades appended last."""
        write_manifest(demo_app, id="runtime", priority=200, files=[{"path": "r", "size": 10}])
        write_manifest(demo_app, id="driver", priority=1, dependencies=["runtime"])
        write_manifest(demo_app, id="too-new", targetVersion="5.0.0")

        result = resolver.get_applicable_upgrades("Demo", V("0.9.0"), False)

        assert result is not None
        assert result.upgrade_ids == ["runtime", "driver", "app-update-1.0.0"]
        assert result.estimated_size == 10

    def test_cycle_yields_nothing(self, resolver, demo_app):
        """Test a cycle among applicable manifests fails the whole resolution."""
        write_manifest(demo_app, id="X", dependencies=["Y"])
        write_manifest(demo_app, id="Y", dependencies=["X"])

        with pytest.raises(DependencyCycle):
            resolver.get_applicable_upgrades("Demo", V("0.9.0"), False)

    def test_conflict(self, resolver, demo_app):
        """Test conflicting applicable manifests fail the resolution."""
        write_manifest(demo_app, id="driver-v1")
        write_manifest(demo_app, id="driver-v2", conflicts=["driver-v1"])

        with pytest.raises(UpgradeConflict):
            resolver.get_applicable_upgrades("Demo", V("0.9.0"), False)

    def test_conflict_not_applicable(self, resolver, demo_app):
        """Test conflicts with filtered out manifests are fine."""
        write_manifest(demo_app, id="driver-v1", appliesTo={"maxVersion": "0.5.0"})
        write_manifest(demo_app, id="driver-v2", conflicts=["driver-v1"])

        result = resolver.get_applicable_upgrades("Demo", V("0.9.0"), False)
        assert result is not None and "driver-v2" in result.upgrade_ids

    def test_manifest_takes_app_update_id(self, resolver, demo_app):
        """Test a stored manifest can't take the id of the generated app update."""
        write_manifest(demo_app, id="app-update-1.0.0")

        with pytest.raises(DuplicateUpgrade):
            resolver.get_applicable_upgrades("Demo", V("0.9.0"), False)


class TestSelfUpdate:
    def test_self_update_injected(self, resolver, demo_app, make_updater):
        """Test an outdated updater gets a self-update after everything else."""
        _updater = make_updater("2.1.0")

        result = resolver.get_applicable_upgrades(
            "Demo", V("0.9.0"), False, installer_version=V("1.5.0")
        )

        assert result is not None
        assert result.upgrade_ids == ["app-update-1.0.0", "updater-self-update-2.1.0"]
        _self_update = result.upgrades[-1]
        assert isinstance(_self_update, SelfUpdateUpgrade)
        assert _self_update.source_file == _updater
        assert _self_update.staging_target == (
            "/home/device/updater/pending-update/updater-2.1.0"
        )
        assert _self_update.post_install_script == 'echo "update-staged" > .pending-update'

    def test_self_update_alone(self, resolver, demo_app, make_updater):
        """Test an up to date app with an outdated updater only gets the self-update."""
        make_updater("2.1.0")
        result = resolver.get_applicable_upgrades(
            "Demo", V("1.0.0"), False, installer_version=V("2.0.0")
        )
        assert result is not None
        assert result.upgrade_ids == ["updater-self-update-2.1.0"]

    def test_updater_up_to_date(self, resolver, demo_app, make_updater):
        """Test no self-update for an up to date updater."""
        make_updater("2.1.0")
        result = resolver.get_applicable_upgrades(
            "Demo", V("1.0.0"), False, installer_version=V("2.1.0")
        )
        assert result is not None and result.upgrades == []

    def test_manifest_takes_self_update_id(self, resolver, demo_app, make_updater):
        """Test a stored manifest can't take the id of the generated self-update."""
        make_updater("2.1.0")
        write_manifest(demo_app, id="updater-self-update-2.1.0")

        with pytest.raises(DuplicateUpgrade):
            resolver.get_applicable_upgrades(
                "Demo", V("1.0.0"), False, installer_version=V("2.0.0")
            )

    def test_no_updater_folder(self, resolver):
        """Test no self-update without updater artifacts."""
        assert resolver.make_self_update(V("0.1.0")) is None
