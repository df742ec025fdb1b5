"""Tests for the SystemMonitor facade and snapshot models."""

import pytest

from missionbar.actions import PreconditionError
from missionbar.models import Snapshot
from missionbar.monitor import SystemMonitor

from conftest import make_application, make_bundle, make_process


class TestSnapshotModel:
    """Tests for the published data types."""

    def test_empty_snapshot(self) -> None:
        snapshot = Snapshot()
        assert snapshot.processes == ()
        assert snapshot.applications == ()
        assert snapshot.is_loading is False
        assert snapshot.generation == 0

    def test_running_bundle_ids(self) -> None:
        snapshot = Snapshot(
            processes=(
                make_process(pid=1, bundle_id="com.a"),
                make_process(pid=2, bundle_id=None),
            )
        )
        assert snapshot.running_bundle_ids == frozenset({"com.a"})

    def test_to_dict(self) -> None:
        snapshot = Snapshot(
            processes=(make_process(pid=7),),
            applications=(make_application(),),
            generation=3,
        )
        data = snapshot.to_dict()
        assert data["generation"] == 3
        assert data["processes"][0]["pid"] == 7
        assert data["applications"][0]["bundle_id"] == "com.apple.Safari"


class TestSystemMonitor:
    """Tests for SystemMonitor."""

    @pytest.mark.asyncio
    async def test_refresh_and_lookup(self, config, fake_probe, apps_root) -> None:
        make_bundle(apps_root, "Editor", bundle_id="com.example.editor", bundle_name="Editor")
        fake_probe.add_app(10, "Editor", "com.example.editor")
        monitor = SystemMonitor(config, probe=fake_probe)

        snapshot = await monitor.refresh()

        assert monitor.snapshot is snapshot
        assert monitor.find_process(10).name == "Editor"
        assert monitor.find_process(99) is None
        app = monitor.find_application("com.example.editor")
        assert app is not None and app.is_running
        assert monitor.find_application(app.path) is app
        assert monitor.find_application("com.example.missing") is None

    @pytest.mark.asyncio
    async def test_context_manager_starts_and_stops(self, config, fake_probe) -> None:
        monitor = SystemMonitor(config, probe=fake_probe)
        async with monitor:
            assert monitor.scheduler.is_running
        assert not monitor.scheduler.is_running

    @pytest.mark.asyncio
    async def test_uninstall_runs_off_loop(self, config, fake_probe, apps_root) -> None:
        make_bundle(apps_root, "Old", bundle_id="com.example.old", bundle_name="Old")
        monitor = SystemMonitor(config, probe=fake_probe)
        snapshot = await monitor.refresh()

        await monitor.uninstall(snapshot.applications[0])

        assert fake_probe.trashed == [snapshot.applications[0].path]
        assert monitor.snapshot.applications == ()

    @pytest.mark.asyncio
    async def test_uninstall_rejection_propagates(self, config, fake_probe) -> None:
        monitor = SystemMonitor(config, probe=fake_probe)
        with pytest.raises(PreconditionError):
            await monitor.uninstall(make_application(path="/System/Applications/Mail.app"))

    def test_terminate_and_force_kill(self, config, fake_probe) -> None:
        monitor = SystemMonitor(config, probe=fake_probe)
        monitor.terminate(make_process(pid=5))
        monitor.force_kill(make_process(pid=6))
        assert [pid for pid, _ in fake_probe.signals] == [5, 6]

    @pytest.mark.asyncio
    async def test_subscribe(self, config, fake_probe) -> None:
        monitor = SystemMonitor(config, probe=fake_probe)
        received: list[Snapshot] = []
        monitor.subscribe(received.append)
        await monitor.refresh()
        assert received[-1].generation == 1
