"""Tests for the OS probe."""

import ctypes
import os
import signal
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import psutil
import pytest

from missionbar.bundles import read_bundle_info
from missionbar.probe import SystemProbe, TaskInfo

from conftest import make_bundle


def _proc(pid: int, name: str, exe: str | None) -> SimpleNamespace:
    return SimpleNamespace(info={"pid": pid, "name": name, "exe": exe})


@pytest.fixture
def probe() -> SystemProbe:
    return SystemProbe()


class TestRunningApplications:
    """Tests for process enumeration with bundle metadata."""

    def test_bundled_and_plain_processes(self, probe, tmp_path: Path) -> None:
        bundle = make_bundle(
            tmp_path,
            "Editor",
            bundle_id="com.example.editor",
            display_name="Fancy Editor",
            extra={"CFBundleIconFile": "Editor"},
        )
        agent = make_bundle(
            tmp_path, "Agent", bundle_id="com.example.agent", extra={"LSUIElement": True}
        )
        procs = [
            _proc(10, "editor", f"{bundle}/Contents/MacOS/editor"),
            _proc(11, "agentd", f"{agent}/Contents/MacOS/agentd"),
            _proc(12, "cfprefsd", "/usr/sbin/cfprefsd"),
            _proc(13, "kernel_task", None),
        ]

        with patch("missionbar.probe.psutil.process_iter", return_value=procs):
            apps = {a.pid: a for a in probe.running_applications()}

        assert apps[10].name == "Fancy Editor"
        assert apps[10].bundle_id == "com.example.editor"
        assert apps[10].activation_policy == "regular"
        assert apps[10].icon_path.endswith("Resources/Editor.icns")
        # No display name in the bundle: falls back to the process name
        assert apps[11].name == "agentd"
        assert apps[11].activation_policy == "accessory"
        assert apps[12].activation_policy == "prohibited"
        assert apps[12].bundle_id is None
        assert apps[13].activation_policy == "prohibited"

    def test_bundle_metadata_cached_until_plist_changes(self, probe, tmp_path: Path) -> None:
        bundle = make_bundle(tmp_path, "App", bundle_id="com.example.app", bundle_name="App")
        procs = [_proc(10, "app", f"{bundle}/Contents/MacOS/app")]

        with (
            patch("missionbar.probe.psutil.process_iter", return_value=procs),
            patch("missionbar.probe.read_bundle_info", wraps=read_bundle_info) as reader,
        ):
            probe.running_applications()
            probe.running_applications()
            assert reader.call_count == 1

            plist = bundle / "Contents" / "Info.plist"
            stat = plist.stat()
            os.utime(plist, (stat.st_atime, stat.st_mtime + 10))
            probe.running_applications()
            assert reader.call_count == 2

    def test_cache_forgets_exited_bundles(self, probe, tmp_path: Path) -> None:
        bundle = make_bundle(tmp_path, "App", bundle_id="com.example.app", bundle_name="App")

        with patch(
            "missionbar.probe.psutil.process_iter",
            return_value=[_proc(10, "app", f"{bundle}/Contents/MacOS/app")],
        ):
            probe.running_applications()
        assert str(bundle) in probe._bundles

        with patch("missionbar.probe.psutil.process_iter", return_value=[]):
            probe.running_applications()
        assert probe._bundles == {}


class TestMetrics:
    """Tests for task metrics on the live system."""

    def test_task_info_for_self(self, probe) -> None:
        info = probe.task_info(os.getpid())
        assert info is not None
        assert info.resident_size > 0
        assert info.virtual_size >= info.resident_size
        assert info.cpu_time_ns >= 0

    def test_resident_size_for_self(self, probe) -> None:
        assert probe.resident_size(os.getpid()) > 0

    def test_missing_process(self, probe) -> None:
        with patch("missionbar.probe.psutil.Process", side_effect=psutil.NoSuchProcess(999999)):
            assert probe.resident_size(999999) is None

    def test_logical_cpu_count(self, probe) -> None:
        count = probe.logical_cpu_count()
        assert count is not None and count >= 1


class TestDarwinTiers:
    """Tests for the libproc record order on macOS, with the bindings stubbed."""

    def _stub(self, task=None, resident=None) -> SimpleNamespace:
        return SimpleNamespace(
            task_info=MagicMock(return_value=task),
            resident_size=MagicMock(return_value=resident),
            sysctl_int=MagicMock(return_value=8),
        )

    def test_task_info_uses_combined_record(self, probe) -> None:
        task = TaskInfo(resident_size=100, virtual_size=800, cpu_time_ns=5)
        probe._darwin = self._stub(task=task)

        assert probe.task_info(42) is task
        probe._darwin.task_info.assert_called_once_with(42)

    def test_resident_size_uses_task_record(self, probe) -> None:
        probe._darwin = self._stub(resident=4096)

        with patch("missionbar.probe.psutil.Process") as proc:
            assert probe.resident_size(42) == 4096
        probe._darwin.resident_size.assert_called_once_with(42)
        proc.assert_not_called()

    def test_resident_size_falls_back_to_psutil(self, probe) -> None:
        probe._darwin = self._stub(resident=None)
        rss = SimpleNamespace(rss=2048)

        with patch("missionbar.probe.psutil.Process") as proc:
            proc.return_value.memory_info.return_value = rss
            assert probe.resident_size(42) == 2048

    @pytest.mark.skipif(sys.platform != "darwin", reason="libproc is macOS only")
    def test_live_records(self) -> None:
        from missionbar import darwin

        assert ctypes.sizeof(darwin._ProcBSDInfo) == 136
        assert ctypes.sizeof(darwin._ProcTaskInfo) == 96
        assert ctypes.sizeof(darwin._ProcTaskAllInfo) == 232
        info = darwin.task_info(os.getpid())
        assert info is not None and info.resident_size > 0
        assert darwin.resident_size(os.getpid()) > 0


class TestActions:
    """Tests for signal delivery and trash."""

    def test_send_signal(self, probe) -> None:
        proc = MagicMock()
        with patch("missionbar.probe.psutil.Process", return_value=proc) as ctor:
            probe.send_signal(10, signal.SIGTERM)
        ctor.assert_called_once_with(10)
        proc.send_signal.assert_called_once_with(signal.SIGTERM)

    def test_send_signal_missing_process(self, probe) -> None:
        with patch("missionbar.probe.psutil.Process", side_effect=psutil.NoSuchProcess(10)):
            with pytest.raises(psutil.NoSuchProcess):
                probe.send_signal(10, signal.SIGTERM)

    def test_move_to_trash(self, probe, tmp_path: Path) -> None:
        bundle = make_bundle(tmp_path, "Old")
        with patch("missionbar.probe.send2trash") as trash:
            probe.move_to_trash(str(bundle))
        trash.assert_called_once_with(str(bundle))

    def test_move_to_trash_missing_path(self, probe, tmp_path: Path) -> None:
        with patch("missionbar.probe.send2trash") as trash:
            with pytest.raises(FileNotFoundError):
                probe.move_to_trash(str(tmp_path / "Gone.app"))
        trash.assert_not_called()
