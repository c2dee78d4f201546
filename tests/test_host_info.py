"""Tests for local host probes and sizing / OS release notices."""

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from kubehost.config import MachineConfig
from kubehost.drivers import default_registry
from kubehost.exceptions import HostInfoError
from kubehost.host import Host
from kubehost.host_info import get_host_info, megs, show_host_info, show_local_os_release, show_remote_os_release
from kubehost.notify import Event

from .conftest import FakeDriver, RecordingNotifier, RecordingProvisioner

GIB = 1024**3


@pytest.fixture
def fake_psutil():
    with (
        patch("kubehost.host_info.psutil.cpu_count", return_value=8),
        patch("kubehost.host_info.psutil.virtual_memory", return_value=SimpleNamespace(total=16 * GIB)),
        patch("kubehost.host_info.psutil.disk_usage", return_value=SimpleNamespace(total=500 * GIB)),
    ):
        yield


# ============================================================================
# get_host_info
# ============================================================================


class TestGetHostInfo:
    def test_megs_floors(self) -> None:
        assert megs(1024 * 1024 * 3 - 1) == 2

    @pytest.mark.usefixtures("fake_psutil")
    def test_reads_psutil(self) -> None:
        info = get_host_info()
        assert info.cpus == 8
        assert info.memory_mb == 16 * 1024
        assert info.disk_size_mb == 500 * 1024

    def test_disk_error(self) -> None:
        with (
            patch("kubehost.host_info.psutil.cpu_count", return_value=8),
            patch("kubehost.host_info.psutil.virtual_memory", return_value=SimpleNamespace(total=GIB)),
            patch("kubehost.host_info.psutil.disk_usage", side_effect=PermissionError("/")),
        ):
            with pytest.raises(HostInfoError, match="disk info"):
                get_host_info()

    def test_real_machine(self) -> None:
        info = get_host_info()
        assert info.cpus >= 1
        assert info.memory_mb > 0


# ============================================================================
# Notices
# ============================================================================


class TestShowHostInfo:
    @pytest.mark.usefixtures("fake_psutil")
    def test_bare_metal_reports_local_machine(self) -> None:
        notifier = RecordingNotifier()
        cfg = MachineConfig(name="local", vm_driver="none")
        show_host_info(cfg, default_registry().require("none"), notifier)
        assert notifier.events == [
            (Event.STARTING_NONE, {"number_of_cpus": 8, "memory_size": 16384, "disk_size": 512000}),
        ]

    @pytest.mark.usefixtures("fake_psutil")
    def test_container_reports_available_memory(self) -> None:
        notifier = RecordingNotifier()
        cfg = MachineConfig(name="kic", vm_driver="docker", cpus=4, memory_mb=4096)
        show_host_info(cfg, default_registry().require("docker"), notifier)
        event, payload = notifier.events[0]
        assert event is Event.STARTING_VM
        assert payload["host_memory_size"] == 16384
        assert "16384MB available" in payload["message"]

    def test_vm_reports_config(self) -> None:
        notifier = RecordingNotifier()
        cfg = MachineConfig(name="dev", vm_driver="kvm2", cpus=2, memory_mb=2048, disk_size_mb=20000)
        show_host_info(cfg, default_registry().require("kvm2"), notifier)
        event, payload = notifier.events[0]
        assert event is Event.STARTING_VM
        assert payload["message"] == "Creating kvm2 VM (CPUs=2, Memory=2048MB, Disk=20000MB) ..."

    def test_probe_error_suppresses_notice(self) -> None:
        notifier = RecordingNotifier()
        with patch("kubehost.host_info.psutil.cpu_count", side_effect=OSError("no /proc")):
            show_host_info(MachineConfig(vm_driver="none"), default_registry().require("none"), notifier)
        assert notifier.events == []


class TestOsRelease:
    async def test_local_os_release(self, tmp_path: Path) -> None:
        path = tmp_path / "os-release"
        path.write_text('NAME="Ubuntu"\nVERSION_ID="24.04"\nPRETTY_NAME="Ubuntu 24.04.1 LTS"\nID=ubuntu\n')
        notifier = RecordingNotifier()

        await show_local_os_release(notifier, path)

        assert notifier.events == [(Event.PROVISIONER, {"pretty_name": "Ubuntu 24.04.1 LTS"})]

    async def test_local_os_release_missing_file(self, tmp_path: Path) -> None:
        notifier = RecordingNotifier()
        await show_local_os_release(notifier, tmp_path / "missing")
        assert notifier.events == []

    async def test_local_os_release_unparseable(self, tmp_path: Path) -> None:
        path = tmp_path / "os-release"
        path.write_text("not an os-release file\n")
        notifier = RecordingNotifier()
        await show_local_os_release(notifier, path)
        assert notifier.events == []

    async def test_remote_os_release(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level("INFO", logger="kubehost")
        provisioner = RecordingProvisioner()
        host = Host(name="dev", driver_name="kvm2", driver=FakeDriver("kvm2", "dev"))

        await show_remote_os_release(host, provisioner)

        assert provisioner.calls == [("os_release", "dev")]
        assert [r.os_release for r in caplog.records if r.getMessage() == "Provisioned"] == ["Buildroot 2019.02.7"]

    async def test_remote_os_release_failure_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        class Broken(RecordingProvisioner):
            async def os_release(self, host: Host):  # type: ignore[override]
                raise RuntimeError("cat: /etc/os-release: No such file")

        await show_remote_os_release(Host(name="dev", driver_name="kvm2", driver=FakeDriver("kvm2")), Broken())
        assert "GetOsReleaseInfo" in caplog.text
