"""Cross-platform OS detection and storage-root resolution.

Uses psutil's built-in OS detection constants for platform identification.
"""

import os
from enum import Enum, auto
from functools import cache
from pathlib import Path

import psutil


class HostOS(Enum):
    """Supported host operating systems."""

    LINUX = auto()
    """Linux (KVM, bare metal and container backends)."""

    MACOS = auto()
    """macOS (hyperkit, VMware Fusion, Parallels)."""

    WINDOWS = auto()
    """Windows (Hyper-V, VirtualBox)."""

    UNKNOWN = auto()
    """Unsupported or unrecognized OS."""


@cache
def detect_host_os() -> HostOS:
    """Detect current host operating system using psutil constants."""
    if psutil.LINUX:
        return HostOS.LINUX
    if psutil.MACOS:
        return HostOS.MACOS
    if psutil.WINDOWS:
        return HostOS.WINDOWS
    return HostOS.UNKNOWN


def get_home_dir() -> Path:
    """Storage root holding machines, certificates and profiles.

    Detection order:
    1. MINIKUBE_HOME environment variable (the directory itself, or its
       parent when it does not already end in ``.minikube``)
    2. ~/.minikube
    """
    if env_home := os.environ.get("MINIKUBE_HOME"):
        path = Path(env_home)
        return path if path.name == ".minikube" else path / ".minikube"
    return Path.home() / ".minikube"


def default_vboxmanage_path() -> Path:
    """Location of the VirtualBox control tool for this platform.

    On Windows the installer exports VBOX_MSI_INSTALL_PATH / VBOX_INSTALL_PATH;
    elsewhere the tool is expected on PATH.
    """
    if detect_host_os() == HostOS.WINDOWS:
        for var in ("VBOX_INSTALL_PATH", "VBOX_MSI_INSTALL_PATH"):
            if install_dir := os.environ.get(var):
                return Path(install_dir) / "VBoxManage.exe"
        return Path("VBoxManage.exe")
    return Path("VBoxManage")
