# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

import platform
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_rootfs.models import Arch

DEFAULT_RELEASE_API_URL = "https://api.github.com/repos/proot-me/proot/releases"


def detect_arch(machine: str | None = None) -> Arch:
    """Map a host machine name onto the two supported architectures."""
    name = (machine if machine is not None else platform.machine()).lower()
    if "x86_64" in name or "amd64" in name:
        return Arch.X86_64
    return Arch.AARCH64


def device_abi(machine: str | None = None) -> str:
    """Report the host CPU ABI using Android ABI names."""
    name = (machine if machine is not None else platform.machine()).lower()
    if name in ("x86_64", "amd64"):
        return "x86_64"
    if name in ("i386", "i686", "x86"):
        return "x86"
    if name.startswith("armv7") or name == "arm":
        return "armeabi-v7a"
    return "arm64-v8a"


class RootfsConfig(BaseSettings):
    """
    Configuration for environment provisioning and sandboxed execution.
    """

    data_dir: Path = Path.home() / ".local" / "share" / "coreason-rootfs"
    env_root: Path | None = None
    bin_dir: Path | None = None
    bundled_dir: Path | None = None
    arch: Arch | None = None

    release_api_url: str = DEFAULT_RELEASE_API_URL
    user_agent: str = "CoreasonRootfs/0.1"
    min_binary_size: int = 10_000

    metadata_connect_timeout: float = 10.0
    metadata_read_timeout: float = 15.0
    binary_connect_timeout: float = 20.0
    binary_read_timeout: float = 300.0
    rootfs_read_timeout: float = 600.0

    command_timeout_ms: int = 300_000
    provision_timeout_ms: int = 300_000
    reader_join_timeout: float = 3.0
    progress_every: int = 300
    enable_update_check: bool = True

    model_config = SettingsConfigDict(
        env_prefix="COREASON_ROOTFS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _derive_paths(self) -> "RootfsConfig":
        # rootfs must live where binaries may be executed, so it sits under data_dir
        if self.env_root is None:
            self.env_root = self.data_dir / "linux_env"
        if self.bin_dir is None:
            self.bin_dir = self.data_dir / "bin"
        return self

    @property
    def target_arch(self) -> Arch:
        return self.arch or detect_arch()

    @property
    def environments_dir(self) -> Path:
        assert self.env_root is not None
        return self.env_root

    @property
    def binaries_dir(self) -> Path:
        assert self.bin_dir is not None
        return self.bin_dir

    @property
    def proot_path(self) -> Path:
        return self.binaries_dir / "proot"

    @property
    def version_marker_path(self) -> Path:
        return self.binaries_dir / "proot.version"

    def environment_path(self, env_id: str) -> Path:
        return self.environments_dir / env_id
