# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

BUNDLED_VERSION = "bundled"
UNKNOWN_VERSION = "unknown"


class Distro(str, Enum):
    """Supported base distributions."""

    ALPINE = "alpine"
    UBUNTU = "ubuntu"


class Environment(BaseModel):
    """A provisioned root filesystem.

    Attributes:
        id: Caller-supplied identifier; also the directory name under the env root.
        distro: Distribution the root was provisioned from.
        root_path: Absolute path of the root directory.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    distro: Distro
    root_path: Path


class SandboxBinary(BaseModel):
    """The proot executable and its provenance marker value."""

    path: Path
    version: str = UNKNOWN_VERSION

    @property
    def is_bundled(self) -> bool:
        return self.version == BUNDLED_VERSION


class StorageInfo(BaseModel):
    """Storage locations and capacity, plus the installed proot version."""

    data_dir: str
    env_root: str
    free_space_mb: int
    total_space_mb: int
    proot_version: str
