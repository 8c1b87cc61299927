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

from pydantic import BaseModel, ConfigDict


class Arch(str, Enum):
    """Target CPU architecture of the sandbox executable and rootfs."""

    X86_64 = "x86_64"
    AARCH64 = "aarch64"


class SourceFormat(str, Enum):
    """Container format a sandbox executable is published in."""

    BINARY = "binary"
    TAR_GZ = "tar.gz"
    ZIP = "zip"
    DEB = "deb"


class SandboxSource(BaseModel):
    """A candidate location for the proot executable.

    Attributes:
        url: Download URL.
        format: Container format of the payload at ``url``.
        version: Provenance written to the version marker when this source wins.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    format: SourceFormat
    version: str = "unknown"
