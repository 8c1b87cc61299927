# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

from typing import Literal

from pydantic import BaseModel, Field


class TransferProgress(BaseModel):
    """Byte counters for an in-flight download."""

    bytes_done: int = 0
    bytes_total: int = 1
    phase_label: str = ""


class SetupProgress(BaseModel):
    """Progress event emitted during environment setup."""

    message: str
    progress: float = Field(ge=0.0, le=1.0)


class SetupOutcome(BaseModel):
    """Terminal outcome of a setup request."""

    status: Literal["success", "cancelled", "error"]
    path: str | None = None
    code: str | None = None
    message: str | None = None

    @property
    def success(self) -> bool:
        return self.status == "success"


class UpdateStatus(BaseModel):
    """Result of an explicit proot update check."""

    updated: bool
    version: str | None = None
    reason: str | None = None
    error: str | None = None
