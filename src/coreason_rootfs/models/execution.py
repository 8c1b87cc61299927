# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

from pydantic import BaseModel, Field


class ExecutionRequest(BaseModel):
    """A shell command to run inside an environment."""

    environment_id: str
    command: str
    working_dir: str = "/"
    timeout_ms: int = Field(default=300_000, gt=0)


class ExecutionResult(BaseModel):
    """Represents the result of a command executed inside the sandbox.

    Attributes:
        stdout: Standard output captured from the command.
        stderr: Standard error captured from the command, or a diagnostic.
        exit_code: The exit code of the process, -1 on timeout or launch failure.
        execution_duration: Wall-clock duration in seconds.
    """

    stdout: str
    stderr: str
    exit_code: int
    execution_duration: float = 0.0

    @property
    def timed_out(self) -> bool:
        return self.exit_code == -1 and self.stderr.startswith("Timed out after")
