# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

import pytest
from pydantic import ValidationError

from coreason_rootfs.models import (
    Distro,
    ExecutionRequest,
    ExecutionResult,
    SandboxBinary,
    SandboxSource,
    SetupOutcome,
    SetupProgress,
    SourceFormat,
)


def test_execution_result_timed_out() -> None:
    assert ExecutionResult(stdout="", stderr="Timed out after 100ms", exit_code=-1).timed_out
    assert not ExecutionResult(stdout="", stderr="proot not found", exit_code=-1).timed_out
    assert not ExecutionResult(stdout="", stderr="Timed out after 100ms", exit_code=1).timed_out


def test_execution_request_validation() -> None:
    request = ExecutionRequest(environment_id="env", command="ls")
    assert request.working_dir == "/"
    assert request.timeout_ms == 300_000
    with pytest.raises(ValidationError):
        ExecutionRequest(environment_id="env", command="ls", timeout_ms=0)


def test_setup_progress_bounds() -> None:
    assert SetupProgress(message="x", progress=1.0).progress == 1.0
    with pytest.raises(ValidationError):
        SetupProgress(message="x", progress=1.5)


def test_setup_outcome() -> None:
    assert SetupOutcome(status="success", path="/data/linux_env/a").success
    cancelled = SetupOutcome(status="cancelled", code="CANCELLED", message="Cancelled")
    assert not cancelled.success
    assert cancelled.model_dump(exclude_none=True) == {
        "status": "cancelled",
        "code": "CANCELLED",
        "message": "Cancelled",
    }
    with pytest.raises(ValidationError):
        SetupOutcome(status="unknown")


def test_sandbox_source_is_frozen() -> None:
    source = SandboxSource(url="https://x/proot", format=SourceFormat.DEB)
    assert source.version == "unknown"
    with pytest.raises(ValidationError):
        source.url = "https://y/proot"  # type: ignore[misc]


def test_enums_and_binary() -> None:
    assert Distro("ubuntu") is Distro.UBUNTU
    assert SourceFormat("tar.gz") is SourceFormat.TAR_GZ
    assert SandboxBinary(path="/bin/proot", version="bundled").is_bundled
    assert not SandboxBinary(path="/bin/proot").is_bundled
