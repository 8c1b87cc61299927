# src/coreason_rootfs/models/__init__.py

"""
Data models for provisioning and sandboxed execution.
"""

from .environment import BUNDLED_VERSION, UNKNOWN_VERSION, Distro, Environment, SandboxBinary, StorageInfo
from .execution import ExecutionRequest, ExecutionResult
from .progress import SetupOutcome, SetupProgress, TransferProgress, UpdateStatus
from .sources import Arch, SandboxSource, SourceFormat

__all__ = [
    "Arch",
    "BUNDLED_VERSION",
    "Distro",
    "Environment",
    "ExecutionRequest",
    "ExecutionResult",
    "SandboxBinary",
    "SandboxSource",
    "SetupOutcome",
    "SetupProgress",
    "SourceFormat",
    "StorageInfo",
    "TransferProgress",
    "UNKNOWN_VERSION",
    "UpdateStatus",
]
