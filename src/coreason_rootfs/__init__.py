# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

"""
coreason-rootfs
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import RootfsConfig
from .context import CancellationToken, OperationContext
from .exceptions import (
    AcquisitionExhausted,
    ExtractionFailure,
    NotFoundError,
    OperationCancelled,
    RootfsError,
    SetupCancelled,
    SetupError,
    TransferError,
)
from .executor import SandboxExecutor
from .models import Distro, Environment, ExecutionResult, SandboxSource, SetupOutcome, SetupProgress, SourceFormat
from .provisioner import RootfsProvisioner
from .resolver import SandboxResolver
from .service import RootfsService, RootfsServiceAsync
from .transfer import TransferClient
from .updater import UpdateChecker

__all__ = [
    "AcquisitionExhausted",
    "CancellationToken",
    "Distro",
    "Environment",
    "ExecutionResult",
    "ExtractionFailure",
    "NotFoundError",
    "OperationCancelled",
    "OperationContext",
    "RootfsConfig",
    "RootfsError",
    "RootfsProvisioner",
    "RootfsService",
    "RootfsServiceAsync",
    "SandboxExecutor",
    "SandboxResolver",
    "SandboxSource",
    "SetupCancelled",
    "SetupError",
    "SetupOutcome",
    "SetupProgress",
    "SourceFormat",
    "TransferClient",
    "TransferError",
    "UpdateChecker",
]
