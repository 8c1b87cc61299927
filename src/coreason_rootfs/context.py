# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

import os
import signal
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Callable

from coreason_rootfs.exceptions import OperationCancelled
from coreason_rootfs.models import SetupProgress
from coreason_rootfs.utils.logger import logger

ProgressListener = Callable[[SetupProgress], None]
OutputListener = Callable[[str], None]


class CancellationToken:
    """Cooperative cancellation flag shared by the loops of one operation."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, message: str = "Cancelled") -> None:
        if self.is_cancelled:
            raise OperationCancelled(message)


def kill_process_tree(process: subprocess.Popen[str]) -> None:
    """SIGKILL the process group led by ``process``, falling back to the process."""
    if process.poll() is not None:
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        process.kill()


class ProcessRegistry:
    """Slot for the subprocess currently running on behalf of an operation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: subprocess.Popen[str] | None = None

    def register(self, process: subprocess.Popen[str]) -> None:
        with self._lock:
            self._current = process

    def unregister(self, process: subprocess.Popen[str]) -> None:
        with self._lock:
            if self._current is process:
                self._current = None

    @property
    def current(self) -> subprocess.Popen[str] | None:
        return self._current

    def kill_all(self) -> bool:
        """Forcibly end the tracked process. Returns True when one was running."""
        with self._lock:
            process = self._current
        if process is None or process.poll() is not None:
            return False
        logger.warning(f"Force-killing sandboxed process {process.pid}")
        kill_process_tree(process)
        return True


@dataclass(eq=False)
class OperationContext:
    """State carried through the call chain of one long-running operation.

    Attributes:
        name: Label used in logs.
        token: Cancellation flag checked by download and extraction loops.
        processes: Subprocess handle that an external cancel can kill.
        on_progress: Optional sink for setup progress events.
    """

    name: str = "operation"
    token: CancellationToken = field(default_factory=CancellationToken)
    processes: ProcessRegistry = field(default_factory=ProcessRegistry)
    on_progress: ProgressListener | None = None

    @property
    def cancelled(self) -> bool:
        return self.token.is_cancelled

    def cancel(self) -> None:
        self.token.cancel()
        self.processes.kill_all()

    def progress(self, message: str, value: float) -> None:
        value = min(max(value, 0.0), 1.0)
        logger.debug(f"[{self.name}] {value:.3f} {message}")
        if self.on_progress is not None:
            self.on_progress(SetupProgress(message=message, progress=value))
