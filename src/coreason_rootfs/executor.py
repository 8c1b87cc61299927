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
import subprocess
import threading
import time
from pathlib import Path
from typing import IO

from coreason_rootfs.config import RootfsConfig
from coreason_rootfs.context import OperationContext, OutputListener, kill_process_tree
from coreason_rootfs.exceptions import NotFoundError
from coreason_rootfs.models import ExecutionResult
from coreason_rootfs.utils.logger import logger

SHELL_CANDIDATES: tuple[str, ...] = ("/bin/bash", "/usr/bin/bash")
DEFAULT_SHELL = "/bin/sh"
HOST_BINDS: tuple[str, ...] = ("/dev", "/proc", "/sys")
ERROR_PREFIX = "[err] "


def select_shell(root: Path) -> str:
    """Pick the first shell present inside ``root``, defaulting to ``/bin/sh``."""
    for shell in SHELL_CANDIDATES:
        if (root / shell.lstrip("/")).exists():
            return shell
    return DEFAULT_SHELL


class SandboxExecutor:
    """Runs shell commands inside a provisioned rootfs through proot.

    Each run spawns proot in its own process group, drains stdout and stderr
    on two reader threads, and kills the whole group when the timeout expires.
    """

    def __init__(self, config: RootfsConfig | None = None, proot_path: Path | None = None):
        """Initializes the SandboxExecutor.

        Args:
            config: Paths and default timeout.
            proot_path: Explicit proot location. Defaults to the resolver's install path.
        """
        self.config = config or RootfsConfig()
        self.proot_path = proot_path or self.config.proot_path

    def build_command(self, root: Path, working_dir: str, command: str) -> list[str]:
        argv = [str(self.proot_path), "--kill-on-exit", "-r", str(root), "-w", working_dir]
        for bind in HOST_BINDS:
            argv.extend(["-b", bind])
        argv.extend(["-0", select_shell(root), "-c", command])
        return argv

    def build_env(self, root: Path) -> dict[str, str]:
        # Passed through the process environment rather than proot's --env flag,
        # which older proot builds do not understand.
        env = dict(os.environ)
        env.update(
            {
                "HOME": "/root",
                "PATH": "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin",
                "LANG": "C.UTF-8",
                "TERM": "xterm-256color",
                "PROOT_TMP_DIR": str(root / "tmp"),
                "PYTHONDONTWRITEBYTECODE": "1",
                "PIP_NO_CACHE_DIR": "off",
                "PROOT_NO_SECCOMP": "1",
            }
        )
        return env

    def run(
        self,
        environment_id: str,
        command: str,
        working_dir: str = "/",
        timeout_ms: int | None = None,
        context: OperationContext | None = None,
        on_output: OutputListener | None = None,
    ) -> ExecutionResult:
        """Run ``command`` inside the environment and capture its output.

        Args:
            environment_id: Identifier of a provisioned environment.
            command: Shell command line, interpreted by the environment's shell.
            working_dir: Working directory inside the environment.
            timeout_ms: Wall-clock limit. Defaults to ``command_timeout_ms``.
            context: Tracks the running process so an external cancel can kill it.
            on_output: Receives every output line as it arrives; stderr lines
                are prefixed with ``[err] ``.

        Returns:
            ExecutionResult: Exit code -1 with a diagnostic in stderr when the
            command timed out or could not be launched. A non-positive
            ``timeout_ms`` is rejected the same way.
        """
        if timeout_ms is None:
            timeout_ms = self.config.command_timeout_ms
        if timeout_ms <= 0:
            return self._failure(f"timeout_ms must be positive, got {timeout_ms}")
        context = context or OperationContext(name=f"exec:{environment_id}")
        try:
            root = self._resolve_root(environment_id)
        except NotFoundError as e:
            logger.warning(str(e))
            return self._failure(str(e))

        (root / "tmp").mkdir(parents=True, exist_ok=True)
        self.config.data_dir.mkdir(parents=True, exist_ok=True)
        argv = self.build_command(root, working_dir, command)

        logger.info(f"Executing in {environment_id}: {command[:120]}")
        start_time = time.time()
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=str(self.config.data_dir),
                env=self.build_env(root),
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Failed to launch proot: {e}")
            return self._failure(f"Failed to launch proot: {e}")

        context.processes.register(process)
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        readers = [
            threading.Thread(
                target=self._drain, args=(process.stdout, stdout_lines, on_output, ""), daemon=True
            ),
            threading.Thread(
                target=self._drain, args=(process.stderr, stderr_lines, on_output, ERROR_PREFIX), daemon=True
            ),
        ]
        for reader in readers:
            reader.start()

        timed_out = False
        try:
            exit_code = process.wait(timeout=timeout_ms / 1000)
        except subprocess.TimeoutExpired:
            logger.warning(f"Command in {environment_id} timed out after {timeout_ms}ms. Killing process group.")
            timed_out = True
            kill_process_tree(process)
            exit_code = process.wait()
        finally:
            context.processes.unregister(process)

        for reader in readers:
            reader.join(self.config.reader_join_timeout)

        duration = time.time() - start_time
        stdout = "".join(list(stdout_lines))
        if timed_out:
            return ExecutionResult(
                stdout=stdout,
                stderr=f"Timed out after {timeout_ms}ms",
                exit_code=-1,
                execution_duration=duration,
            )
        return ExecutionResult(
            stdout=stdout,
            stderr="".join(list(stderr_lines)),
            exit_code=exit_code,
            execution_duration=duration,
        )

    def _resolve_root(self, environment_id: str) -> Path:
        if not self.proot_path.is_file():
            raise NotFoundError("proot not found, run setup again")
        root = self.config.environment_path(environment_id)
        if not root.is_dir():
            raise NotFoundError(f"Environment '{environment_id}' is not installed")
        return root

    @staticmethod
    def _drain(stream: IO[str] | None, sink: list[str], listener: OutputListener | None, prefix: str) -> None:
        if stream is None:
            return
        try:
            for line in stream:
                sink.append(line)
                if listener is not None:
                    try:
                        listener(prefix + line.rstrip("\n"))
                    except Exception as e:
                        logger.warning(f"Output listener failed: {e}")
        except ValueError:
            # stream closed underneath us after a forced kill
            pass
        finally:
            stream.close()

    @staticmethod
    def _failure(message: str) -> ExecutionResult:
        return ExecutionResult(stdout="", stderr=message, exit_code=-1)
