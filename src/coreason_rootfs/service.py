# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

import shutil
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

import aiofiles  # type: ignore[import-untyped]
import anyio
import httpx

from coreason_rootfs.config import RootfsConfig, device_abi
from coreason_rootfs.context import OperationContext, OutputListener, ProgressListener
from coreason_rootfs.events import EventDispatcher
from coreason_rootfs.exceptions import SetupCancelled, SetupError
from coreason_rootfs.executor import SandboxExecutor
from coreason_rootfs.models import UNKNOWN_VERSION, Distro, ExecutionResult, SetupOutcome, StorageInfo, UpdateStatus
from coreason_rootfs.provisioner import RootfsProvisioner, is_environment_installed
from coreason_rootfs.resolver import SandboxResolver
from coreason_rootfs.transfer import TransferClient
from coreason_rootfs.updater import UpdateChecker
from coreason_rootfs.utils.logger import logger

MB = 1024 * 1024


def validate_env_id(env_id: str) -> str:
    """Reject identifiers that are empty or would leave the environments directory."""
    if not env_id:
        raise ValueError("Environment ID is required")
    if "/" in env_id or "\\" in env_id or env_id in (".", ".."):
        raise ValueError(f"Invalid environment ID: {env_id!r}")
    return env_id


class RootfsServiceAsync:
    """Async-native provisioning and execution service (The Core).

    Blocking work runs on worker threads; events are delivered from a single
    dispatcher thread so the event loop and the workers never wait on listeners.
    """

    def __init__(
        self,
        config: RootfsConfig | None = None,
        client: httpx.Client | None = None,
        on_proot_updated: Callable[[str], None] | None = None,
    ):
        """Initializes the RootfsServiceAsync service.

        Args:
            config: Configuration for provisioning and execution.
            client: Optional httpx.Client for connection pooling.
            on_proot_updated: Notified with the new version after a background update.
        """
        self.config = config or RootfsConfig()
        self.transfer = TransferClient(self.config, client=client)
        self.resolver = SandboxResolver(self.config, self.transfer)
        self.executor = SandboxExecutor(self.config)
        self.events = EventDispatcher()
        self._on_proot_updated = on_proot_updated
        self.updater = UpdateChecker(self.resolver, self.config, on_updated=self._notify_updated)
        self._background = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rootfs-update")
        self.provisioner = RootfsProvisioner(
            self.config,
            self.resolver,
            self.executor,
            self.transfer,
            on_binary_ready=self._schedule_update_check,
        )
        self._active: set[OperationContext] = set()
        self._active_lock = threading.Lock()

    async def __aenter__(self) -> "RootfsServiceAsync":
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stops background work, flushes pending events and closes the HTTP client."""
        await self.cancel_setup()
        self._background.shutdown(wait=False, cancel_futures=True)
        await anyio.to_thread.run_sync(self.events.close)
        self.transfer.close()

    def _track(self, context: OperationContext) -> None:
        with self._active_lock:
            self._active.add(context)

    def _untrack(self, context: OperationContext) -> None:
        with self._active_lock:
            self._active.discard(context)

    def _schedule_update_check(self) -> None:
        if not self.config.enable_update_check:
            return
        try:
            self._background.submit(self.updater.try_update)
        except RuntimeError as e:
            logger.debug(f"Update check not scheduled: {e}")

    def _notify_updated(self, version: str) -> None:
        self.events.post(self._on_proot_updated, version)

    async def setup_environment(
        self,
        distro: Distro | str = Distro.ALPINE,
        env_id: str = "alpine-3.19",
        on_progress: ProgressListener | None = None,
    ) -> SetupOutcome:
        """Provisions an environment.

        Args:
            distro: Base distribution ('alpine' or 'ubuntu').
            env_id: Identifier of the environment to create or overwrite.
            on_progress: Receives SetupProgress events.

        Returns:
            SetupOutcome: success with the root path, cancelled, or error with a message.
        """
        try:
            validate_env_id(env_id)
        except ValueError as e:
            return SetupOutcome(status="error", code="SETUP_ERROR", message=str(e))

        context = OperationContext(name=f"setup:{env_id}", on_progress=self.events.bind(on_progress))
        with self._active_lock:
            if any(active.name == context.name for active in self._active):
                logger.warning(f"Setup already running for {env_id}")
                return SetupOutcome(status="error", code="SETUP_ERROR", message=f"Setup already running for {env_id}")
            self._active.add(context)
        logger.info("Setting up environment", env_id=env_id, distro=str(distro))
        try:
            environment = await anyio.to_thread.run_sync(self.provisioner.provision, distro, env_id, context)
        except SetupCancelled:
            return SetupOutcome(status="cancelled", code="CANCELLED", message="Cancelled")
        except SetupError as e:
            return SetupOutcome(status="error", code="SETUP_ERROR", message=str(e))
        finally:
            self._untrack(context)
        return SetupOutcome(status="success", path=str(environment.root_path))

    async def cancel_setup(self) -> bool:
        """Cancels running setups and force-kills in-flight sandboxed processes."""
        with self._active_lock:
            contexts = list(self._active)
        for context in contexts:
            context.cancel()
        if contexts:
            logger.info(f"Cancelled {len(contexts)} running operation(s)")
        return True

    async def execute_command(
        self,
        environment_id: str,
        command: str,
        working_dir: str = "/",
        timeout_ms: int | None = None,
        on_output: OutputListener | None = None,
    ) -> ExecutionResult:
        """Executes a shell command inside an environment.

        Args:
            environment_id: The environment to run in.
            command: The shell command line.
            working_dir: Working directory inside the environment.
            timeout_ms: Wall-clock limit in milliseconds.
            on_output: Receives output lines as they are produced.

        Returns:
            ExecutionResult: Always a result; problems are reported with exit code -1.
        """
        try:
            validate_env_id(environment_id)
        except ValueError as e:
            return ExecutionResult(stdout="", stderr=str(e), exit_code=-1)

        context = OperationContext(name=f"exec:{environment_id}")
        self._track(context)
        try:
            return await anyio.to_thread.run_sync(
                self.executor.run,
                environment_id,
                command,
                working_dir,
                timeout_ms,
                context,
                self.events.bind(on_output),
            )
        finally:
            self._untrack(context)

    async def is_environment_installed(self, env_id: str) -> bool:
        """Checks whether an environment root holds an OS marker or a shell."""
        validate_env_id(env_id)
        return is_environment_installed(self.config.environment_path(env_id))

    async def check_proot_update(self) -> UpdateStatus:
        """Looks for a newer proot release and installs it when allowed."""
        return await anyio.to_thread.run_sync(self.updater.check)

    async def get_environment_path(self) -> str:
        """Absolute path of the directory holding every environment root."""
        return str(self.config.environments_dir.resolve())

    async def get_storage_info(self) -> StorageInfo:
        """Reports storage paths, free/total space and the installed proot version."""
        data_dir = self.config.data_dir
        data_dir.mkdir(parents=True, exist_ok=True)
        usage = shutil.disk_usage(data_dir)

        version = UNKNOWN_VERSION
        marker = self.config.version_marker_path
        if marker.exists():
            async with aiofiles.open(marker, "r", encoding="utf-8") as f:
                version = (await f.read()).strip() or UNKNOWN_VERSION

        return StorageInfo(
            data_dir=str(data_dir.resolve()),
            env_root=str(self.config.environments_dir.resolve()),
            free_space_mb=usage.free // MB,
            total_space_mb=usage.total // MB,
            proot_version=version,
        )

    async def get_device_arch(self) -> str:
        """Reports the host CPU ABI."""
        return device_abi()


class RootfsService:
    """Sync Facade for RootfsServiceAsync (The Facade).

    Wraps RootfsServiceAsync and executes methods via anyio.run.
    """

    def __init__(
        self,
        config: RootfsConfig | None = None,
        client: httpx.Client | None = None,
        on_proot_updated: Callable[[str], None] | None = None,
    ):
        self._async = RootfsServiceAsync(config, client, on_proot_updated)

    def __enter__(self) -> "RootfsService":
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    def close(self) -> None:
        anyio.run(self._async.aclose)

    def setup_environment(
        self,
        distro: Distro | str = Distro.ALPINE,
        env_id: str = "alpine-3.19",
        on_progress: ProgressListener | None = None,
    ) -> SetupOutcome:
        return anyio.run(self._async.setup_environment, distro, env_id, on_progress)

    def cancel_setup(self) -> bool:
        return anyio.run(self._async.cancel_setup)

    def execute_command(
        self,
        environment_id: str,
        command: str,
        working_dir: str = "/",
        timeout_ms: int | None = None,
        on_output: OutputListener | None = None,
    ) -> ExecutionResult:
        return anyio.run(self._async.execute_command, environment_id, command, working_dir, timeout_ms, on_output)

    def is_environment_installed(self, env_id: str) -> bool:
        return anyio.run(self._async.is_environment_installed, env_id)

    def check_proot_update(self) -> UpdateStatus:
        return anyio.run(self._async.check_proot_update)

    def get_environment_path(self) -> str:
        return anyio.run(self._async.get_environment_path)

    def get_storage_info(self) -> StorageInfo:
        return anyio.run(self._async.get_storage_info)

    def get_device_arch(self) -> str:
        return anyio.run(self._async.get_device_arch)
