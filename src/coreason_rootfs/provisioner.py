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
from pathlib import Path
from typing import Callable

from coreason_rootfs.config import RootfsConfig
from coreason_rootfs.context import OperationContext
from coreason_rootfs.distros import PIP_UPGRADE_COMMAND, get_profile
from coreason_rootfs.exceptions import OperationCancelled, SetupCancelled, SetupError
from coreason_rootfs.executor import SandboxExecutor
from coreason_rootfs.extractors import extract_rootfs
from coreason_rootfs.models import Distro, Environment
from coreason_rootfs.resolver import SandboxResolver
from coreason_rootfs.transfer import TransferClient
from coreason_rootfs.utils.logger import logger

INSTALL_MARKERS: tuple[str, ...] = ("etc/os-release", "bin/sh", "usr/bin/sh")

RESOLV_CONF = "nameserver 8.8.8.8\nnameserver 1.1.1.1\n"
HOSTS = "127.0.0.1 localhost\n::1 localhost\n"

DOWNLOAD_RANGE = (0.10, 0.62)
EXTRACT_RANGE = (0.62, 0.74)


def is_environment_installed(root: Path) -> bool:
    """True when ``root`` holds an OS release file or a POSIX shell."""
    # lexists: bin/sh is usually an absolute symlink that only resolves inside the sandbox
    return any(os.path.lexists(root / marker) for marker in INSTALL_MARKERS)


def write_network_config(root: Path) -> None:
    etc = root / "etc"
    etc.mkdir(parents=True, exist_ok=True)
    for name, content in (("resolv.conf", RESOLV_CONF), ("hosts", HOSTS)):
        target = etc / name
        # distro images often ship these as symlinks into /run
        if target.is_symlink():
            target.unlink()
        target.write_text(content, encoding="utf-8")


class RootfsProvisioner:
    """Builds an environment: proot, base image, network config, Python toolchain.

    Steps run strictly in order and the cancellation token is checked at each
    boundary. A failure leaves whatever was already written on disk; running
    the same environment id again overwrites it.
    """

    def __init__(
        self,
        config: RootfsConfig | None = None,
        resolver: SandboxResolver | None = None,
        executor: SandboxExecutor | None = None,
        transfer: TransferClient | None = None,
        on_binary_ready: Callable[[], None] | None = None,
    ):
        """Initializes the RootfsProvisioner.

        Args:
            config: Paths, architecture and timeouts.
            resolver: Acquires proot when it is missing.
            executor: Runs the provisioning commands inside the new root.
            transfer: Downloads the base image.
            on_binary_ready: Called when proot was already installed, e.g. to
                schedule a background update check.
        """
        self.config = config or RootfsConfig()
        self.transfer = transfer or TransferClient(self.config)
        self.resolver = resolver or SandboxResolver(self.config, self.transfer)
        self.executor = executor or SandboxExecutor(self.config)
        self.on_binary_ready = on_binary_ready

    def provision(self, distro: Distro | str, env_id: str, context: OperationContext | None = None) -> Environment:
        """Provision ``env_id`` from ``distro``.

        Raises:
            SetupCancelled: When the context was cancelled.
            SetupError: For any other failure, wrapping the cause.
        """
        context = context or OperationContext(name=f"setup:{env_id}")
        try:
            return self._provision(distro, env_id, context)
        except SetupCancelled:
            raise
        except OperationCancelled as e:
            raise SetupCancelled(str(e)) from e
        except SetupError:
            raise
        except Exception as e:
            logger.error(f"Provisioning {env_id} failed: {e}")
            raise SetupError(str(e) or type(e).__name__, cause=e) from e

    def _checkpoint(self, context: OperationContext, env_id: str) -> None:
        if context.cancelled:
            logger.info(f"Provisioning {env_id} cancelled")
            raise SetupCancelled("Cancelled")

    def _provision(self, distro: Distro | str, env_id: str, context: OperationContext) -> Environment:
        profile = get_profile(distro)
        config = self.config

        context.progress("Preparing directories…", 0.02)
        config.environments_dir.mkdir(parents=True, exist_ok=True)
        config.binaries_dir.mkdir(parents=True, exist_ok=True)
        env_dir = config.environment_path(env_id)
        env_dir.mkdir(parents=True, exist_ok=True)

        self.resolver.ensure(context, on_ready=self.on_binary_ready)
        self._checkpoint(context, env_id)

        url = profile.image_url(self.resolver.arch)
        archive = config.data_dir / f"rootfs_{env_id}.tar.gz"
        context.progress(f"Downloading {profile.distro.value} Linux…", DOWNLOAD_RANGE[0])
        try:
            self.transfer.fetch_to_file_with_progress(url, archive, DOWNLOAD_RANGE, context)
            self._checkpoint(context, env_id)
        except OperationCancelled:
            archive.unlink(missing_ok=True)
            raise

        context.progress("Extracting rootfs…", EXTRACT_RANGE[0])
        try:
            count = extract_rootfs(archive, env_dir, context, config.progress_every, EXTRACT_RANGE)
        finally:
            archive.unlink(missing_ok=True)
        logger.info(f"Extracted {count} entries into {env_dir}")
        self._checkpoint(context, env_id)

        write_network_config(env_dir)

        self._run_step(env_id, profile.update_label, profile.update_command, 0.75, context)
        self._run_step(env_id, "Installing Python3…", profile.install_command, 0.82, context)
        self._run_step(env_id, "Upgrading pip…", PIP_UPGRADE_COMMAND, 0.93, context, fatal=False)

        context.progress("✅ Python environment ready!", 1.0)
        return Environment(id=env_id, distro=profile.distro, root_path=env_dir.resolve())

    def _run_step(
        self,
        env_id: str,
        label: str,
        command: str,
        progress: float,
        context: OperationContext,
        fatal: bool = True,
    ) -> None:
        context.progress(label, progress)
        result = self.executor.run(
            env_id,
            command,
            "/",
            self.config.provision_timeout_ms,
            context,
            on_output=lambda line: logger.debug(f"[{env_id}] {line}"),
        )
        self._checkpoint(context, env_id)
        if result.exit_code == 0:
            return
        tail = "\n".join((result.stdout + result.stderr).strip().splitlines()[-3:])
        if not fatal:
            logger.warning(f"Non-fatal provisioning step failed ({result.exit_code}): {command}\n{tail}")
            return
        raise SetupError(f"'{command}' failed with exit code {result.exit_code}: {tail}")
