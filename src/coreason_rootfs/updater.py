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
import tempfile
from pathlib import Path
from typing import Callable

from packaging.version import InvalidVersion, Version

from coreason_rootfs.config import RootfsConfig
from coreason_rootfs.models import BUNDLED_VERSION, UpdateStatus
from coreason_rootfs.releases import find_asset_url, parse_releases, version_from_url
from coreason_rootfs.resolver import BINARY_WRITE_LOCK, SandboxResolver
from coreason_rootfs.utils.logger import logger


def is_newer(latest: str, installed: str) -> bool:
    """Compare release strings; an unparsable installed marker counts as older."""
    try:
        latest_version = Version(latest)
    except InvalidVersion:
        return False
    try:
        return latest_version > Version(installed)
    except InvalidVersion:
        return True


class UpdateChecker:
    """Looks for a newer proot release and swaps it in when allowed.

    A binary whose marker says it was bundled is never replaced.
    """

    def __init__(
        self,
        resolver: SandboxResolver,
        config: RootfsConfig | None = None,
        on_updated: Callable[[str], None] | None = None,
    ):
        self.resolver = resolver
        self.config = config or resolver.config
        self.on_updated = on_updated

    def check(self) -> UpdateStatus:
        """Run one update check and report what happened. Never raises."""
        try:
            return self._check()
        except Exception as e:
            logger.warning(f"proot update check failed: {e}")
            return UpdateStatus(updated=False, error=str(e))

    def try_update(self) -> None:
        """Background variant of :meth:`check`; the outcome is only logged."""
        status = self.check()
        if status.updated:
            logger.info(f"proot updated to {status.version}")
        else:
            logger.debug(f"proot not updated: {status.reason or status.error}")

    def _check(self) -> UpdateStatus:
        if not self.resolver.is_installed():
            return UpdateStatus(updated=False, reason="proot not installed")

        installed = self.resolver.read_version()
        if installed == BUNDLED_VERSION:
            return UpdateStatus(updated=False, version=installed, reason="bundled proot is not replaced automatically")

        arch = self.resolver.arch
        url = find_asset_url(parse_releases(self.resolver.transfer.fetch_text(self.config.release_api_url)), arch)
        if url is None:
            return UpdateStatus(updated=False, version=installed, reason=f"no release asset for {arch.value}")

        latest = version_from_url(url)
        if latest is None or not is_newer(latest, installed):
            return UpdateStatus(updated=False, version=installed, reason="already up to date")

        # one staging file per check; overlapping checks must not share it
        fd, name = tempfile.mkstemp(dir=self.config.binaries_dir, prefix="proot_update", suffix=".tmp")
        os.close(fd)
        tmp = Path(name)
        try:
            self.resolver.transfer.fetch_to_file(url, tmp)
            if tmp.stat().st_size <= self.config.min_binary_size:
                return UpdateStatus(updated=False, version=installed, reason="download too small")
            with BINARY_WRITE_LOCK:
                current = self.resolver.read_version()
                # another writer may have installed a bundled or newer copy while we were downloading
                if current == BUNDLED_VERSION:
                    return UpdateStatus(
                        updated=False, version=BUNDLED_VERSION, reason="bundled proot is not replaced automatically"
                    )
                if not is_newer(latest, current):
                    return UpdateStatus(updated=False, version=current, reason="already up to date")
                self.resolver.install(tmp, latest)
        finally:
            tmp.unlink(missing_ok=True)

        if self.on_updated is not None:
            try:
                self.on_updated(latest)
            except Exception as e:
                logger.warning(f"proot update listener failed: {e}")
        return UpdateStatus(updated=True, version=latest)
