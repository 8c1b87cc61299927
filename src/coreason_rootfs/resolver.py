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
import shutil
import threading
from pathlib import Path
from typing import Callable

from coreason_rootfs.config import RootfsConfig
from coreason_rootfs.context import OperationContext
from coreason_rootfs.exceptions import AcquisitionExhausted, ExtractionFailure, RootfsError
from coreason_rootfs.extractors import extract_from_deb, extract_named_from_tar, extract_named_from_zip, write_named
from coreason_rootfs.models import (
    BUNDLED_VERSION,
    UNKNOWN_VERSION,
    Arch,
    SandboxBinary,
    SandboxSource,
    SourceFormat,
)
from coreason_rootfs.releases import find_asset_url, parse_releases, version_from_url
from coreason_rootfs.transfer import TransferClient
from coreason_rootfs.utils.logger import logger

# Serialises every writer of the proot binary and its version marker.
BINARY_WRITE_LOCK = threading.Lock()

_EXTRACTORS: dict[SourceFormat, Callable[[Path], bytes | None]] = {
    SourceFormat.TAR_GZ: lambda archive: extract_named_from_tar(archive),
    SourceFormat.ZIP: lambda archive: extract_named_from_zip(archive),
    SourceFormat.DEB: lambda archive: extract_from_deb(archive.read_bytes()),
}


def default_sources(arch: Arch) -> list[SandboxSource]:
    """Known proot locations for ``arch``, most reliable first."""
    a = arch.value
    return [
        # last upstream release that still shipped prebuilt binaries
        SandboxSource(
            url=f"https://github.com/proot-me/proot/releases/download/v5.3.0/proot-{a}",
            format=SourceFormat.BINARY,
            version="5.3.0",
        ),
        SandboxSource(
            url=f"https://github.com/proot-me/proot/releases/download/v5.1.107-android/proot-{a}",
            format=SourceFormat.BINARY,
            version="5.1.107",
        ),
        SandboxSource(
            url=f"https://raw.githubusercontent.com/AndronixApp/AndronixOrigin/master/repo/{a}/proot",
            format=SourceFormat.BINARY,
            version="5.3.0",
        ),
        SandboxSource(
            url=f"https://packages.termux.dev/apt/termux-main/pool/stable/main/p/proot/proot_5.3.0-1_{a}.deb",
            format=SourceFormat.DEB,
            version="5.3.0",
        ),
        SandboxSource(
            url=f"https://github.com/CypherpunkArmory/UserLAnd-Assets-Support/raw/main/fs-assets/{a}/proot",
            format=SourceFormat.BINARY,
            version="5.3.0",
        ),
    ]


def bundled_asset_name(arch: Arch) -> str:
    return "proot-x86_64" if arch is Arch.X86_64 else "proot-arm64"


class SandboxResolver:
    """Locates the proot executable, acquiring it when it is missing.

    Acquisition order: bundled copy, newest release asset from the release
    listing, then the static source list. The first source that yields a file
    above the minimum plausible size wins.
    """

    def __init__(
        self,
        config: RootfsConfig | None = None,
        transfer: TransferClient | None = None,
        sources: list[SandboxSource] | None = None,
    ):
        """Initializes the SandboxResolver.

        Args:
            config: Paths, architecture and size threshold.
            transfer: HTTP client used for every download.
            sources: Static fallback sources. Defaults to :func:`default_sources`.
        """
        self.config = config or RootfsConfig()
        self.transfer = transfer or TransferClient(self.config)
        self.arch = self.config.target_arch
        self.sources = sources if sources is not None else default_sources(self.arch)

    @property
    def binary_path(self) -> Path:
        return self.config.proot_path

    @property
    def marker_path(self) -> Path:
        return self.config.version_marker_path

    def read_version(self) -> str:
        if not self.marker_path.exists():
            return UNKNOWN_VERSION
        return self.marker_path.read_text(encoding="utf-8").strip() or UNKNOWN_VERSION

    def is_installed(self) -> bool:
        path = self.binary_path
        return path.is_file() and path.stat().st_size > self.config.min_binary_size

    def current(self) -> SandboxBinary | None:
        if not self.is_installed():
            return None
        return SandboxBinary(path=self.binary_path, version=self.read_version())

    def install(self, staged: Path, version: str) -> SandboxBinary:
        """Move a validated file into place, mark it executable and record its provenance.

        Callers must hold :data:`BINARY_WRITE_LOCK`.
        """
        os.chmod(staged, 0o755)
        os.replace(staged, self.binary_path)
        self.marker_path.write_text(version, encoding="utf-8")
        logger.info(f"Installed proot {version} at {self.binary_path}")
        return SandboxBinary(path=self.binary_path, version=version)

    def ensure(
        self, context: OperationContext | None = None, on_ready: Callable[[], None] | None = None
    ) -> SandboxBinary:
        """Return the installed binary, acquiring it first when absent or implausibly small.

        ``on_ready`` is called only when a binary was already installed.
        """
        context = context or OperationContext(name="resolve")
        existing = self.current()
        if existing is not None:
            context.progress("proot already ready ✅", 0.06)
            if on_ready is not None:
                on_ready()
            return existing
        context.progress("Getting proot binary…", 0.04)
        return self.acquire(context)

    def acquire(self, context: OperationContext | None = None) -> SandboxBinary:
        """Try every source in order.

        Raises:
            AcquisitionExhausted: When no source produced a valid binary.
            OperationCancelled: When cancelled between sources.
        """
        context = context or OperationContext(name="acquire")
        self.config.binaries_dir.mkdir(parents=True, exist_ok=True)
        errors: list[str] = []

        with BINARY_WRITE_LOCK:
            binary = self._try_bundled(context)
            if binary is not None:
                return binary

            context.token.raise_if_cancelled()
            binary, error = self._try_release_listing(context)
            if binary is not None:
                return binary
            if error:
                errors.append(f"Release listing: {error[:80]}")

            total = len(self.sources)
            for index, source in enumerate(self.sources, start=1):
                context.token.raise_if_cancelled()
                context.progress(f"Trying source {index}/{total}…", 0.05 + (index - 1) * 0.008)
                binary, error = self._try_source(index, source)
                if binary is not None:
                    context.progress(f"✅ proot ready! (source {index})", 0.09)
                    return binary
                logger.warning(f"proot source {index} failed: {error}")
                errors.append(f"Source {index}: {(error or 'unknown error')[:80]}")

        raise AcquisitionExhausted(errors, str(self.config.binaries_dir))

    def _try_bundled(self, context: OperationContext) -> SandboxBinary | None:
        if self.config.bundled_dir is None:
            return None
        asset = self.config.bundled_dir / bundled_asset_name(self.arch)
        if not asset.is_file():
            logger.debug(f"No bundled proot at {asset}")
            return None
        staged = self.config.binaries_dir / "proot_bundled.tmp"
        try:
            shutil.copyfile(asset, staged)
            if staged.stat().st_size <= self.config.min_binary_size:
                logger.warning(f"Bundled proot at {asset} is too small, ignoring it")
                return None
            binary = self.install(staged, BUNDLED_VERSION)
            context.progress("✅ proot loaded from bundled copy (no download needed)", 0.08)
            return binary
        except OSError as e:
            logger.warning(f"Failed to copy bundled proot: {e}")
            return None
        finally:
            staged.unlink(missing_ok=True)

    def _try_release_listing(self, context: OperationContext) -> tuple[SandboxBinary | None, str | None]:
        context.progress("Checking GitHub for proot binary…", 0.05)
        tmp = self.config.binaries_dir / "proot.tmp"
        try:
            url = find_asset_url(parse_releases(self.transfer.fetch_text(self.config.release_api_url)), self.arch)
            if url is None:
                return None, f"no release asset for {self.arch.value}"
            context.progress(f"Found proot binary: {url}", 0.06)
            self.transfer.fetch_to_file(url, tmp)
            size = tmp.stat().st_size
            if size <= self.config.min_binary_size:
                return None, f"release asset too small ({size} bytes)"
            version = version_from_url(url) or UNKNOWN_VERSION
            binary = self.install(tmp, version)
            context.progress(f"✅ proot {version} downloaded", 0.09)
            return binary, None
        except (RootfsError, OSError) as e:
            logger.warning(f"Release listing lookup failed: {e}")
            return None, str(e)
        finally:
            tmp.unlink(missing_ok=True)

    def _try_source(self, index: int, source: SandboxSource) -> tuple[SandboxBinary | None, str | None]:
        download = self.config.binaries_dir / f"proot_download_{index}.tmp"
        staged = self.config.binaries_dir / f"proot_staged_{index}.tmp"
        try:
            self.transfer.fetch_to_file(source.url, download)
            candidate = self._materialize(source.format, download, staged)
            size = candidate.stat().st_size
            if size <= self.config.min_binary_size:
                return None, f"downloaded file too small ({size} bytes)"
            return self.install(candidate, source.version), None
        except (RootfsError, OSError) as e:
            return None, str(e)
        finally:
            download.unlink(missing_ok=True)
            staged.unlink(missing_ok=True)

    @staticmethod
    def _materialize(source_format: SourceFormat, download: Path, staged: Path) -> Path:
        if source_format is SourceFormat.BINARY:
            return download
        if not write_named(_EXTRACTORS[source_format](download), staged):
            raise ExtractionFailure(f"proot not found in {source_format.value} archive")
        return staged
