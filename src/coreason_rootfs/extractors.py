# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

"""Archive readers for sandbox executable acquisition and rootfs unpacking.

Single-file extraction (``extract_named_from_*``) never raises: a malformed or
non-matching archive yields ``None`` so the caller can move on to its next
source. Full rootfs extraction walks every entry and honours cancellation.
"""

import io
import lzma
import os
import shutil
import tarfile
import zipfile
import zlib
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator

from coreason_rootfs.context import OperationContext
from coreason_rootfs.utils.logger import logger

ArchiveSource = Path | bytes | BinaryIO

PROOT_CANDIDATES: tuple[str, ...] = ("proot", "usr/bin/proot", "bin/proot")

GZIP_MAGIC = b"\x1f\x8b"
AR_MAGIC = b"!<arch>\n"
AR_HEADER_SIZE = 60

EXTRACT_PROGRESS_SPAN_ENTRIES = 80_000

_ARCHIVE_ERRORS = (
    tarfile.TarError,
    zipfile.BadZipFile,
    zlib.error,
    lzma.LZMAError,
    EOFError,
    OSError,
    ValueError,
)


def normalize_entry_name(name: str) -> str:
    """Strip leading ``.`` and ``/`` characters from an archive entry name."""
    return name.lstrip("./")


def matches_candidate(name: str, candidates: Iterable[str]) -> bool:
    """True when ``name`` equals a candidate or ends with ``/<candidate>``."""
    normalized = normalize_entry_name(name)
    for candidate in candidates:
        candidate = normalize_entry_name(candidate)
        if normalized == candidate or normalized.endswith("/" + candidate):
            return True
    return False


def _as_fileobj(source: ArchiveSource) -> tuple[BinaryIO, bool]:
    if isinstance(source, Path):
        return open(source, "rb"), True
    if isinstance(source, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(source)), True
    return source, False


def extract_named_from_tar(source: ArchiveSource, candidates: Iterable[str] = PROOT_CANDIDATES) -> bytes | None:
    """Return the content of the first regular file matching ``candidates``.

    The archive is read as a stream (gzip, xz and bzip2 are detected), and
    reading stops at the first match.
    """
    wanted = tuple(candidates)
    fileobj, owned = _as_fileobj(source)
    try:
        with tarfile.open(fileobj=fileobj, mode="r|*") as tar:
            for member in tar:
                if not member.isfile() or not matches_candidate(member.name, wanted):
                    continue
                extracted = tar.extractfile(member)
                if extracted is None:
                    return None
                logger.debug(f"Matched tar entry {member.name}")
                return extracted.read()
    except _ARCHIVE_ERRORS as e:
        logger.debug(f"Tar extraction failed: {e}")
    finally:
        if owned:
            fileobj.close()
    return None


def extract_named_from_zip(source: ArchiveSource, candidates: Iterable[str] = PROOT_CANDIDATES) -> bytes | None:
    """Return the content of the first non-directory zip entry matching ``candidates``."""
    wanted = tuple(candidates)
    fileobj, owned = _as_fileobj(source)
    try:
        with zipfile.ZipFile(fileobj) as archive:
            for info in archive.infolist():
                if info.is_dir() or not matches_candidate(info.filename, wanted):
                    continue
                logger.debug(f"Matched zip entry {info.filename}")
                return archive.read(info)
    except _ARCHIVE_ERRORS as e:
        logger.debug(f"Zip extraction failed: {e}")
    finally:
        if owned:
            fileobj.close()
    return None


def write_named(payload: bytes | None, dest: Path) -> bool:
    """Write an extracted payload to ``dest``. Returns False when there was no match."""
    if payload is None:
        return False
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(payload)
    return True


def iter_ar_members(data: bytes) -> Iterator[tuple[str, bytes]]:
    """Yield ``(name, payload)`` for each member of a common-format ``ar`` archive."""
    if not data.startswith(AR_MAGIC):
        return
    offset = len(AR_MAGIC)
    while offset + AR_HEADER_SIZE <= len(data):
        header = data[offset : offset + AR_HEADER_SIZE]
        if header[58:60] != b"`\n":
            return
        name = header[0:16].decode("ascii", "replace").strip().rstrip("/")
        size = int(header[48:58].decode("ascii", "replace").strip() or "0")
        start = offset + AR_HEADER_SIZE
        yield name, data[start : start + size]
        # members are 2-byte aligned
        offset = start + size + (size % 2)


def extract_from_deb(data: bytes, candidates: Iterable[str] = PROOT_CANDIDATES) -> bytes | None:
    """Pull a file out of a Debian package.

    The ``ar`` members are parsed first and every ``data.tar.*`` member is
    searched. When that finds nothing (truncated header, unsupported layout),
    the raw bytes are scanned for the gzip magic and each hit is tried as the
    start of an embedded tar.gz. The first hit is usually ``control.tar.gz``
    rather than the data member, so scanning continues past misses; a package
    whose data member uses a compression without a gzip header can only be
    served by the ``ar`` path.
    """
    wanted = tuple(candidates)
    try:
        for name, payload in iter_ar_members(data):
            if not name.startswith("data.tar"):
                continue
            found = extract_named_from_tar(payload, wanted)
            if found is not None:
                return found
    except ValueError as e:
        logger.debug(f"Malformed ar header: {e}")

    offset = data.find(GZIP_MAGIC)
    while offset != -1:
        found = extract_named_from_tar(data[offset:], wanted)
        if found is not None:
            logger.debug(f"Found embedded tar.gz at offset {offset}")
            return found
        offset = data.find(GZIP_MAGIC, offset + 1)
    return None


def _safe_target(root: Path, name: str) -> Path | None:
    """Resolve an entry name under ``root``; None if it would escape it."""
    relative = os.path.normpath(name.lstrip("/"))
    if relative == ".":
        return root
    if relative == ".." or relative.startswith("../"):
        return None
    target = root / relative
    # Refuse to write through a symlinked parent that leads out of the root.
    parent = target.parent.resolve()
    if parent != root and root not in parent.parents:
        return None
    return target


def _clear(target: Path) -> None:
    if target.is_symlink() or target.is_file():
        target.unlink()


def extract_rootfs(
    archive: Path,
    dest: Path,
    context: OperationContext | None = None,
    progress_every: int = 300,
    progress_range: tuple[float, float] = (0.62, 0.74),
) -> int:
    """Unpack a whole rootfs tarball into ``dest``.

    Recreates directories, regular files, symbolic links and hard links.
    Regular files keep their permission bits (owner read/write is always
    granted) and become executable for everyone when any execute bit is set.
    The cancellation token is checked before each entry; cancelling stops the
    walk without raising.

    Args:
        archive: Path to the compressed tarball.
        dest: Root directory to populate.
        context: Carries the cancellation token and the progress sink.
        progress_every: Emit a progress event every this many entries.
        progress_range: Sub-range of overall progress for extraction.

    Returns:
        int: Number of filesystem objects created.
    """
    dest.mkdir(parents=True, exist_ok=True)
    root = dest.resolve()
    low, high = progress_range
    count = 0

    with tarfile.open(archive, mode="r|*") as tar:
        for member in tar:
            if context is not None and context.cancelled:
                logger.info(f"Extraction cancelled after {count} entries")
                break

            target = _safe_target(root, member.name)
            if target is None:
                logger.warning(f"Skipping entry outside rootfs: {member.name}")
                continue

            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
            elif member.issym():
                target.parent.mkdir(parents=True, exist_ok=True)
                _clear(target)
                os.symlink(member.linkname, target)
            elif member.islnk():
                source = _safe_target(root, member.linkname)
                if source is None or not source.exists():
                    logger.warning(f"Skipping hard link with missing target: {member.name} -> {member.linkname}")
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                _clear(target)
                try:
                    os.link(source, target)
                except OSError:
                    shutil.copy2(source, target)
            elif member.isfile():
                target.parent.mkdir(parents=True, exist_ok=True)
                _clear(target)
                extracted = tar.extractfile(member)
                with open(target, "wb") as out:
                    if extracted is not None:
                        shutil.copyfileobj(extracted, out)
                mode = (member.mode & 0o777) | 0o600
                if member.mode & 0o111:
                    mode |= 0o111
                os.chmod(target, mode)
            else:
                # device nodes and fifos come from the host through bind mounts
                logger.debug(f"Skipping special entry {member.name}")
                continue

            count += 1
            if context is not None and progress_every > 0 and count % progress_every == 0:
                fraction = min(count / EXTRACT_PROGRESS_SPAN_ENTRIES, high - low)
                context.progress(f"Extracting… ({count} files)", low + fraction)

    return count
