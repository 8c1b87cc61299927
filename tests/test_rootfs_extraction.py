import os
from pathlib import Path
from typing import Any, Callable

from coreason_rootfs.context import OperationContext
from coreason_rootfs.extractors import extract_rootfs
from coreason_rootfs.models import SetupProgress

from archive_builders import make_tar_gz


def _write(tmp_path: Path, entries: list[tuple[str, Any]]) -> Path:
    archive = tmp_path / "rootfs.tar.gz"
    archive.write_bytes(make_tar_gz(entries))
    return archive


def test_extracts_files_dirs_and_links(tmp_path: Path) -> None:
    archive = _write(
        tmp_path,
        [
            ("./", ("dir",)),
            ("./bin/", ("dir",)),
            ("./bin/busybox", ("file", b"#!busybox", 0o755)),
            ("./bin/sh", ("sym", "/bin/busybox")),
            ("./bin/ash", ("lnk", "bin/busybox")),
            ("./etc/os-release", b"ID=alpine\n"),
        ],
    )
    dest = tmp_path / "root"

    count = extract_rootfs(archive, dest)

    assert count == 6
    assert (dest / "bin" / "busybox").read_bytes() == b"#!busybox"
    assert os.readlink(dest / "bin" / "sh") == "/bin/busybox"
    assert (dest / "bin" / "ash").read_bytes() == b"#!busybox"
    assert (dest / "etc" / "os-release").read_text() == "ID=alpine\n"


def test_file_modes(tmp_path: Path) -> None:
    archive = _write(
        tmp_path,
        [
            ("usr/bin/tool", ("file", b"x", 0o700)),
            ("etc/shadow", ("file", b"x", 0o000)),
            ("etc/motd", ("file", b"x", 0o644)),
        ],
    )
    dest = tmp_path / "root"
    extract_rootfs(archive, dest)

    assert os.stat(dest / "usr/bin/tool").st_mode & 0o777 == 0o711
    assert os.stat(dest / "etc/shadow").st_mode & 0o777 == 0o600
    assert os.stat(dest / "etc/motd").st_mode & 0o777 == 0o644


def test_rejects_entries_escaping_root(tmp_path: Path) -> None:
    archive = _write(
        tmp_path,
        [
            ("../escape.txt", b"bad"),
            ("/etc/absolute", b"fine"),
            ("a/../../escape2.txt", b"bad"),
            ("..hidden", b"fine"),
        ],
    )
    dest = tmp_path / "root"

    count = extract_rootfs(archive, dest)

    assert count == 2
    assert not (tmp_path / "escape.txt").exists()
    assert not (tmp_path / "escape2.txt").exists()
    assert (dest / "etc" / "absolute").read_bytes() == b"fine"
    assert (dest / "..hidden").read_bytes() == b"fine"


def test_does_not_write_through_symlinked_parent(tmp_path: Path) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    archive = _write(tmp_path, [("link", ("sym", str(outside))), ("link/pwned", b"bad")])
    dest = tmp_path / "root"

    extract_rootfs(archive, dest)

    assert not (outside / "pwned").exists()


def test_replaces_existing_files_and_symlinks(tmp_path: Path) -> None:
    dest = tmp_path / "root"
    (dest / "etc").mkdir(parents=True)
    (dest / "etc" / "hosts").write_text("old")
    os.symlink("/nowhere", dest / "etc" / "resolv.conf")
    archive = _write(tmp_path, [("etc/hosts", b"new"), ("etc/resolv.conf", ("sym", "../run/resolv.conf"))])

    extract_rootfs(archive, dest)

    assert (dest / "etc" / "hosts").read_text() == "new"
    assert os.readlink(dest / "etc" / "resolv.conf") == "../run/resolv.conf"


def test_skips_special_entries_and_dangling_hard_links(tmp_path: Path) -> None:
    archive = _write(tmp_path, [("dev/fifo", ("fifo",)), ("bin/ln", ("lnk", "bin/missing")), ("etc/a", b"a")])
    dest = tmp_path / "root"

    assert extract_rootfs(archive, dest) == 1
    assert not (dest / "dev" / "fifo").exists()
    assert not (dest / "bin" / "ln").exists()


def test_reports_progress_inside_range(tmp_path: Path) -> None:
    archive = _write(tmp_path, [(f"f{i}", b"x") for i in range(10)])
    events: list[SetupProgress] = []
    context = OperationContext(on_progress=events.append)

    extract_rootfs(archive, tmp_path / "root", context, progress_every=3, progress_range=(0.62, 0.74))

    assert [e.message for e in events] == [
        "Extracting… (3 files)",
        "Extracting… (6 files)",
        "Extracting… (9 files)",
    ]
    assert all(0.62 <= e.progress <= 0.74 for e in events)


def test_cancellation_stops_after_checked_entries(tmp_path: Path, countdown_cancel: Callable[[int], Any]) -> None:
    archive = _write(tmp_path, [(f"f{i}", b"x") for i in range(10)])
    dest = tmp_path / "root"

    count = extract_rootfs(archive, dest, countdown_cancel(4))

    assert count == 4
    assert sorted(p.name for p in dest.iterdir()) == ["f0", "f1", "f2", "f3"]


def test_cancelled_before_start_extracts_nothing(tmp_path: Path) -> None:
    archive = _write(tmp_path, [("etc/a", b"a")])
    context = OperationContext()
    context.cancel()

    assert extract_rootfs(archive, tmp_path / "root", context) == 0
