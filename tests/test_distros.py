import pytest

from coreason_rootfs.distros import ALPINE, UBUNTU, get_profile
from coreason_rootfs.models import Arch, Distro


def test_image_urls() -> None:
    assert ALPINE.image_url(Arch.X86_64) == (
        "https://dl-cdn.alpinelinux.org/alpine/v3.19/releases/x86_64/alpine-minirootfs-3.19.1-x86_64.tar.gz"
    )
    assert ALPINE.image_url(Arch.AARCH64).endswith("alpine-minirootfs-3.19.1-aarch64.tar.gz")
    assert UBUNTU.image_url(Arch.AARCH64) == (
        "https://cdimage.ubuntu.com/ubuntu-base/releases/22.04/release/ubuntu-base-22.04-base-arm64.tar.gz"
    )


def test_get_profile() -> None:
    assert get_profile("alpine") is ALPINE
    assert get_profile(Distro.UBUNTU) is UBUNTU
    with pytest.raises(ValueError, match="Unsupported distro: fedora"):
        get_profile("fedora")


def test_commands_redirect_stderr() -> None:
    for profile in (ALPINE, UBUNTU):
        assert profile.update_command.endswith("2>&1")
        assert profile.install_command.endswith("2>&1")
    assert "DEBIAN_FRONTEND=noninteractive" in UBUNTU.install_command
