# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

from dataclasses import dataclass

from coreason_rootfs.models import Arch, Distro

PIP_UPGRADE_COMMAND = "pip3 install --upgrade pip setuptools wheel --quiet 2>&1 || true"


@dataclass(frozen=True)
class DistroProfile:
    """Base image location and provisioning commands for one distribution."""

    distro: Distro
    image_template: str
    arch_names: dict[Arch, str]
    update_label: str
    update_command: str
    install_command: str

    def image_url(self, arch: Arch) -> str:
        return self.image_template.format(arch=self.arch_names[arch])


ALPINE = DistroProfile(
    distro=Distro.ALPINE,
    image_template=(
        "https://dl-cdn.alpinelinux.org/alpine/v3.19/releases/{arch}/alpine-minirootfs-3.19.1-{arch}.tar.gz"
    ),
    arch_names={Arch.X86_64: "x86_64", Arch.AARCH64: "aarch64"},
    update_label="Updating apk…",
    update_command="apk update -q 2>&1",
    install_command="apk add --no-cache -q python3 py3-pip gcc musl-dev linux-headers python3-dev 2>&1",
)

UBUNTU = DistroProfile(
    distro=Distro.UBUNTU,
    image_template=(
        "https://cdimage.ubuntu.com/ubuntu-base/releases/22.04/release/ubuntu-base-22.04-base-{arch}.tar.gz"
    ),
    arch_names={Arch.X86_64: "amd64", Arch.AARCH64: "arm64"},
    update_label="Updating apt… (may take a few minutes)",
    update_command="apt-get update -qq 2>&1",
    install_command=(
        "DEBIAN_FRONTEND=noninteractive apt-get install -y -qq python3 python3-pip python3-dev build-essential 2>&1"
    ),
)

PROFILES: dict[Distro, DistroProfile] = {profile.distro: profile for profile in (ALPINE, UBUNTU)}


def get_profile(distro: Distro | str) -> DistroProfile:
    """Look up a distribution profile.

    Raises:
        ValueError: If the distribution is not supported.
    """
    try:
        return PROFILES[Distro(distro)]
    except ValueError as e:
        raise ValueError(f"Unsupported distro: {distro}") from e
