# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

"""Structured view of the GitHub release listing used to discover proot builds."""

import re

from pydantic import BaseModel, TypeAdapter, ValidationError

from coreason_rootfs.models import Arch
from coreason_rootfs.utils.logger import logger

VERSION_PATTERN = re.compile(r"download/v([\d.]+)/")


class ReleaseAsset(BaseModel):
    name: str = ""
    browser_download_url: str


class Release(BaseModel):
    tag_name: str = ""
    draft: bool = False
    assets: list[ReleaseAsset] = []


_RELEASES = TypeAdapter(list[Release])


def parse_releases(payload: str) -> list[Release]:
    """Decode the listing; an unexpected payload yields an empty list."""
    try:
        return _RELEASES.validate_json(payload)
    except ValidationError as e:
        logger.warning(f"Unexpected release listing payload: {e.error_count()} validation errors")
        return []


def find_asset_url(releases: list[Release], arch: Arch) -> str | None:
    """First downloadable proot asset for ``arch``, in listing order."""
    for release in releases:
        if release.draft:
            continue
        for asset in release.assets:
            url = asset.browser_download_url
            if url.startswith("https://") and "proot" in url and arch.value in url:
                return url
    return None


def version_from_url(url: str) -> str | None:
    """Extract ``5.3.0`` from ``.../download/v5.3.0/proot-x86_64``."""
    match = VERSION_PATTERN.search(url)
    return match.group(1) if match else None
