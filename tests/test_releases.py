import json

from coreason_rootfs.models import Arch
from coreason_rootfs.releases import find_asset_url, parse_releases, version_from_url

LISTING = json.dumps(
    [
        {
            "tag_name": "v5.4.0",
            "draft": True,
            "assets": [{"browser_download_url": "https://github.com/x/download/v5.4.0/proot-x86_64"}],
        },
        {
            "tag_name": "v5.3.0",
            "assets": [
                {"name": "proot-aarch64", "browser_download_url": "https://github.com/x/download/v5.3.0/proot-aarch64"},
                {"name": "proot-x86_64", "browser_download_url": "https://github.com/x/download/v5.3.0/proot-x86_64"},
                {"name": "insecure", "browser_download_url": "http://github.com/x/download/v5.3.0/proot-x86_64"},
            ],
        },
    ]
)


def test_parse_releases() -> None:
    releases = parse_releases(LISTING)
    assert [r.tag_name for r in releases] == ["v5.4.0", "v5.3.0"]
    assert releases[0].draft is True
    assert len(releases[1].assets) == 3


def test_parse_releases_unexpected_payload() -> None:
    assert parse_releases('{"message": "API rate limit exceeded"}') == []
    assert parse_releases("<html>") == []
    assert parse_releases("[]") == []


def test_find_asset_url_skips_drafts_and_matches_arch() -> None:
    releases = parse_releases(LISTING)
    assert find_asset_url(releases, Arch.X86_64) == "https://github.com/x/download/v5.3.0/proot-x86_64"
    assert find_asset_url(releases, Arch.AARCH64) == "https://github.com/x/download/v5.3.0/proot-aarch64"


def test_find_asset_url_requires_https_and_name() -> None:
    releases = parse_releases(
        json.dumps([{"assets": [{"browser_download_url": "http://host/download/v1/proot-x86_64"}]}])
    )
    assert find_asset_url(releases, Arch.X86_64) is None
    releases = parse_releases(json.dumps([{"assets": [{"browser_download_url": "https://host/busybox-x86_64"}]}]))
    assert find_asset_url(releases, Arch.X86_64) is None


def test_version_from_url() -> None:
    assert version_from_url("https://github.com/x/releases/download/v5.3.0/proot-x86_64") == "5.3.0"
    assert version_from_url("https://github.com/x/releases/download/v5.1.107-android/proot") is None
    assert version_from_url("https://example.com/proot") is None
