import os
import stat
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest

from coreason_rootfs.config import RootfsConfig
from coreason_rootfs.models import Arch, SetupProgress

FAKE_PROOT = """#!/bin/sh
while [ "$#" -gt 0 ]; do
  if [ "$1" = "-c" ]; then
    shift
    exec /bin/sh -c "$1"
  fi
  shift
done
exit 127
"""


@pytest.fixture
def config(tmp_path: Path) -> RootfsConfig:
    return RootfsConfig(data_dir=tmp_path / "data", arch=Arch.X86_64, enable_update_check=False)

@pytest.fixture
def fake_proot(config: RootfsConfig) -> Path:
    """Install a shell script that runs the command after ``-c`` directly on the host."""
    config.binaries_dir.mkdir(parents=True, exist_ok=True)
    path = config.proot_path
    # padded past min_binary_size so the resolver treats it as installed
    path.write_text(FAKE_PROOT + "#" * 12_000 + "\n", encoding="utf-8")
    os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path

@pytest.fixture
def environment(config: RootfsConfig) -> Path:
    root = config.environment_path("test-env")
    (root / "etc").mkdir(parents=True)
    (root / "etc" / "os-release").write_text("ID=alpine\n")
    return root

@pytest.fixture
def progress_events() -> list[SetupProgress]:
    return []

@pytest.fixture
def routes() -> dict[str, Any]:
    """URL -> bytes, status code, or callable(request) -> httpx.Response."""
    return {}

@pytest.fixture
def transport(routes: dict[str, Any]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(str(request.url))
        if route is None:
            return httpx.Response(404)
        if callable(route):
            response: httpx.Response = route(request)
            return response
        if isinstance(route, int):
            return httpx.Response(route)
        if isinstance(route, str):
            return httpx.Response(200, text=route)
        return httpx.Response(200, content=route)

    return httpx.MockTransport(handler)

@pytest.fixture
def http_client(transport: httpx.MockTransport) -> Generator[httpx.Client, None, None]:
    client = httpx.Client(transport=transport, follow_redirects=True)
    yield client
    client.close()

@pytest.fixture
def countdown_cancel() -> Callable[[int], Any]:
    """Build a context whose ``cancelled`` flips to True after ``n`` reads."""
    from coreason_rootfs.context import OperationContext

    class CountdownContext(OperationContext):
        remaining: int = 0

        @property
        def cancelled(self) -> bool:
            if self.remaining <= 0:
                return True
            self.remaining -= 1
            return False

    def build(n: int) -> Any:
        context = CountdownContext(name="countdown")
        context.remaining = n
        return context

    return build
