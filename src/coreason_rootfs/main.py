# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

from typing import Any, Literal

from mcp.server.fastmcp import FastMCP

from coreason_rootfs.models import SetupProgress
from coreason_rootfs.service import RootfsServiceAsync
from coreason_rootfs.utils.logger import logger


def _log_progress(event: SetupProgress) -> None:
    logger.info(f"[setup {event.progress:.0%}] {event.message}")


def _log_update(version: str) -> None:
    logger.info(f"proot updated in background to {version}")


# Initialize Service Logic
service = RootfsServiceAsync(on_proot_updated=_log_update)

# Initialize MCP Server
mcp = FastMCP("coreason-rootfs")


@mcp.tool()  # type: ignore[misc]
async def setup_environment(
    distro: Literal["alpine", "ubuntu"] = "alpine", env_id: str = "alpine-3.19"
) -> dict[str, Any]:
    """
    Download and provision a Linux root filesystem with Python installed.
    """
    outcome = await service.setup_environment(distro, env_id, on_progress=_log_progress)
    return outcome.model_dump(exclude_none=True)


@mcp.tool()  # type: ignore[misc]
async def cancel_setup() -> bool:
    """
    Cancel a running setup and kill any in-flight sandboxed process.
    """
    return await service.cancel_setup()


@mcp.tool()  # type: ignore[misc]
async def execute_command(
    environment_id: str, command: str, working_dir: str = "/", timeout_ms: int = 300_000
) -> dict[str, Any]:
    """
    Run a shell command inside a provisioned environment.
    Returns stdout, stderr and exitCode.
    """
    result = await service.execute_command(environment_id, command, working_dir, timeout_ms)
    return {"stdout": result.stdout, "stderr": result.stderr, "exitCode": result.exit_code}


@mcp.tool()  # type: ignore[misc]
async def is_environment_installed(env_id: str) -> bool:
    """
    Check whether an environment has been provisioned.
    """
    try:
        return await service.is_environment_installed(env_id)
    except ValueError:
        return False


@mcp.tool()  # type: ignore[misc]
async def check_proot_update() -> dict[str, Any]:
    """
    Check for and install a newer proot build.
    """
    status = await service.check_proot_update()
    return status.model_dump(exclude_none=True)


@mcp.tool()  # type: ignore[misc]
async def get_environment_path() -> str:
    """
    Absolute path of the directory holding environment roots.
    """
    return await service.get_environment_path()


@mcp.tool()  # type: ignore[misc]
async def get_storage_info() -> dict[str, Any]:
    """
    Storage locations, free/total space in MB and the installed proot version.
    """
    info = await service.get_storage_info()
    return info.model_dump()


@mcp.tool()  # type: ignore[misc]
async def get_device_arch() -> str:
    """
    Host CPU ABI, e.g. arm64-v8a or x86_64.
    """
    return await service.get_device_arch()


def main() -> None:
    """Entry point for the MCP server."""
    mcp.run()


if __name__ == "__main__":  # pragma: no cover
    main()
