# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

"""Error taxonomy for provisioning and sandboxed execution."""


class RootfsError(Exception):
    """Base class for all coreason-rootfs errors."""


class NotFoundError(RootfsError):
    """A required file or resource does not exist."""


class OperationCancelled(RootfsError):
    """A cooperative cancellation was observed. Not a failure."""


class SetupCancelled(OperationCancelled):
    """Provisioning was cancelled at a step boundary."""


class TransferError(RootfsError):
    """An HTTP transfer failed with a non-2xx status or a network fault."""

    def __init__(self, url: str, status_code: int | None = None, detail: str | None = None):
        self.url = url
        self.status_code = status_code
        self.detail = detail
        if status_code is not None:
            message = f"HTTP {status_code} for {url}"
        else:
            message = f"Transfer failed for {url}: {detail or 'unknown error'}"
        super().__init__(message)


class ExtractionFailure(RootfsError):
    """An archive did not match its expected format or did not contain the entry."""


class AcquisitionExhausted(RootfsError):
    """Every sandbox executable source failed.

    Attributes:
        errors: One entry per failed source, in the order they were tried.
    """

    def __init__(self, errors: list[str], bin_dir: str | None = None):
        self.errors = list(errors)
        target = bin_dir or "the configured bin directory"
        message = (
            "Could not get proot from any source.\n"
            "Errors:\n" + "\n".join(self.errors) + "\n\n"
            f"Fix: install a static proot binary manually as {target}/proot "
            "(or set COREASON_ROOTFS_BUNDLED_DIR to a directory holding proot-x86_64 / proot-arm64)."
        )
        super().__init__(message)


class SetupError(RootfsError):
    """Any other failure during provisioning. Wraps the underlying cause."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(message)
