# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

from pathlib import Path
from types import TracebackType

import httpx

from coreason_rootfs.config import RootfsConfig
from coreason_rootfs.context import OperationContext
from coreason_rootfs.exceptions import OperationCancelled, TransferError
from coreason_rootfs.models import TransferProgress
from coreason_rootfs.utils.logger import logger

CHUNK_SIZE = 64 * 1024
MB = 1024 * 1024


class TransferClient:
    """HTTP(S) downloads with redirects, timeouts, progress and cancellation.

    Metadata requests (the release listing) use short timeouts; binary and
    rootfs downloads use long read timeouts. Every non-2xx response is a
    :class:`TransferError` carrying the status code.
    """

    def __init__(
        self,
        config: RootfsConfig | None = None,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initializes the TransferClient.

        Args:
            config: Timeouts and client identifier. Defaults are used if omitted.
            client: Optional pre-built httpx.Client for connection pooling.
            transport: Optional transport for the internally built client.
        """
        self.config = config or RootfsConfig()
        self._internal_client = client is None
        self._client = client or httpx.Client(
            follow_redirects=True,
            transport=transport,
            headers={"User-Agent": self.config.user_agent},
        )

    def __enter__(self) -> "TransferClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._internal_client:
            self._client.close()

    @property
    def metadata_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.config.metadata_read_timeout, connect=self.config.metadata_connect_timeout)

    @property
    def binary_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.config.binary_read_timeout, connect=self.config.binary_connect_timeout)

    @property
    def rootfs_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.config.rootfs_read_timeout, connect=self.config.binary_connect_timeout)

    @staticmethod
    def _check_status(url: str, response: httpx.Response) -> None:
        if not response.is_success:
            raise TransferError(url, response.status_code)

    def fetch_text(self, url: str) -> str:
        """GET a small JSON/text payload.

        Raises:
            TransferError: On a non-2xx status or a network fault.
        """
        logger.debug(f"GET {url}")
        try:
            response = self._client.get(url, headers={"Accept": "application/json"}, timeout=self.metadata_timeout)
        except httpx.HTTPError as e:
            raise TransferError(url, detail=str(e)) from e
        self._check_status(url, response)
        return response.text

    def fetch_to_file(self, url: str, dest: Path) -> int:
        """Download ``url`` into ``dest``. Returns the number of bytes written."""
        return self._download(url, dest, self.binary_timeout)

    def fetch_to_file_with_progress(
        self,
        url: str,
        dest: Path,
        progress_range: tuple[float, float],
        context: OperationContext,
    ) -> int:
        """Download ``url`` into ``dest`` reporting progress inside ``progress_range``.

        One progress event is emitted per chunk read. The context's
        cancellation token is checked every chunk.

        Raises:
            TransferError: On a non-2xx status or a network fault.
            OperationCancelled: When cancelled mid-transfer. The partial file is
                left for the caller to discard.
        """
        return self._download(url, dest, self.rootfs_timeout, context, progress_range)

    def _download(
        self,
        url: str,
        dest: Path,
        timeout: httpx.Timeout,
        context: OperationContext | None = None,
        progress_range: tuple[float, float] | None = None,
    ) -> int:
        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading {url} -> {dest}")
        try:
            with self._client.stream("GET", url, timeout=timeout) as response:
                self._check_status(url, response)
                length = int(response.headers.get("content-length") or 0)
                state = TransferProgress(bytes_total=length if length > 0 else 1, phase_label=url)
                with open(dest, "wb") as out:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        if context is not None and context.cancelled:
                            logger.info(f"Download cancelled after {state.bytes_done} bytes: {url}")
                            raise OperationCancelled(f"Download cancelled: {url}")
                        out.write(chunk)
                        state.bytes_done += len(chunk)
                        if context is not None and progress_range is not None:
                            self._report(context, state, progress_range, known_total=length > 0)
        except httpx.HTTPError as e:
            raise TransferError(url, detail=str(e)) from e
        return state.bytes_done

    @staticmethod
    def _report(
        context: OperationContext,
        state: TransferProgress,
        progress_range: tuple[float, float],
        known_total: bool,
    ) -> None:
        low, high = progress_range
        fraction = min(state.bytes_done / state.bytes_total, 1.0)
        if known_total:
            percent = int(fraction * 100)
            message = f"Downloading… {percent}% ({state.bytes_done // MB}MB / {state.bytes_total // MB}MB)"
        else:
            message = f"Downloading… {state.bytes_done // MB}MB"
        context.progress(message, low + (high - low) * fraction)
