# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_rootfs

import queue
import threading
from typing import Any, Callable

from coreason_rootfs.utils.logger import logger

_STOP = object()


class EventDispatcher:
    """Delivers events to listeners from a single dedicated thread.

    Worker threads call :meth:`post` and return immediately; a slow or failing
    listener never blocks provisioning or output draining.
    """

    def __init__(self, name: str = "rootfs-events"):
        self._queue: queue.SimpleQueue[Any] = queue.SimpleQueue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._closed = False
        self._thread.start()

    def post(self, listener: Callable[[Any], None] | None, event: Any) -> None:
        if listener is None or self._closed:
            return
        self._queue.put((listener, event))

    def bind(self, listener: Callable[[Any], None] | None) -> Callable[[Any], None] | None:
        """Wrap ``listener`` so that calling it posts through this dispatcher."""
        if listener is None:
            return None

        def _post(event: Any) -> None:
            self.post(listener, event)

        return _post

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            listener, event = item
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener failed: {e}")

    def close(self, timeout: float | None = 5.0) -> None:
        """Deliver everything already posted, then stop the thread."""
        if self._closed:
            return
        self._closed = True
        self._queue.put(_STOP)
        self._thread.join(timeout)
