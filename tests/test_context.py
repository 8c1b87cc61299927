import subprocess
import threading
import time
from unittest.mock import MagicMock

import pytest

from coreason_rootfs.context import CancellationToken, OperationContext, ProcessRegistry
from coreason_rootfs.events import EventDispatcher
from coreason_rootfs.exceptions import OperationCancelled
from coreason_rootfs.models import SetupProgress


def test_cancellation_token() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel()
    assert token.is_cancelled
    with pytest.raises(OperationCancelled, match="stop"):
        token.raise_if_cancelled("stop")
    assert not CancellationToken().is_cancelled


def test_progress_is_clamped() -> None:
    events: list[SetupProgress] = []
    context = OperationContext(on_progress=events.append)

    context.progress("low", -0.5)
    context.progress("high", 1.7)

    assert [e.progress for e in events] == [0.0, 1.0]


def test_contexts_are_independent() -> None:
    first, second = OperationContext(), OperationContext()
    first.cancel()
    assert first.cancelled
    assert not second.cancelled


def test_registry_kills_process_group() -> None:
    registry = ProcessRegistry()
    process = subprocess.Popen(["sleep", "30"], start_new_session=True, text=True)
    registry.register(process)

    assert registry.kill_all() is True
    assert process.wait(timeout=10) != 0

    registry.unregister(process)
    assert registry.current is None
    assert registry.kill_all() is False


def test_unregister_ignores_other_process() -> None:
    registry = ProcessRegistry()
    first, other = MagicMock(), MagicMock()
    registry.register(first)
    registry.unregister(other)
    assert registry.current is first


def test_dispatcher_delivers_in_order_on_its_own_thread() -> None:
    dispatcher = EventDispatcher("test-events")
    received: list[tuple[int, str]] = []

    def listener(event: int) -> None:
        received.append((event, threading.current_thread().name))

    post = dispatcher.bind(listener)
    assert post is not None
    for i in range(5):
        post(i)
    dispatcher.close()

    assert [event for event, _ in received] == [0, 1, 2, 3, 4]
    assert {name for _, name in received} == {"test-events"}


def test_dispatcher_survives_listener_errors() -> None:
    dispatcher = EventDispatcher()
    received: list[str] = []

    def flaky(event: str) -> None:
        if event == "bad":
            raise RuntimeError("listener broke")
        received.append(event)

    dispatcher.post(flaky, "bad")
    dispatcher.post(flaky, "good")
    dispatcher.close()

    assert received == ["good"]


def test_slow_listener_does_not_block_poster() -> None:
    dispatcher = EventDispatcher()
    release = threading.Event()
    dispatcher.post(lambda _: release.wait(5), "slow")

    started = time.monotonic()
    dispatcher.post(lambda _: None, "next")
    assert time.monotonic() - started < 1

    release.set()
    dispatcher.close()


def test_dispatcher_ignores_posts_after_close() -> None:
    dispatcher = EventDispatcher()
    dispatcher.close()
    listener = MagicMock()
    dispatcher.post(listener, "late")
    assert dispatcher.bind(None) is None
    listener.assert_not_called()
