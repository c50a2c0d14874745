"""Cancellable waiting on process termination signals."""

import signal
import threading
from typing import Iterable, Optional


def install_termination_handler(
    stop_event: threading.Event,
    signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM),
) -> None:
    """Set ``stop_event`` when any of ``signals`` is delivered. Must run on the main thread."""

    def _handler(signum, frame):
        stop_event.set()

    for signum in signals:
        signal.signal(signum, _handler)


def wait_for_termination(stop_event: threading.Event, timeout: Optional[float] = None) -> bool:
    """Block until ``stop_event`` is set or ``timeout`` elapses; True if it was set."""
    return stop_event.wait(timeout)
