# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovfdeploy/core/cancel.py
"""
Cooperative cancellation for long-running deploy steps.

A Cancellation is owned by one deployment flow. Another thread (or a signal
handler) calls cancel(); the flow notices at its next suspension point
(lease poll wait or chunk boundary) and raises DeployCancelled, which the
lease guard turns into an abort.
"""

from __future__ import annotations

import signal
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from .exceptions import DeployCancelled


class Cancellation:
    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "deployment cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise DeployCancelled(self.reason or "deployment cancelled")

    def wait(self, seconds: float) -> None:
        """Sleep up to `seconds`; wakes early and raises if cancelled meanwhile."""
        if self._event.wait(timeout=max(0.0, float(seconds))):
            raise DeployCancelled(self.reason or "deployment cancelled")


def check(cancel: Optional[Cancellation]) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()


@contextmanager
def cancel_on_signals(cancel: Cancellation, signums: Sequence[int] = (signal.SIGTERM,)) -> Iterator[Cancellation]:
    """
    Route `signums` to cancel.cancel() for the duration of the block and
    restore the previous handlers afterwards. SIGINT is left alone: Ctrl+C
    arrives as KeyboardInterrupt. Outside the main thread this is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield cancel
        return

    def _handler(signum: int, frame: Any) -> None:
        cancel.cancel(f"received {signal.Signals(signum).name}")

    previous = {s: signal.signal(s, _handler) for s in signums}
    try:
        yield cancel
    finally:
        for s, h in previous.items():
            signal.signal(s, h)
