from __future__ import annotations

import threading
import time
from typing import Optional

from .errors import Cancelled


class CancelToken:
    """Run-scoped cancellation flag with an optional deadline.

    Blocking calls check the token right before they start and between
    streamed chunks, so a cancelled run stops at the next I/O boundary.
    """

    def __init__(self, timeout_sec: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout_sec if timeout_sec else None
        self.reason = ""

    def cancel(self, reason: str = "cancelled"):
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline_exceeded")
            return True
        return False

    def raise_if_cancelled(self):
        if self.cancelled:
            raise Cancelled(f"run_cancelled: {self.reason}")


def check(cancel: Optional[CancelToken]):
    if cancel is not None:
        cancel.raise_if_cancelled()
