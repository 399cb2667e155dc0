from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from .errors import StoreUnavailableError


# PUBLIC_INTERFACE
@dataclass
class CallContext:
    """
    Cancellable execution context passed as the first argument to every store call.

    - deadline: absolute time.monotonic() value after which the call must abort
    - cancel(): may be called from any thread (e.g. when the request task is cancelled)

    Stores call check() before doing work; the SQLite store also polls
    should_abort() while a statement runs.
    """

    deadline: Optional[float] = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "CallContext":
        if seconds is None or seconds <= 0:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def should_abort(self) -> bool:
        return self.cancelled or self.expired

    def check(self) -> None:
        """Raise StoreUnavailableError if the call was cancelled or ran past its deadline."""
        if self.cancelled:
            raise StoreUnavailableError("store call cancelled")
        if self.expired:
            raise StoreUnavailableError("store call timed out")
