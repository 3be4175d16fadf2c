"""
Per-attempt timeout guard.

Runs a callable on a helper thread and stops waiting after the deadline.
Cancellation is cooperative: the callable receives a threading.Event it
should poll (external tools are additionally terminated when it is set).
After a timeout the guard gives the helper SETTLE_SECONDS to wind down;
a helper still running after that travels with the HopTimeoutError so the
caller can wait for it or clean up after it.
"""

import threading
from typing import Callable, Generic, Optional, TypeVar

from .errors import HopTimeoutError

T = TypeVar("T")

# Seconds a cancelled helper gets to exit before the guard stops waiting.
# Covers terminating an external tool (converters.tools.TERMINATE_GRACE).
SETTLE_SECONDS = 10.0


class GuardedCall(Generic[T]):
    """One fn(cancel) call running on its own helper thread."""

    def __init__(self, fn: Callable[[threading.Event], T], name: str):
        self.cancel = threading.Event()
        self.value: Optional[T] = None
        self.error: Optional[BaseException] = None
        self._fn = fn
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def _run(self) -> None:
        try:
            self.value = self._fn(self.cancel)
        except BaseException as e:
            self.error = e

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the helper; True once it has exited."""
        self._thread.join(timeout)
        return self.finished

    @property
    def finished(self) -> bool:
        return not self._thread.is_alive()


def call_with_timeout(
    fn: Callable[[threading.Event], T],
    timeout: Optional[float],
    converter: str = "",
    path: str = "",
    settle: float = SETTLE_SECONDS,
) -> T:
    """
    Run fn(cancel_event) with a wall-clock limit.

    Raises:
        HopTimeoutError: If fn has not returned within timeout seconds.
            Its `call` attribute is the GuardedCall, finished or not.
        Exception: Whatever fn raised
    """
    if timeout is None:
        return fn(threading.Event())

    call = GuardedCall(fn, name=f"hop-{converter or 'guard'}")
    call.start()

    if not call.join(timeout):
        call.cancel.set()
        call.join(settle)
        raise HopTimeoutError(converter or "converter", path, timeout, call=call)

    if call.error is not None:
        raise call.error
    return call.value
