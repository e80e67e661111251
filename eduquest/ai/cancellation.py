from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .errors import OperationCancelled, OperationTimeout

_log = logging.getLogger(__name__)

T = TypeVar("T")

# Upper bound on how long the waiting thread sleeps between checks when the
# cancel source cannot notify listeners.
_WAIT_SLICE_SEC = 0.05


class CancelSignal:
    """Thread-safe cancellation signal shared by one capability call.

    Listeners run once, on the cancelling thread, when the signal fires.
    Transports register a listener to abort in-flight requests.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._listeners: List[Callable[[], None]] = []
        self.reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            listeners = list(self._listeners)
            self._listeners.clear()
        for listener in listeners:
            try:
                listener()
            except Exception:
                _log.warning("cancel listener failed", exc_info=True)

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            fired = self._event.is_set()
            if not fired:
                self._listeners.append(listener)
        if fired:
            listener()
            return lambda: None

        def _remove() -> None:
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    pass

        return _remove


def is_cancelled(cancel: Any) -> bool:
    if cancel is None:
        return False
    checker = getattr(cancel, "is_cancelled", None) or getattr(cancel, "is_set", None)
    return bool(checker()) if callable(checker) else False


def subscribe(cancel: Any, listener: Callable[[], None]) -> Callable[[], None]:
    """Register `listener` on signals that support it; plain Events are polled instead."""
    add = getattr(cancel, "add_listener", None)
    if callable(add):
        return add(listener)
    return lambda: None


def interruptible_sleep(delay_sec: float, cancel: Any = None) -> None:
    if delay_sec <= 0:
        return
    if cancel is None:
        time.sleep(delay_sec)
        return
    waiter = getattr(cancel, "wait", None)
    if callable(waiter):
        waiter(delay_sec)
        return
    deadline = time.monotonic() + delay_sec
    while not is_cancelled(cancel):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return
        time.sleep(min(remaining, _WAIT_SLICE_SEC))


def run_with_timeout(
    operation: Callable[[CancelSignal], T],
    timeout_sec: float,
    name: str,
    cancel: Any = None,
) -> T:
    """Race `operation` against a time budget and the cancel signal.

    The operation receives a scoped signal that is cancelled when the race is
    lost, so abandoned work stops retrying and its transport aborts.
    """
    if is_cancelled(cancel):
        raise OperationCancelled(name)

    scoped = CancelSignal()
    wake = threading.Event()
    outcome: Dict[str, Any] = {}

    def _runner() -> None:
        try:
            outcome["value"] = operation(scoped)
        except BaseException as exc:
            outcome["error"] = exc
        finally:
            wake.set()

    remove_listener = subscribe(cancel, wake.set)
    deadline = time.monotonic() + max(0.0, float(timeout_sec))
    worker = threading.Thread(target=_runner, name=f"ai-op:{name}", daemon=True)
    worker.start()
    try:
        while True:
            if "value" in outcome:
                return outcome["value"]
            if "error" in outcome:
                raise outcome["error"]
            if is_cancelled(cancel):
                scoped.cancel("caller cancelled")
                raise OperationCancelled(name)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                scoped.cancel("timed out")
                _log.warning("AI operation '%s' timed out after %.1fs", name, timeout_sec)
                raise OperationTimeout(name, timeout_sec)
            wake.wait(min(remaining, _WAIT_SLICE_SEC))
            wake.clear()
    finally:
        remove_listener()
