"""Cancellation and poll-until-ready loop shared by boxes and snapshots"""

import logging
import threading
import time
from typing import Callable, Collection, List, Optional, TypeVar

from .exceptions import CancelledError, DeventoError

logger = logging.getLogger(__name__)

R = TypeVar("R")


class CancellationToken:
    """Caller-owned signal that aborts waits and live streams.

    Pass one token into any waiting call and call ``cancel()`` from another
    thread. Sleeps between polls return at once and registered callbacks
    (for example closing an open HTTP stream) run immediately.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.debug("cancellation callback failed", exc_info=True)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on cancel; returns a function that unregisters it"""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def remove() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return remove
        callback()
        return lambda: None

    def check(self) -> None:
        if self._event.is_set():
            raise CancelledError()

    def sleep(self, seconds: float) -> None:
        """Wait ``seconds``, raising ``CancelledError`` as soon as cancelled"""
        if self._event.wait(timeout=max(seconds, 0)):
            raise CancelledError()


def wait_for_status(
    fetch: Callable[[], R],
    *,
    ready: Collection[str],
    failed: Collection[str],
    on_failed: Callable[[R], DeventoError],
    on_timeout: Callable[[], DeventoError],
    timeout: float,
    poll_interval: float,
    cancel: Optional[CancellationToken] = None,
) -> R:
    """Poll ``fetch`` until the resource reaches a ready status.

    A status in ``failed`` raises ``on_failed(resource)`` straight away, since
    those states never recover on their own. Otherwise the loop keeps going
    until ``timeout`` seconds have passed and then raises ``on_timeout()``.
    A resource that turns ready on the same fetch the deadline is reached
    still counts as ready.

    Returns:
        The last fetched resource
    """
    cancel = cancel or CancellationToken()
    deadline = time.monotonic() + timeout

    while True:
        cancel.check()
        resource = fetch()
        status = resource.status

        if status in ready:
            return resource
        if status in failed:
            raise on_failed(resource)

        if time.monotonic() > deadline:
            raise on_timeout()

        logger.debug("waiting on status %s", status)
        cancel.sleep(poll_interval)
