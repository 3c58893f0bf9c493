"""
Window Actors

Each window (sender, receiver) is owned by exactly one thread. Other
threads never touch window state; they post messages to the owner's
mailbox. A message runs to completion before the next one starts, so
multi-step updates such as "mark ACK, slide base, drain queue" are
atomic without locks around the window itself.
"""

from concurrent.futures import Future
from typing import Any, Callable, Optional
import queue
import threading

_STOP = object()


class WindowActor:
    """
    Single-threaded owner of a window object.

    Attributes:
        name: Thread name, used in diagnostics
        target: The owned window (SRSender or SRReceiver)
    """

    def __init__(self, name: str, target: Any, logger=None):
        self.name = name
        self.target = target
        self.logger = logger

        self._mailbox: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None

        self.messages_processed = 0
        self.failures = 0

    def start(self):
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 1.0):
        """Process what is already queued, then exit."""
        if self._thread is None:
            return
        self._mailbox.put(_STOP)
        self._thread.join(timeout=timeout)
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def post(self, method: str, *args) -> Future:
        """
        Queue a call of target.<method>(*args) on the owner thread.

        Returns:
            Future resolved with the call's result
        """
        future: Future = Future()
        self._mailbox.put((getattr(self.target, method), args, future))
        return future

    def call(self, method: str, *args, timeout: Optional[float] = 5.0):
        """Post and wait for the result."""
        return self.post(method, *args).result(timeout=timeout)

    def inspect(self, fn: Callable[[Any], Any], timeout: Optional[float] = 5.0):
        """Run fn(target) on the owner thread and return its result."""
        future: Future = Future()
        self._mailbox.put((fn, (self.target,), future))
        return future.result(timeout=timeout)

    def _run(self):
        while True:
            item = self._mailbox.get()
            if item is _STOP:
                return

            fn, args, future = item
            try:
                future.set_result(fn(*args))
            except Exception as e:
                # One bad message must not stop the window
                self.failures += 1
                future.set_exception(e)
                if self.logger:
                    self.logger.error(f"{self.name}: {fn.__name__} failed: {e}", "ACTOR")
            finally:
                self.messages_processed += 1
