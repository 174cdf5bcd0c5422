"""
Periodic Task

Runs an action on a fixed interval in a daemon thread. A tick always runs to
completion; the wait between ticks is the only point where stop() takes
effect. A failing tick is logged and the task keeps running.
"""

import threading
from typing import Any, Callable, Optional

from .logging_config import get_logger


class PeriodicTask:
    """Cooperative fixed-interval task with a cancellation token"""

    def __init__(self, name: str, interval_seconds: float, action: Callable[[], Any],
                 initial_delay: float = 0.0):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self.initial_delay = initial_delay
        self.action = action
        self.tick_count = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        self.logger = get_logger("bank_ledger.periodic")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        """Start ticking; a second start on a running task is ignored"""
        with self._state_lock:
            if self.is_running:
                self.logger.warning(f"{self.name} is already running")
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(self._stop_event,), name=self.name, daemon=True
            )
            self._thread.start()
        self.logger.info(f"{self.name} started (interval {self.interval_seconds}s)")

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Prevent further ticks

        An in-flight tick is never interrupted; with wait=True this blocks
        until it finishes.
        """
        with self._state_lock:
            self._stop_event.set()
            thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self.logger.info(f"{self.name} stopped")

    def _run(self, stop_event: threading.Event) -> None:
        if stop_event.wait(self.initial_delay):
            return

        while not stop_event.is_set():
            try:
                self.action()
            except Exception as e:
                self.logger.error(f"{self.name} tick failed: {e}", exc_info=True)
            self.tick_count += 1

            if stop_event.wait(self.interval_seconds):
                break
