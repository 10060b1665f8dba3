"""
Tick Timer - fixed-interval driver for the signal processor.

Runs a callback on a background thread. The interval is re-read before
every wait so it can be changed while running.
"""

import time
import threading
from typing import Callable, Optional


class TickTimer:
    """
    Background thread that calls a function every interval.

    Best-effort: callback errors are logged (rate limited) and the timer
    keeps running, backing off while errors repeat.
    """

    def __init__(
        self,
        callback: Callable[[], None],
        interval_provider: Callable[[], float],
        name: str = "pulse-tick"
    ):
        """
        Initialize tick timer.

        Args:
            callback: Function to run every tick
            interval_provider: Returns the current interval in seconds
            name: Thread name
        """
        self._callback = callback
        self._interval_provider = interval_provider
        self._name = name

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.tick_count = 0
        self._error_count = 0
        self._last_error_time = 0.0
        self._backoff_sec = 1.0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the timer thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> bool:
        """
        Stop the timer and wait for the thread to exit.

        Returns:
            True if the thread is confirmed stopped
        """
        self._stop_event.set()
        thread = self._thread
        if thread is None:
            return True
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                print(f"[TICK] Timer thread did not stop within {timeout:.1f}s")
                return False
        self._thread = None
        return True

    def _current_interval(self) -> float:
        try:
            interval = float(self._interval_provider())
        except (TypeError, ValueError):
            interval = 1.0
        return max(interval, 0.05)

    def _run_loop(self):
        """Main timer loop (runs in background thread)."""
        while not self._stop_event.wait(self._current_interval()):
            try:
                self._callback()
                self.tick_count += 1

                # Reset error tracking on success
                self._error_count = 0
                self._backoff_sec = 1.0

            except Exception as e:
                self._error_count += 1
                current_time = time.time()

                # Only log errors occasionally to avoid spam
                if current_time - self._last_error_time > 10.0:
                    print(f"[TICK] Error in tick callback: {e}")
                    self._last_error_time = current_time

                # Exponential backoff on repeated errors
                if self._error_count > 3:
                    self._backoff_sec = min(self._backoff_sec * 2, 30.0)
                    if self._stop_event.wait(self._backoff_sec):
                        break
