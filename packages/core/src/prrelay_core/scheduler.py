"""Periodic task runner.

The relay has two independent timelines: the coarse poll (minutes) and the
fine drain (seconds). Each runs on its own daemon thread so a slow review
system never holds up message delivery, and vice versa. A task whose
previous run is still active is skipped rather than stacked.
"""

from __future__ import annotations

import logging
import signal
import threading
from typing import Callable

logger = logging.getLogger(__name__)

# Seconds to wait for an in-flight run on shutdown; task threads are daemons.
_JOIN_TIMEOUT = 5


class PeriodicTask:
    def __init__(self, name: str, interval: float, func: Callable[[], object]):
        if interval <= 0:
            raise ValueError(f"Interval for task {name!r} must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._func = func
        self._running = threading.Lock()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> bool:
        """Run the task now unless a previous run is still active. Returns False when skipped."""
        if not self._running.acquire(blocking=False):
            logger.debug("Task %s still running, skipping trigger", self.name)
            return False
        try:
            self._func()
        except Exception:
            logger.exception("Task %s failed", self.name)
        finally:
            self._running.release()
        return True

    def start(self) -> None:
        self._stopped.clear()
        self._thread = threading.Thread(target=self._loop, name=f"prrelay-{self.name}", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def _loop(self) -> None:
        while not self._stopped.wait(self.interval):
            self.run_once()


class Scheduler:
    def __init__(self):
        self._tasks: dict[str, PeriodicTask] = {}
        self._stopped = threading.Event()

    @property
    def tasks(self) -> dict[str, PeriodicTask]:
        return dict(self._tasks)

    def add(self, name: str, interval: float, func: Callable[[], object]) -> PeriodicTask:
        if name in self._tasks:
            raise ValueError(f"Task {name!r} is already scheduled")
        task = PeriodicTask(name, interval, func)
        self._tasks[name] = task
        return task

    def start(self) -> None:
        for task in self._tasks.values():
            logger.info("Scheduling %s every %ss", task.name, task.interval)
            task.start()

    def stop(self) -> None:
        self._stopped.set()
        for task in self._tasks.values():
            task.stop(timeout=_JOIN_TIMEOUT)

    def run_forever(self) -> None:
        """Start all tasks and block until SIGINT/SIGTERM or stop()."""
        previous = {}
        if threading.current_thread() is threading.main_thread():
            for sig in (signal.SIGINT, signal.SIGTERM):
                previous[sig] = signal.signal(sig, self._handle_signal)

        self.start()
        try:
            self._stopped.wait()
        finally:
            self.stop()
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    def _handle_signal(self, signum, _frame) -> None:
        logger.info("Received signal %s, shutting down", signum)
        self._stopped.set()
