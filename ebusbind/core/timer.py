"""Shared timer running repeating jobs on an executor."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

LOGGER = logging.getLogger(__name__)


class JobHandle(Protocol):
    @property
    def cancelled(self) -> bool:
        """True once cancel() was called."""

    def cancel(self) -> None:
        """Stop all future runs; a run already in progress may finish."""


class Timer(Protocol):
    def schedule(self, fn: Callable[[], None], initial_delay: float, period: float) -> JobHandle:
        """Run ``fn`` after ``initial_delay`` seconds and then every ``period`` seconds."""


class _RepeatingJob:
    def __init__(self, fn: Callable[[], None], period: float) -> None:
        self._fn = fn
        self.period = period
        self._cancelled = threading.Event()
        self._running = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def run(self) -> None:
        if self.cancelled:
            return
        # skip the tick if the previous one is still busy
        if not self._running.acquire(blocking=False):
            return
        try:
            self._fn()
        except Exception:
            LOGGER.exception("Repeating job failed")
        finally:
            self._running.release()


class RepeatingTimer:
    """One dispatcher thread keeps a heap of due jobs; ticks run on worker threads.

    Ticks are scheduled at a fixed rate. A cancelled job is never submitted
    again, and a submitted tick re-checks cancellation before it starts.
    """

    def __init__(self, max_workers: int = 4, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._cond = threading.Condition()
        self._heap: list[tuple[float, int, _RepeatingJob]] = []
        self._seq = itertools.count()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ebus-poll")
        self._thread: threading.Thread | None = None
        self._stopped = False

    def schedule(self, fn: Callable[[], None], initial_delay: float, period: float) -> JobHandle:
        if period <= 0:
            raise ValueError("period must be positive")
        job = _RepeatingJob(fn, period)
        with self._cond:
            if self._stopped:
                raise RuntimeError("timer has been shut down")
            if self._thread is None:
                self._thread = threading.Thread(target=self._loop, name="ebus-timer", daemon=True)
                self._thread.start()
            heapq.heappush(self._heap, (self._clock() + max(initial_delay, 0), next(self._seq), job))
            self._cond.notify()
        return job

    def _next_due(self) -> _RepeatingJob | None:
        with self._cond:
            while not self._stopped:
                if not self._heap:
                    self._cond.wait()
                    continue
                due, _, job = self._heap[0]
                if job.cancelled:
                    heapq.heappop(self._heap)
                    continue
                delay = due - self._clock()
                if delay > 0:
                    self._cond.wait(delay)
                    continue
                heapq.heapreplace(self._heap, (due + job.period, next(self._seq), job))
                return job
            return None

    def _loop(self) -> None:
        while True:
            job = self._next_due()
            if job is None:
                return
            try:
                self._executor.submit(job.run)
            except RuntimeError:
                # executor shut down between dequeue and submit
                return

    def shutdown(self) -> None:
        with self._cond:
            self._stopped = True
            for _, _, job in self._heap:
                job.cancel()
            self._heap.clear()
            self._cond.notify_all()
        self._executor.shutdown(wait=False, cancel_futures=True)
