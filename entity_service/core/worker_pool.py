# entity_service/core/worker_pool.py
"""
WORKER POOL - Pin engine calls to a small, fixed set of long-lived threads

Purpose:
    1. Create N worker threads once, at startup
    2. Hand each submitted work unit to exactly one idle worker
    3. Block the caller until its work unit finishes, then recycle the worker
    4. Give the service one place to shut every engine thread down

Data Flow:
    caller → submit(work) → wait for an available worker → worker.execute(work)
                                                                   ↓
                                                   result / exception back to caller
                                                                   ↓
                                                   worker returned to available list

Why this matters:
    - The resolution engine keeps state that is not safe for arbitrary threads
    - At most N engine calls ever run at the same time
    - Request threads never touch the engine directly
"""

import logging
import threading
from typing import Any, Callable, List, Optional, TypeVar

from entity_service.core.errors import AlreadyBusyError, PoolClosedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

WorkUnit = Callable[[], T]


# ============================================================================
# WORKER - one long-lived thread running one work unit at a time
# ============================================================================


class Worker(threading.Thread):
    """
    Worker thread that waits for a work unit, runs it and reports back.

    The submitting thread and the worker thread meet on a single
    condition variable: the submitter sets ``_work`` and waits until the
    worker clears it again.
    """

    def __init__(self, name: str):
        super().__init__(name=name, daemon=True)
        self._cond = threading.Condition()
        self._work: Optional[WorkUnit] = None
        self._result: Any = None
        self._failure: Optional[BaseException] = None
        self._busy = False
        self._complete = False
        self._stopped = False

    @property
    def busy(self) -> bool:
        with self._cond:
            return self._busy

    @property
    def complete(self) -> bool:
        with self._cond:
            return self._complete

    def mark_complete(self) -> None:
        """Ask the worker to stop once its current work unit (if any) is done."""
        with self._cond:
            self._complete = True
            self._cond.notify_all()

    def _reset(self) -> None:
        self._work = None
        self._result = None
        self._failure = None
        self._busy = False

    def execute(self, work: WorkUnit) -> Any:
        """
        Run ``work`` on this thread and return its result or raise its failure.

        Raises:
            AlreadyBusyError: another work unit is in flight on this worker
            PoolClosedError: the worker already stopped
        """
        with self._cond:
            if self._busy:
                raise AlreadyBusyError()
            if self._stopped:
                raise PoolClosedError(f"Worker {self.name} has already stopped")

            self._busy = True
            self._work = work
            self._cond.notify_all()

            while self._work is not None:
                self._cond.wait()

            result, failure = self._result, self._failure
            self._reset()

        if failure is not None:
            raise failure
        return result

    def run(self) -> None:
        while True:
            with self._cond:
                while self._work is None and not self._complete:
                    self._cond.wait()

                # a handed-over work unit always runs, even when complete
                if self._work is None:
                    self._stopped = True
                    self._cond.notify_all()
                    return

                work = self._work

            result, failure = None, None
            try:
                result = work()
            except BaseException as error:
                # SystemExit / KeyboardInterrupt included: the submitter re-raises it
                failure = error

            with self._cond:
                self._result = result
                self._failure = failure
                self._work = None
                self._cond.notify_all()


# ============================================================================
# POOL - the fixed set of workers plus the "available" subset
# ============================================================================


class BoundedWorkerPool:
    """
    Fixed-size pool of ``Worker`` threads.

    Invariants:
        - every worker in ``_available`` is idle and the pool is open
        - a worker runs at most one work unit at a time
        - once closed, the pool stays closed
    """

    def __init__(self, count: int, base_name: str = "engine-worker"):
        """
        Create and start ``count`` workers.

        Args:
            count: Number of worker threads (must be at least 1)
            base_name: Prefix for worker thread names ("<base>-<index>")

        Example:
            pool = BoundedWorkerPool(4, "engine-worker")
            record_id = pool.submit(lambda: engine.add_record(...))
        """
        if count < 1:
            raise ValueError(f"Worker count must be at least 1: {count}")

        if base_name.endswith("-"):
            base_name = base_name[:-1]

        self._cond = threading.Condition()
        self._closed = False
        self._workers: List[Worker] = []
        self._available: List[Worker] = []

        for index in range(count):
            worker = Worker(f"{base_name}-{index}")
            self._workers.append(worker)
            self._available.append(worker)
            worker.start()

        logger.info(f"Started worker pool with {count} workers ({base_name}-*)")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        return len(self._workers)

    @property
    def is_closed(self) -> bool:
        with self._cond:
            return self._closed

    @property
    def available_count(self) -> int:
        with self._cond:
            return len(self._available)

    @property
    def busy_count(self) -> int:
        return sum(1 for worker in self._workers if worker.busy)

    @property
    def alive_count(self) -> int:
        return sum(1 for worker in self._workers if worker.is_alive())

    @property
    def worker_names(self) -> List[str]:
        return [worker.name for worker in self._workers]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def submit(self, work: WorkUnit) -> Any:
        """
        Run ``work`` on the first available worker and return its result.

        Blocks until a worker is free. Any exception raised by ``work`` is
        re-raised here unchanged, after the worker went back to the pool.

        Raises:
            PoolClosedError: the pool is (or becomes) closed while waiting
        """
        with self._cond:
            if self._closed:
                raise PoolClosedError()

            while not self._available:
                self._cond.wait()
                if self._closed:
                    raise PoolClosedError()

            worker: Optional[Worker] = self._available.pop(0)

        try:
            return worker.execute(work)
        finally:
            with self._cond:
                if not self._closed:
                    self._available.append(worker)
                    self._cond.notify_all()
                    worker = None

            # closed while busy: retire instead of returning it
            if worker is not None:
                worker.mark_complete()

    def close(self, wait_for_drain: bool = False) -> None:
        """
        Close the pool so no further work units are accepted.

        Args:
            wait_for_drain: Join every worker thread before returning
        """
        with self._cond:
            already_closed = self._closed
            self._closed = True
            self._available.clear()
            self._cond.notify_all()

        if not already_closed:
            logger.info(f"Closing worker pool ({self.size} workers)")

        for worker in self._workers:
            worker.mark_complete()

        if wait_for_drain:
            for worker in self._workers:
                if worker is not threading.current_thread():
                    worker.join()
