"""
=============================================================================
FIXED-CAPACITY WORKER POOL
=============================================================================

The worker pool runs request handlers on a fixed number of threads. It is
what bounds the service's concurrency: the transport may accept hundreds
of calls, but at most `capacity` handlers execute at the same time. The
rest wait in a FIFO queue.

=============================================================================
WHY A FIXED POOL?
=============================================================================

    UNBOUNDED (a thread per call, or a cached pool):
    ────────────────────────────────────────────────

        for call in incoming_calls():
            Thread(target=handle, args=(call,)).start()

        1000 concurrent calls = 1000 threads = 1000 stacks
        Load spikes turn directly into memory spikes.

    FIXED (this module):
    ────────────────────

        pool = WorkerPool(capacity=2)
        pool.start()

        for call in incoming_calls():
            pool.submit(handle, call)      ← returns immediately

        1000 concurrent calls = 2 threads + 998 queued items
        Resource usage is predictable; calls queue when CPU is saturated.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          WorkerPool                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   submit() ──► [ item | item | item | ... ]  FIFO deque             │
    │                           │                                          │
    │               ┌───────────┼───────────┐                              │
    │               ▼           ▼           ▼                              │
    │          ┌────────┐  ┌────────┐  ┌────────┐                          │
    │          │Worker-0│  │Worker-1│  │Worker-N│   exactly N threads      │
    │          └────────┘  └────────┘  └────────┘                          │
    │                                                                      │
    │   One Condition guards: queue, occupied count, closed flag          │
    │   Invariant: occupied <= capacity                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SHUTDOWN PROTOCOL
=============================================================================

    shutdown()       Stop accepting. Queued items still run.
    await_drain(t)   Wait until queue empty and no slot occupied,
                     or t seconds pass, or interrupt_drain() is called.
    shutdown_now()   Abandon everything still queued (futures cancelled).
                     Running handlers keep their (daemon) threads but
                     nobody waits for them any more.

=============================================================================
"""

import collections
import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Optional


logger = logging.getLogger(__name__)


class PoolError(RuntimeError):
    """Raised when the pool is used outside its lifecycle."""


class PoolClosedError(PoolError):
    """Raised by submit() once the pool no longer accepts work."""


class WorkerState(Enum):
    """Worker thread states, for monitoring."""
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


class DrainResult(Enum):
    """Outcome of waiting for the pool to drain."""
    DRAINED = "drained"
    TIMED_OUT = "timed_out"
    INTERRUPTED = "interrupted"


@dataclass
class WorkItem:
    """
    A deferred call plus the future its result is delivered to.

    Attributes:
        func: The callable to run.
        args: Positional arguments.
        kwargs: Keyword arguments.
        future: Completed with the return value or the raised exception.
        submitted_at: Monotonic time of submission (queue wait metrics).
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    future: Future = field(default_factory=Future)
    submitted_at: float = field(default_factory=time.monotonic)


class Worker(threading.Thread):
    """
    One worker slot.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Worker Loop                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Take the next item (blocks while the queue is empty)           │
    │          │                                                           │
    │          ├── None → pool closed and queue empty, exit               │
    │          │                                                           │
    │          └── item → slot is now occupied                            │
    │                                                                      │
    │   2. Run it, completing its future                                  │
    │                                                                      │
    │   3. Release the slot (wakes drain waiters), go back to 1           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(self, pool: "WorkerPool", worker_id: int):
        # daemon=True: an abandoned handler must not keep the process alive
        super().__init__(name=f"{pool.name}-{worker_id}", daemon=True)

        self.pool = pool
        self.worker_id = worker_id
        self.state = WorkerState.IDLE

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.name} started")

        while True:
            item = self.pool._acquire_slot()
            if item is None:
                break

            self.state = WorkerState.BUSY
            try:
                self._execute(item)
            finally:
                self.state = WorkerState.IDLE
                self.pool._release_slot()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.name} stopped")

    def _execute(self, item: WorkItem):
        """Run one item and settle its future. Never raises."""
        # A future cancelled while it sat in the queue is skipped
        if not item.future.set_running_or_notify_cancel():
            return

        start_time = time.monotonic()
        queued_for = start_time - item.submitted_at

        try:
            result = item.func(*item.args, **item.kwargs)
        except Exception as e:
            elapsed = time.monotonic() - start_time
            logger.exception(
                f"Worker {self.name} task failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1
            item.future.set_exception(e)
        else:
            elapsed = time.monotonic() - start_time
            logger.debug(
                f"Worker {self.name} completed task in {elapsed:.3f}s "
                f"(queued {queued_for:.3f}s)"
            )
            self.tasks_completed += 1
            item.future.set_result(result)


class WorkerPool:
    """
    Fixed-capacity pool of worker threads with a FIFO queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      WorkerPool Usage                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   pool = WorkerPool(capacity=2)                                     │
    │   pool.start()                                                       │
    │                                                                      │
    │   future = pool.submit(handle, request)     # non-blocking          │
    │   future.result()                                                    │
    │                                                                      │
    │   pool.shutdown(wait=False)                 # stop accepting        │
    │   if pool.await_drain(30.0) is not DrainResult.DRAINED:             │
    │       pool.shutdown_now()                   # abandon the rest      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Capacity is fixed at construction. There is no scaling up or down.
    """

    def __init__(self, capacity: int = 2, name: str = "worker"):
        """
        Args:
            capacity: Number of worker slots (threads). Must be >= 1.
            name: Prefix for worker thread names.
        """
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")

        self.name = name
        self._capacity = capacity

        # ─────────────────────────────────────────────────────────────────
        # SHARED STATE (guarded by _cond)
        # ─────────────────────────────────────────────────────────────────
        self._cond = threading.Condition()
        self._queue: Deque[WorkItem] = collections.deque()
        self._occupied = 0
        self._started = False
        self._closed = False
        self._drain_interrupted = False
        self._abandoned = 0

        self._workers: list[Worker] = []

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self):
        """Spawn exactly `capacity` worker threads. Idempotent."""
        with self._cond:
            if self._started:
                return
            if self._closed:
                raise PoolClosedError("Worker pool has been shut down")
            self._started = True

            logger.info(f"Starting worker pool with {self._capacity} workers")
            for worker_id in range(self._capacity):
                worker = Worker(self, worker_id)
                self._workers.append(worker)
                worker.start()

    def submit(self, func: Callable[..., Any], *args, **kwargs) -> Future:
        """
        Queue a call and return its future immediately.

        The caller never waits for a free slot: the item is appended to
        the FIFO queue and picked up by the next idle worker.

        Raises:
            PoolError: If the pool was never started.
            PoolClosedError: If shutdown() or shutdown_now() was called.
        """
        item = WorkItem(func=func, args=args, kwargs=kwargs)

        with self._cond:
            if self._closed:
                raise PoolClosedError("Worker pool is shutting down")
            if not self._started:
                raise PoolError("Worker pool not started")

            self._queue.append(item)
            self._cond.notify()

        return item.future

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> Optional[DrainResult]:
        """
        Stop accepting new work. Already queued items still run.

        Args:
            wait: Also wait for the queue to drain and join the workers.
            timeout: Upper bound for the wait, None = forever.

        Returns:
            The drain result when wait=True, None otherwise.
        """
        with self._cond:
            if not self._closed:
                logger.info("Shutting down worker pool...")
            self._closed = True
            self._cond.notify_all()

        if not wait:
            return None

        result = self.await_drain(timeout)
        if result is DrainResult.DRAINED:
            self.join(timeout=2.0)
            logger.info("Worker pool shutdown complete")
        return result

    def await_drain(self, timeout: Optional[float] = None) -> DrainResult:
        """
        Block until every queued and running item has finished.

        Waits on the pool's condition variable (no polling); workers
        notify it each time they release a slot.

        Args:
            timeout: Seconds to wait, None = forever.

        Returns:
            DRAINED, TIMED_OUT, or INTERRUPTED if interrupt_drain() was
            called while waiting.
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._is_idle() or self._drain_interrupted,
                timeout,
            )
            if self._is_idle():
                return DrainResult.DRAINED
            if self._drain_interrupted:
                return DrainResult.INTERRUPTED
            return DrainResult.TIMED_OUT

    def interrupt_drain(self):
        """Wake any await_drain() caller with DrainResult.INTERRUPTED."""
        with self._cond:
            self._drain_interrupted = True
            self._cond.notify_all()

    def shutdown_now(self) -> int:
        """
        Close the pool and abandon every queued item.

        Abandoned items never execute; their futures are cancelled.
        Items already running cannot be interrupted and are left to
        finish on their own threads.

        Returns:
            Number of queued items abandoned.
        """
        with self._cond:
            self._closed = True
            abandoned = list(self._queue)
            self._queue.clear()
            self._abandoned += len(abandoned)
            in_flight = self._occupied
            self._cond.notify_all()

        for item in abandoned:
            item.future.cancel()

        if abandoned or in_flight:
            logger.warning(
                f"Worker pool force-stopped: {len(abandoned)} queued tasks abandoned, "
                f"{in_flight} still running"
            )
        return len(abandoned)

    def join(self, timeout: Optional[float] = None):
        """Wait for worker threads to exit (only after shutdown)."""
        for worker in self._workers:
            worker.join(timeout=timeout)

    # =========================================================================
    # SLOT ACCOUNTING (called by workers)
    # =========================================================================

    def _acquire_slot(self) -> Optional[WorkItem]:
        with self._cond:
            while not self._queue and not self._closed:
                self._cond.wait()
            if not self._queue:
                return None
            item = self._queue.popleft()
            self._occupied += 1
            return item

    def _release_slot(self):
        with self._cond:
            self._occupied -= 1
            self._cond.notify_all()

    def _is_idle(self) -> bool:
        return not self._queue and self._occupied == 0

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def occupied(self) -> int:
        """Number of slots currently running an item."""
        with self._cond:
            return self._occupied

    @property
    def queued(self) -> int:
        """Number of items waiting for a slot."""
        with self._cond:
            return len(self._queue)

    @property
    def is_closed(self) -> bool:
        with self._cond:
            return self._closed

    @property
    def stats(self) -> dict:
        """Worker and task counts, for logs and health checks."""
        with self._cond:
            queued = len(self._queue)
            occupied = self._occupied
            abandoned = self._abandoned

        return {
            "workers": {
                "capacity": self._capacity,
                "busy": sum(1 for w in self._workers if w.state == WorkerState.BUSY),
                "idle": sum(1 for w in self._workers if w.state == WorkerState.IDLE),
                "stopped": sum(1 for w in self._workers if w.state == WorkerState.STOPPED),
            },
            "tasks": {
                "queued": queued,
                "running": occupied,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
                "abandoned": abandoned,
            },
        }
