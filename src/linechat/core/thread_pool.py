"""
=============================================================================
BOUNDED WORKER POOL
=============================================================================

Every chat session spends its life blocked in read_line(), so each one
needs its own thread. The pool owns a FIXED number of worker threads; the
server admits at most that many sessions, so an admitted session never
waits long for a worker.

=============================================================================
POOL ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          ThreadPool(size=N)                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   submit(session.run, on_cancel=session.close)                       │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌───────────────────────────────┐                                 │
    │   │ Task queue (FIFO, maxsize=N)  │                                 │
    │   └───────────────┬───────────────┘                                 │
    │                   │ get()                                            │
    │      ┌────────────┼────────────┬────────────┐                       │
    │      ▼            ▼            ▼            ▼                       │
    │  Worker-0     Worker-1     Worker-2  ... Worker-N-1                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CANCELLATION
=============================================================================

Python threads cannot be killed from the outside. Shutdown therefore works
in two halves:

    1. Tasks still waiting in the queue never run. Their `on_cancel`
       callback runs instead, so a session that never started still gets
       its teardown (socket closed, admission slot released).

    2. Tasks already running are stopped by their owner: the server
       closes every live session's socket, which makes the blocked
       read_line() return and the session tear itself down. The pool then
       joins its workers with a timeout.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states, used for monitoring."""
    IDLE = "idle"        # Waiting for task
    BUSY = "busy"        # Executing task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """
    A deferred function call.

    Attributes:
        func: The function to execute.
        args: Positional arguments for the function.
        kwargs: Keyword arguments for the function.
        on_cancel: Called instead of `func` if the pool shuts down before
                   the task starts.
        submitted_at: Time the task was submitted.
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    on_cancel: Optional[Callable[[], Any]] = None
    submitted_at: float = field(default_factory=time.time)

    def cancel(self) -> None:
        """Run the cancel callback, logging instead of raising."""
        if self.on_cancel is None:
            return
        try:
            self.on_cancel()
        except Exception as e:
            logger.exception(f"Cancel callback failed: {e}")


class Worker(threading.Thread):
    """
    Worker thread that processes tasks from the queue.

    Loop: wait for a task, exit on the poison pill (None), otherwise run
    the task and log anything it raises so one bad task cannot kill the
    worker.
    """

    def __init__(self, task_queue: queue.Queue, worker_id: int, poll_interval: float = 1.0):
        # daemon=True: a stuck session must not keep the process alive
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.poll_interval = poll_interval

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        # Metrics
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
            logger.debug(
                f"Worker {self.worker_id} completed task in {time.time() - start_time:.3f}s"
            )
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(
                f"Worker {self.worker_id} task failed after {time.time() - start_time:.3f}s: {e}"
            )
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop after its current task."""
        self._shutdown.set()


class ThreadPool:
    """
    Fixed-size thread pool.

    Usage:
        pool = ThreadPool(size=10)
        pool.start()
        pool.submit(session.run, on_cancel=session.close)
        ...
        pool.shutdown(wait=False, timeout=5.0)
    """

    def __init__(self, size: int = 10, poll_interval: float = 1.0):
        """
        Args:
            size: Number of worker threads, also the queue capacity.
            poll_interval: How often idle workers check for shutdown.
        """
        if size < 1:
            raise ValueError("size must be >= 1")

        self.size = size
        self.poll_interval = poll_interval

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutdown

    def start(self):
        """Create and start all worker threads."""
        with self._lock:
            if self._started:
                return

            logger.info(f"Starting thread pool with {self.size} workers")
            for worker_id in range(self.size):
                worker = Worker(self._task_queue, worker_id, self.poll_interval)
                self._workers.append(worker)
                worker.start()

            self._started = True
            self._shutdown = False

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        on_cancel: Optional[Callable[[], Any]] = None,
    ) -> bool:
        """
        Queue a task without blocking.

        Returns:
            True if the task was queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {}, on_cancel=on_cancel)

        try:
            self._task_queue.put(task, block=False)
        except queue.Full:
            return False
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool. Safe to call more than once.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    shutdown() Flow                               │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   1. Reject new tasks                                           │
        │   2. wait=True:  let queued tasks run                           │
        │      wait=False: cancel queued tasks (on_cancel runs)           │
        │   3. Poison pill per worker                                     │
        │   4. Join workers (bounded by timeout)                          │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Args:
            wait: Whether queued tasks still get to run.
            timeout: Upper bound in seconds for joining the workers.
        """
        with self._lock:
            if not self._started or self._shutdown:
                return
            self._shutdown = True

        logger.info("Shutting down thread pool...")

        if not wait:
            self._cancel_pending()

        deadline = None if timeout is None else time.time() + timeout

        for _ in self._workers:
            try:
                self._task_queue.put(None, timeout=self._remaining(deadline))
            except queue.Full:
                break  # Workers will still notice their shutdown flag

        for worker in self._workers:
            worker.shutdown()

        for worker in self._workers:
            worker.join(timeout=self._remaining(deadline))
            if worker.is_alive():
                logger.warning(f"Worker {worker.worker_id} did not stop in time")

        self._workers.clear()
        self._started = False

        logger.info("Thread pool shutdown complete")

    def _cancel_pending(self):
        cancelled = 0
        while True:
            try:
                task = self._task_queue.get_nowait()
            except queue.Empty:
                break
            try:
                if task is not None:
                    task.cancel()
                    cancelled += 1
            finally:
                self._task_queue.task_done()

        if cancelled:
            logger.info(f"Cancelled {cancelled} queued task(s)")

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(0.0, deadline - time.time())

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def stats(self) -> dict:
        """Worker and task counts, logged by ChatServer at shutdown."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
