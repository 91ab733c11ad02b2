"""
=============================================================================
THREAD POOL FOR CONCURRENT CONNECTIONS
=============================================================================

A fixed upper bound on worker threads, fed by a bounded task queue.

=============================================================================
WHY NOT ONE THREAD PER CONNECTION?
=============================================================================

Spawning a thread for every accepted socket is the simplest design, but
it lets any client that can open sockets fast enough make the server
create threads without limit. Each thread costs a stack (1-8 MB) plus
scheduler time, so a burst of slow TLS handshakes can exhaust memory.

The pool caps both numbers:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept loop ──submit()──► TASK QUEUE (queue_size) ──► WORKERS     │
    │                                 │                     (min..max)    │
    │                                 │                                    │
    │                       full? → submit() returns False                 │
    │                               server answers "41 Server unavailable" │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WORKER LIFECYCLE
=============================================================================

    def run(self):
        while not shutdown:
            task = queue.get()      ← BLOCKS until task available
            if task is None:        ← "Poison pill" signals shutdown
                break
            execute(task)
            queue.task_done()

=============================================================================
SCALING
=============================================================================

    MIN_WORKERS  → started up front, always running
    MAX_WORKERS  → hard limit
    TRIGGER      → every worker busy AND tasks waiting → add one worker

=============================================================================
COMMON QUESTIONS
=============================================================================

Q: What happens when the queue is full?
A: submit(block=False) returns False straight away. The accept loop
   must never block, or one slow burst would stop new accepts too.

Q: Thread pool vs async/await?
A: Each Gemini exchange is one short blocking read and one write. A
   thread per in-flight request keeps the code linear, and the GIL is
   released during socket and TLS I/O.

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
        submitted_at: Time the task was queued, for queue-wait logging.
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """Worker thread that processes tasks from the shared queue."""

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 60.0
    ):
        # daemon=True: a stuck worker never keeps the process alive
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
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
        """
        Execute a single task.

        Exceptions are logged and counted; they never kill the worker.
        """
        self.state = WorkerState.BUSY
        start_time = time.time()
        waited = start_time - task.submitted_at
        if waited > 1.0:
            logger.debug(f"Worker {self.worker_id} picked up task after {waited:.2f}s in queue")

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop."""
        self._shutdown.set()


class ThreadPool:
    """
    Bounded thread pool.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ThreadPool Usage                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   pool = ThreadPool(min_workers=4, max_workers=32, queue_size=128)  │
    │   pool.start()                                                       │
    │                                                                      │
    │   if not pool.submit(handle, args=(conn,), block=False):            │
    │       reject(conn)                                                   │
    │                                                                      │
    │   pool.shutdown(wait=True, timeout=5)                                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 32,
        queue_size: int = 128,
        idle_timeout: float = 1.0
    ):
        """
        Args:
            min_workers: Threads created at startup.
            max_workers: Upper bound on threads.
            queue_size: Maximum number of tasks waiting for a worker.
            idle_timeout: How often an idle worker re-checks for shutdown.
        """
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        # Re-entrant: _maybe_scale_up() calls _add_worker() with the lock held
        self._lock = threading.RLock()
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0
        # Task counts of workers removed by shutdown()
        self._retired_completed = 0
        self._retired_failed = 0

    def start(self):
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        self._shutdown = False
        for _ in range(self.min_workers):
            self._add_worker()
        self._started = True

    def _add_worker(self) -> Worker:
        with self._lock:
            if len(self._workers) >= self.max_workers:
                raise RuntimeError("Maximum workers reached")

            worker = Worker(
                task_queue=self._task_queue,
                worker_id=self._next_worker_id,
                idle_timeout=self.idle_timeout
            )
            self._next_worker_id += 1
            self._workers.append(worker)
            worker.start()
            return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = True,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Submit a task for execution.

        Args:
            func: The function to execute.
            args: Positional arguments for the function.
            kwargs: Keyword arguments for the function.
            block: Whether to wait for queue space.
            queue_timeout: How long to wait if blocking.

        Returns:
            True if the task was queued, False if the queue was full.

        Raises:
            RuntimeError: If pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        with self._lock:
            busy_count = sum(1 for w in self._workers if w.state == WorkerState.BUSY)
            if busy_count < len(self._workers) or len(self._workers) >= self.max_workers:
                return
            if self._task_queue.qsize() > 0:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Shutdown the thread pool.

        1. Reject new tasks
        2. If wait=True, let the queue drain (bounded by timeout)
        3. Send one poison pill per worker and join them

        Args:
            wait: Whether to wait for queued tasks to run.
            timeout: Maximum time to wait for the queue to drain.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutdown = True

        if wait:
            deadline = time.time() + timeout if timeout else None
            while not self._task_queue.empty():
                if deadline and time.time() > deadline:
                    logger.warning("Shutdown timeout, forcing stop")
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)

        for worker in workers:
            worker.shutdown()
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass  # Worker notices the shutdown flag on its next idle poll

        for worker in workers:
            worker.join(timeout=2.0)

        with self._lock:
            self._retired_completed += sum(w.tasks_completed for w in self._workers)
            self._retired_failed += sum(w.tasks_failed for w in self._workers)
            self._workers.clear()
        self._started = False
        logger.info("Thread pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def active_workers(self) -> int:
        return sum(1 for w in self._workers if w.state != WorkerState.STOPPED)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def queue_size(self) -> int:
        """Get current task queue size."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counts, logged when the server stops."""
        total_completed = self._retired_completed + sum(w.tasks_completed for w in self._workers)
        total_failed = self._retired_failed + sum(w.tasks_failed for w in self._workers)

        return {
            "workers": {
                "total": len(self._workers),
                "active": self.active_workers,
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": total_completed,
                "failed": total_failed,
            },
        }
