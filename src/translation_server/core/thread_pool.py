"""
=============================================================================
THREAD POOL (THE NETWORK-PROCESSING CONTEXT)
=============================================================================

Reading and dispatching a readable connection runs as a task on this pool.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   readiness monitor ──submit(serve, conn)──►  [ TASK QUEUE ]        │
    │   (socket readable)                            │                     │
    │                                                │                     │
    │                                                ▼                     │
    │                              ┌──────────┐ ┌──────────┐ ┌──────────┐  │
    │                              │ Worker 0 │ │ Worker 1 │ │ Worker 2 │  │
    │                              │ parse…   │ │ (idle)   │ │ write…   │  │
    │                              └──────────┘ └──────────┘ └──────────┘  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A task is only submitted once its socket has input, so a worker reads
what is already there, dispatches it and returns. Idle keep-alive
connections and connections parked on a translation cost no threads.

Workers are added (up to max_workers) whenever more tasks are waiting
than there are idle workers. Shutdown uses the poison-pill pattern: one None per
worker in the queue.

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
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: func(*args, **kwargs)."""
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Pulls tasks from the shared queue until it receives the poison pill.

    Exceptions raised by a task are logged and do not kill the worker.
    """

    def __init__(self, task_queue: queue.Queue, worker_id: int, idle_timeout: float = 1.0):
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
        self.state = WorkerState.BUSY
        start_time = time.time()
        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}")
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        self._shutdown.set()


class ThreadPool:
    """
    Fixed-minimum, bounded-maximum pool of worker threads.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=32)
        pool.start()
        pool.submit(serve_connection, args=(conn,))
        pool.shutdown()
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 32,
        queue_size: int = 256,
        idle_timeout: float = 1.0,
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers and the flags below
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutdown

    def start(self):
        """Create the minimum number of workers. Idempotent."""
        with self._lock:
            if self._started:
                return
            logger.debug(f"Starting thread pool with {self.min_workers} workers")
            self._task_queue = queue.Queue(maxsize=self.queue_size)
            self._shutdown = False
            for _ in range(self.min_workers):
                self._add_worker_locked()
            self._started = True

    def _add_worker_locked(self) -> Worker:
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., Any], args: tuple = (), kwargs: Optional[dict] = None) -> bool:
        """
        Queue a task without blocking.

        Returns:
            True if queued, False if the pool is not running or the queue
            is full.
        """
        with self._lock:
            if not self._started or self._shutdown:
                return False
            try:
                self._task_queue.put_nowait(Task(func=func, args=args, kwargs=kwargs or {}))
            except queue.Full:
                return False
            self._maybe_scale_up_locked()
            return True

    def _maybe_scale_up_locked(self):
        """Add a worker if more tasks are waiting than there are idle workers."""
        idle = sum(1 for w in self._workers if w.state == WorkerState.IDLE)
        if self._task_queue.qsize() > idle and len(self._workers) < self.max_workers:
            logger.debug(
                f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
            )
            self._add_worker_locked()

    def shutdown(self, timeout: float = 2.0):
        """
        Stop all workers. Queued tasks that have not started are dropped.

        Workers blocked inside a task (a recv() on a live socket) only
        exit once that task returns; close the sockets first.
        """
        with self._lock:
            if not self._started:
                return
            self._shutdown = True
            workers = list(self._workers)

            # Drop pending tasks so the pills are seen promptly
            while True:
                try:
                    self._task_queue.get_nowait()
                    self._task_queue.task_done()
                except queue.Empty:
                    break

            for _ in workers:
                try:
                    self._task_queue.put_nowait(None)
                except queue.Full:
                    break

        for worker in workers:
            worker.shutdown()
        for worker in workers:
            worker.join(timeout=timeout)
            if worker.is_alive():
                logger.warning(f"Worker {worker.worker_id} did not stop within {timeout}s")

        with self._lock:
            self._workers.clear()
            self._started = False

        logger.debug("Thread pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def stats(self) -> dict:
        with self._lock:
            workers = list(self._workers)
        return {
            "workers": {
                "total": len(workers),
                "busy": sum(1 for w in workers if w.state == WorkerState.BUSY),
                "idle": sum(1 for w in workers if w.state == WorkerState.IDLE),
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in workers),
                "failed": sum(w.tasks_failed for w in workers),
            },
        }
