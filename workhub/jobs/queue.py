import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Deque, Dict, Set

from workhub.jobs.runner import Job, JobRunner

logger = logging.getLogger(__name__)


class JobQueue(ABC):
    @abstractmethod
    def enqueue(self, job: Job) -> None:
        ...

    def shutdown(self, wait: bool = True) -> None:
        pass


class InlineJobQueue(JobQueue):
    """Runs each job immediately on the caller's thread. For tests and dev.

    ``jobs`` keeps the newest ``history_size`` enqueued jobs.
    """

    def __init__(self, runner: JobRunner, history_size: int = 100):
        self.runner = runner
        self.jobs: Deque[Job] = deque(maxlen=history_size)

    def enqueue(self, job):
        self.jobs.append(job)
        self.runner.run(job)


class ThreadPoolJobQueue(JobQueue):
    """Runs jobs on a worker pool. Only unfinished futures are tracked."""

    def __init__(self, runner: JobRunner, workers: int = 4):
        self.runner = runner
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="workhub-jobs")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def enqueue(self, job):
        future = self._executor.submit(self.runner.run, job)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        logger.debug(f"Enqueued job {job.job_id}")

    def drain(self, timeout=None) -> None:
        """Block until every job enqueued so far has finished."""
        with self._lock:
            futures = list(self._pending)
        wait(futures, timeout=timeout)

    def shutdown(self, wait=True):
        self._executor.shutdown(wait=wait)


class CeleryJobQueue(JobQueue):
    """Dispatches each job to the Celery task registered for its ``job_type``."""

    def __init__(self, tasks: Dict[str, object]):
        self.tasks = tasks

    def enqueue(self, job):
        self.tasks[job.job_type].delay(job.model_dump(mode="json"))
        logger.debug(f"Dispatched job {job.job_id} to celery")
