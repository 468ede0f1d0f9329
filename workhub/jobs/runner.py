"""Background job execution with bounded retries.

Each attempt is bounded by ``timeout_seconds``; a timed-out attempt is
abandoned and counted as a failure. Exhausted jobs are logged and the newest
``failed_job_limit`` of them are kept in ``failed_jobs``; ``run`` never raises.
"""

import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import AbstractContextManager
from typing import Annotated, Callable, Deque, List, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from tenacity import RetryError, Retrying, stop_after_attempt, wait_exponential

from workhub.jobs.notify_workspace_members import NotifyWorkspaceMembers
from workhub.jobs.send_welcome_email import SendWelcomeEmail
from workhub.notifications.delivery import NotificationDelivery
from workhub.notifications.enums import NotificationChannel, NotificationType

logger = logging.getLogger(__name__)

RepositoryFactory = Callable[[], AbstractContextManager]

Job = Annotated[
    Union[NotifyWorkspaceMembers, SendWelcomeEmail],
    Field(discriminator="job_type"),
]

job_adapter = TypeAdapter(Job)


class JobTimeoutError(Exception):
    pass


class FailedJob(BaseModel):
    job_id: str
    job_type: str
    workspace_id: Optional[int] = None
    error: str
    attempts: int


class JobRunner:
    def __init__(
        self,
        delivery: NotificationDelivery,
        repository_factory: RepositoryFactory,
        max_tries: int = 3,
        timeout_seconds: float = 120.0,
        wait=None,
        failed_job_limit: int = 100,
    ):
        self.delivery = delivery
        self.repository_factory = repository_factory
        self.max_tries = max_tries
        self.timeout_seconds = timeout_seconds
        self.wait = wait if wait is not None else wait_exponential(multiplier=1, min=1, max=10)
        self.failed_jobs: Deque[FailedJob] = deque(maxlen=failed_job_limit)

    def recipients(self, job: NotifyWorkspaceMembers) -> List[int]:
        with self.repository_factory() as repository:
            member_ids = repository.get_member_ids(job.workspace_id)
        return [user_id for user_id in member_ids if user_id != job.exclude_user_id]

    def handle(self, job: Job) -> List[int]:
        """One attempt. Returns the users the job delivered to."""
        match job:
            case NotifyWorkspaceMembers():
                return self._notify_members(job)
            case SendWelcomeEmail():
                return self._send_welcome_email(job)
        raise TypeError(f"Unhandled job type: {type(job).__name__}")

    def _notify_members(self, job: NotifyWorkspaceMembers) -> List[int]:
        recipients = self.recipients(job)
        logger.info(
            f"Notifying {len(recipients)} members of workspace {job.workspace_id} "
            f"({job.notification_type}, job {job.job_id})"
        )
        for user_id in recipients:
            self.delivery.deliver(
                user_id=user_id,
                notification_type=job.severity,
                title=job.title,
                message=job.message,
                data={**job.data, "dedup_key": job.dedup_key(user_id)},
                action_url=job.action_url,
                channels=job.channels,
            )
        return recipients

    def _send_welcome_email(self, job: SendWelcomeEmail) -> List[int]:
        outcome = self.delivery.deliver(
            user_id=job.user_id,
            notification_type=NotificationType.success,
            title=job.title,
            message=job.message,
            data={"dedup_key": job.dedup_key()},
            channels=[NotificationChannel.email],
        )
        if not all(outcome.values()):
            raise RuntimeError(f"Welcome email to user {job.user_id} was not delivered")
        logger.info(f"Welcome email sent to user {job.user_id} (job {job.job_id})")
        return [job.user_id]

    def _attempt(self, job: Job) -> List[int]:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"job-{job.job_id[:8]}")
        try:
            future = executor.submit(self.handle, job)
            try:
                return future.result(timeout=self.timeout_seconds)
            except FutureTimeoutError:
                raise JobTimeoutError(
                    f"Job {job.job_id} timed out after {self.timeout_seconds} seconds"
                )
        finally:
            executor.shutdown(wait=False)

    def run(self, job: Job) -> bool:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_tries),
            wait=self.wait,
            reraise=False,
            before_sleep=self._log_retry(job),
        )
        try:
            retrying(self._attempt, job)
        except RetryError as e:
            last = e.last_attempt
            self.record_failure(job, last.exception(), last.attempt_number)
            return False
        return True

    def _log_retry(self, job: Job):
        def before_sleep(retry_state):
            logger.warning(
                f"Job {job.job_id} attempt {retry_state.attempt_number} failed: "
                f"{retry_state.outcome.exception()}; retrying"
            )

        return before_sleep

    def record_failure(self, job: Job, error: BaseException, attempts: int) -> None:
        workspace_id = getattr(job, "workspace_id", None)
        logger.error(
            f"Job {job.job_id} ({job.job_type}, workspace {workspace_id}) failed after "
            f"{attempts} attempts: {error}"
        )
        self.failed_jobs.append(
            FailedJob(
                job_id=job.job_id,
                job_type=job.job_type,
                workspace_id=workspace_id,
                error=str(error),
                attempts=attempts,
            )
        )
