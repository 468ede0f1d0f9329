"""Composition root.

Everything is built explicitly from a ``Settings`` instance and passed down;
nothing is looked up from a global registry.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from workhub.core.cache import Cache, create_cache
from workhub.core.clock import Clock, utcnow
from workhub.core.config import Settings
from workhub.core.db.base import Base
from workhub.core.db.session import build_engine, build_session_factory, session_scope
from workhub.events.bus import EventBus
from workhub.events.channels import Broadcaster, ChannelAuthorizer, LoggingBroadcaster
from workhub.domain.events import TASK_EVENTS, UserCreated
from workhub.events.handlers import AuditLogHandler, BroadcastHandler, FanOutHandler, WelcomeEmailHandler
from workhub.jobs.queue import CeleryJobQueue, InlineJobQueue, JobQueue, ThreadPoolJobQueue
from workhub.jobs.runner import JobRunner
from workhub.notifications.delivery import ChannelRouter, NotificationDelivery
from workhub.notifications.transports import (
    DatabaseTransport,
    EmailTransport,
    LoggingTransport,
    user_email_lookup,
)
from workhub.repositories.notification_repository import SqlNotificationRepository
from workhub.repositories.user_repository import SqlUserRepository
from workhub.repositories.workspace_repository import SqlWorkspaceRepository
from workhub.services.cached_user_service import CachedUserService
from workhub.services.notification_service import NotificationService
from workhub.services.policies import Policies
from workhub.services.user_service import UserService
from workhub.services.workspace_service import WorkspaceService
from workhub.storage.local import FileStorage, LocalFileStorage

logger = logging.getLogger(__name__)


def build_delivery(settings: Settings, session_factory: sessionmaker, clock: Clock = utcnow) -> ChannelRouter:
    return ChannelRouter(
        database=DatabaseTransport(session_factory, clock),
        email=EmailTransport(settings, user_email_lookup(session_factory)),
        sms=LoggingTransport("sms"),
        push=LoggingTransport("push"),
    )


def repository_factory(session_factory: sessionmaker, clock: Clock = utcnow):
    """Context-manager factory giving each job its own session."""

    @contextmanager
    def scope():
        with session_scope(session_factory) as db:
            yield SqlWorkspaceRepository(db, clock)

    return scope


def build_job_runner(
    settings: Settings,
    session_factory: Optional[sessionmaker] = None,
    delivery: Optional[NotificationDelivery] = None,
    clock: Clock = utcnow,
) -> JobRunner:
    if session_factory is None:
        session_factory = build_session_factory(build_engine(settings.DB_URL))
    return JobRunner(
        delivery=delivery or build_delivery(settings, session_factory, clock),
        repository_factory=repository_factory(session_factory, clock),
        max_tries=settings.NOTIFY_MAX_TRIES,
        timeout_seconds=settings.NOTIFY_TIMEOUT_SECONDS,
        failed_job_limit=settings.FAILED_JOB_LIMIT,
    )


def build_job_queue(settings: Settings, runner: JobRunner) -> JobQueue:
    backend = settings.JOB_QUEUE_BACKEND
    if backend == "inline":
        return InlineJobQueue(runner)
    if backend == "thread":
        return ThreadPoolJobQueue(runner, workers=settings.JOB_WORKERS)
    if backend == "celery":
        from workhub.jobs.celery_app import celery_tasks

        return CeleryJobQueue(celery_tasks(settings))
    raise ValueError(f"Unknown job queue backend: {backend}")


def build_event_bus(queue: JobQueue, broadcaster: Broadcaster, settings: Settings) -> EventBus:
    bus = EventBus(settings.EVENT_HISTORY_SIZE)
    bus.subscribe(AuditLogHandler())
    bus.subscribe(FanOutHandler(queue, channels=settings.NOTIFY_CHANNELS), *TASK_EVENTS)
    bus.subscribe(BroadcastHandler(broadcaster), *TASK_EVENTS)
    return bus


def build_user_event_bus(queue: JobQueue, settings: Settings) -> EventBus:
    """Account lifecycle events; kept apart from the task event stream."""
    bus = EventBus(settings.EVENT_HISTORY_SIZE)
    bus.subscribe(AuditLogHandler())
    if settings.SEND_WELCOME_EMAIL:
        bus.subscribe(WelcomeEmailHandler(queue, settings.PROJECT_NAME), UserCreated)
    return bus


@dataclass
class Container:
    """Process-wide collaborators. Request-scoped services come from ``services()``."""

    settings: Settings
    session_factory: sessionmaker
    cache: Cache
    bus: EventBus
    user_bus: EventBus
    queue: JobQueue
    runner: JobRunner
    delivery: NotificationDelivery
    storage: FileStorage
    clock: Clock = utcnow

    def services(self, db: Session) -> "Services":
        workspaces = SqlWorkspaceRepository(db, self.clock)
        users = SqlUserRepository(db, self.clock)
        policies = Policies(workspaces)
        user_service = UserService(users, policies, self.user_bus, self.clock)
        return Services(
            workspace_service=WorkspaceService(
                repository=workspaces,
                users=users,
                policies=policies,
                bus=self.bus,
                cache=self.cache,
                storage=self.storage,
                settings=self.settings,
                clock=self.clock,
            ),
            user_service=CachedUserService(user_service, self.cache, self.settings.USER_CACHE_TTL),
            notification_service=NotificationService(
                SqlNotificationRepository(db, self.clock), users, self.delivery
            ),
            channel_authorizer=ChannelAuthorizer(workspaces),
            policies=policies,
        )

    def shutdown(self) -> None:
        self.queue.shutdown(wait=True)


@dataclass
class Services:
    workspace_service: WorkspaceService
    user_service: CachedUserService
    notification_service: NotificationService
    channel_authorizer: ChannelAuthorizer
    policies: Policies


def build_container(
    settings: Settings,
    session_factory: Optional[sessionmaker] = None,
    cache: Optional[Cache] = None,
    delivery: Optional[NotificationDelivery] = None,
    broadcaster: Optional[Broadcaster] = None,
    storage: Optional[FileStorage] = None,
    clock: Clock = utcnow,
    create_tables: bool = False,
) -> Container:
    if session_factory is None:
        engine = build_engine(settings.DB_URL)
        session_factory = build_session_factory(engine)
    if create_tables:
        import workhub.models  # noqa: F401

        Base.metadata.create_all(bind=session_factory.kw["bind"])

    delivery = delivery or build_delivery(settings, session_factory, clock)
    runner = build_job_runner(settings, session_factory, delivery, clock)
    queue = build_job_queue(settings, runner)
    bus = build_event_bus(queue, broadcaster or LoggingBroadcaster(), settings)
    user_bus = build_user_event_bus(queue, settings)
    logger.info(
        f"Container ready (cache={settings.CACHE_BACKEND}, jobs={settings.JOB_QUEUE_BACKEND})"
    )
    return Container(
        settings=settings,
        session_factory=session_factory,
        cache=cache or create_cache(settings),
        bus=bus,
        user_bus=user_bus,
        queue=queue,
        runner=runner,
        delivery=delivery,
        storage=storage or LocalFileStorage(settings.ATTACHMENT_ROOT),
        clock=clock,
    )
