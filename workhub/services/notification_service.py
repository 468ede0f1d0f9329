"""Per-user notification inbox plus direct sends.

Read, mark and delete operations only ever touch the caller's own rows; a
notification that belongs to someone else behaves as if it did not exist.
"""

import logging
from typing import Dict, Iterable, List, Optional

from workhub.core.errors import NotFoundError
from workhub.domain.entities import Notification
from workhub.domain.repositories import NotificationRepository, UserRepository
from workhub.notifications.delivery import NotificationDelivery
from workhub.notifications.enums import NotificationChannel, NotificationType

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(
        self,
        repository: NotificationRepository,
        users: UserRepository,
        delivery: NotificationDelivery,
    ):
        self.repository = repository
        self.users = users
        self.delivery = delivery

    def send_notification(
        self,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[dict] = None,
        action_url: Optional[str] = None,
        channels: Iterable[NotificationChannel] = (NotificationChannel.database,),
    ) -> Dict[NotificationChannel, bool]:
        if self.users.find_by_id(user_id) is None:
            raise NotFoundError("User", user_id)
        channels = [NotificationChannel(c) for c in channels]
        logger.info(
            f"Sending {NotificationType(notification_type).value} notification to user {user_id} "
            f"via {[c.value for c in channels]}"
        )
        return self.delivery.deliver(
            user_id=user_id,
            notification_type=NotificationType(notification_type),
            title=title,
            message=message,
            data=data,
            action_url=action_url,
            channels=channels,
        )

    def get_all_notifications(self, user_id: int) -> List[Notification]:
        return self.repository.find_for_user(user_id)

    def get_unread_notifications(self, user_id: int) -> List[Notification]:
        return self.repository.find_for_user(user_id, unread_only=True)

    def mark_as_read(self, notification_id: int, user_id: int) -> bool:
        return self.repository.mark_as_read(notification_id, user_id) is not None

    def delete_notification(self, notification_id: int, user_id: int) -> bool:
        deleted = self.repository.delete(notification_id, user_id)
        if deleted:
            logger.info(f"Notification {notification_id} deleted by user {user_id}")
        return deleted
