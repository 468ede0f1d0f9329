"""Per-user notification delivery.

``ChannelRouter`` is the concrete ``NotificationDelivery``: it fans one
notification out to a transport per requested channel. Each channel is
best-effort; a failing channel is logged and the others still run.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field

from workhub.notifications.enums import NotificationChannel, NotificationType

logger = logging.getLogger(__name__)


class OutgoingNotification(BaseModel):
    user_id: int
    type: NotificationType
    title: str
    message: str
    data: dict = Field(default_factory=dict)
    action_url: Optional[str] = None

    @property
    def dedup_key(self) -> Optional[str]:
        return self.data.get("dedup_key")


class Transport(ABC):
    @abstractmethod
    def send(self, notification: OutgoingNotification) -> None:
        """Deliver or raise."""


class NotificationDelivery(ABC):
    @abstractmethod
    def deliver(
        self,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[dict] = None,
        action_url: Optional[str] = None,
        channels: Iterable[NotificationChannel] = (NotificationChannel.database,),
    ) -> Dict[NotificationChannel, bool]:
        ...


class ChannelRouter(NotificationDelivery):
    def __init__(
        self,
        database: Transport,
        email: Transport,
        sms: Transport,
        push: Transport,
    ):
        self.database = database
        self.email = email
        self.sms = sms
        self.push = push

    def transport_for(self, channel: NotificationChannel) -> Transport:
        match channel:
            case NotificationChannel.database:
                return self.database
            case NotificationChannel.email:
                return self.email
            case NotificationChannel.sms:
                return self.sms
            case NotificationChannel.push:
                return self.push
        raise ValueError(f"Unsupported notification channel: {channel}")

    def deliver(
        self,
        user_id,
        notification_type,
        title,
        message,
        data=None,
        action_url=None,
        channels=(NotificationChannel.database,),
    ):
        notification = OutgoingNotification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            data=data or {},
            action_url=action_url,
        )
        outcomes: Dict[NotificationChannel, bool] = {}
        for channel in dict.fromkeys(NotificationChannel(c) for c in channels):
            try:
                self.transport_for(channel).send(notification)
            except Exception as e:
                logger.error(
                    f"Notification to user {user_id} via {channel.value} failed: {str(e)}"
                )
                outcomes[channel] = False
            else:
                logger.info(f"Notification to user {user_id} via {channel.value} delivered")
                outcomes[channel] = True
        return outcomes
