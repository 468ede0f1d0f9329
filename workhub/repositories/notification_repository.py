from typing import Optional

from workhub.domain.repositories import NotificationRepository
from workhub.models import Notification as NotificationRow

from .base import SqlRepository
from .mappers import to_notification


class SqlNotificationRepository(SqlRepository, NotificationRepository):
    def _row(self, notification_id: int, user_id: int) -> Optional[NotificationRow]:
        return (
            self.db.query(NotificationRow)
            .filter(NotificationRow.id == notification_id, NotificationRow.user_id == user_id)
            .first()
        )

    def find_for_user(self, user_id, unread_only=False):
        with self._reading():
            query = self.db.query(NotificationRow).filter(NotificationRow.user_id == user_id)
            if unread_only:
                query = query.filter(NotificationRow.read_at.is_(None))
            rows = query.order_by(NotificationRow.created_at.desc(), NotificationRow.id.desc()).all()
        return [to_notification(row) for row in rows]

    def mark_as_read(self, notification_id, user_id):
        with self._reading():
            row = self._row(notification_id, user_id)
        if row is None:
            return None
        if row.read_at is None:
            with self._writing():
                row.read_at = self.clock()
        return to_notification(row)

    def delete(self, notification_id, user_id):
        with self._reading():
            row = self._row(notification_id, user_id)
        if row is None:
            return False
        with self._writing():
            self.db.delete(row)
        return True
