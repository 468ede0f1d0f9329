import logging
from typing import Optional

from workhub.core.clock import Clock, utcnow
from workhub.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from workhub.domain.entities import User
from workhub.domain.events import UserCreated, UserDeleted, UserUpdated
from workhub.domain.repositories import UserRepository
from workhub.domain.value_objects import Email, Name
from workhub.events.bus import EventBus
from workhub.services.policies import Policies

logger = logging.getLogger(__name__)


class UserService:
    """User accounts. Account events go to ``bus`` after each committed write."""

    def __init__(
        self, repository: UserRepository, policies: Policies, bus: EventBus, clock: Clock = utcnow
    ):
        self.repository = repository
        self.policies = policies
        self.bus = bus
        self.clock = clock

    def register_user(self, name: str, email: str, is_admin: bool = False) -> User:
        display_name = Name(name)
        address = Email(email)
        if self.repository.find_by_email(address.value):
            raise ConflictError(f"Email '{address.value}' is already registered")

        user = self.repository.create(display_name.value, address.value, is_admin=is_admin)
        logger.info(f"User {user.id} registered")
        self.bus.publish(UserCreated(user=user))
        return user

    def get_user_by_id(self, user_id: int) -> User:
        user = self.repository.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def authorize(self, actor_id: int, target: User, action: str) -> None:
        """Raise ``ForbiddenError`` unless ``actor_id`` may ``action`` ``target``."""
        checks = {
            "view": self.policies.can_view_user,
            "update": self.policies.can_update_user,
            "delete": self.policies.can_delete_user,
        }
        actor = target if actor_id == target.id else self.repository.find_by_id(actor_id)
        if actor is None or not checks[action](actor, target):
            raise ForbiddenError(action, "user")

    def get_user(self, actor_id: int, user_id: int) -> User:
        user = self.get_user_by_id(user_id)
        self.authorize(actor_id, user, "view")
        return user

    def update_user(
        self, actor_id: int, user_id: int, name: Optional[str] = None, email: Optional[str] = None
    ) -> User:
        user = self.get_user_by_id(user_id)
        self.authorize(actor_id, user, "update")

        changes = {}
        if name is not None:
            changes["name"] = Name(name).value
        if email is not None:
            address = Email(email).value
            if address != user.email:
                existing = self.repository.find_by_email(address)
                if existing and existing.id != user_id:
                    raise ConflictError(f"Email '{address}' is already registered")
                changes["email"] = address
                changes["email_verified_at"] = None
        if name is None and email is None:
            raise ValidationError("No fields to update", rule="required")
        if not changes:
            return user

        updated = self.repository.update(user_id, **changes)
        if updated is None:
            raise NotFoundError("User", user_id)
        self.bus.publish(
            UserUpdated(actor_id=actor_id, user=updated, changed_fields=sorted(changes))
        )
        return updated

    def delete_user(self, actor_id: int, user_id: int) -> bool:
        user = self.get_user_by_id(user_id)
        self.authorize(actor_id, user, "delete")

        deleted = self.repository.delete(user_id)
        if deleted:
            logger.info(f"User {user_id} deleted by user {actor_id}")
            self.bus.publish(UserDeleted(actor_id=actor_id, user=user))
        return deleted

    def verify_email(self, user_id: int) -> User:
        user = self.get_user_by_id(user_id)
        if user.is_verified:
            return user
        updated = self.repository.update(user_id, email_verified_at=self.clock())
        if updated is None:
            raise NotFoundError("User", user_id)
        self.bus.publish(
            UserUpdated(actor_id=user_id, user=updated, changed_fields=["email_verified_at"])
        )
        return updated
