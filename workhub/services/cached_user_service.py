import logging
from typing import Optional

from pydantic import TypeAdapter

from workhub.core.cache import Cache
from workhub.domain.entities import User
from workhub.services.user_service import UserService

logger = logging.getLogger(__name__)

_user_adapter = TypeAdapter(User)


def user_cache_key(user_id: int) -> str:
    return f"user:{user_id}"


class CachedUserService:
    """Read-through cache in front of ``UserService``.

    Authorization still runs on every read; only the row look-up is cached.
    """

    def __init__(self, user_service: UserService, cache: Cache, ttl: int = 3600):
        self.user_service = user_service
        self.cache = cache
        self.ttl = ttl

    def get_user_by_id(self, user_id: int) -> User:
        user = self.cache.remember(
            user_cache_key(user_id),
            self.ttl,
            lambda: self.user_service.repository.find_by_id(user_id),
            _user_adapter,
        )
        if user is None:
            return self.user_service.get_user_by_id(user_id)
        return user

    def get_user(self, actor_id: int, user_id: int) -> User:
        user = self.get_user_by_id(user_id)
        self.user_service.authorize(actor_id, user, "view")
        return user

    def register_user(self, name: str, email: str, is_admin: bool = False) -> User:
        return self.user_service.register_user(name, email, is_admin=is_admin)

    def update_user(
        self, actor_id: int, user_id: int, name: Optional[str] = None, email: Optional[str] = None
    ) -> User:
        user = self.user_service.update_user(actor_id, user_id, name=name, email=email)
        self.clear_user_cache(user_id)
        return user

    def delete_user(self, actor_id: int, user_id: int) -> bool:
        result = self.user_service.delete_user(actor_id, user_id)
        self.clear_user_cache(user_id)
        return result

    def verify_email(self, user_id: int) -> User:
        user = self.user_service.verify_email(user_id)
        self.clear_user_cache(user_id)
        return user

    def clear_user_cache(self, user_id: int) -> None:
        self.cache.forget(user_cache_key(user_id))
        logger.info(f"Cache cleared for user {user_id}")
