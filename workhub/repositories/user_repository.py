from typing import Optional

from workhub.domain.entities import User
from workhub.domain.repositories import UserRepository
from workhub.models import User as UserRow

from .base import SqlRepository
from .mappers import to_user

_UPDATABLE = {"name", "email", "email_verified_at", "is_admin"}


class SqlUserRepository(SqlRepository, UserRepository):
    def _row(self, user_id: int) -> Optional[UserRow]:
        return (
            self.db.query(UserRow)
            .filter(UserRow.id == user_id, UserRow.deleted_at.is_(None))
            .first()
        )

    def find_by_id(self, user_id):
        with self._reading():
            row = self._row(user_id)
        return to_user(row) if row else None

    def find_by_email(self, email):
        with self._reading():
            row = (
                self.db.query(UserRow)
                .filter(UserRow.email == email, UserRow.deleted_at.is_(None))
                .first()
            )
        return to_user(row) if row else None

    def create(self, name, email, is_admin=False) -> User:
        row = UserRow(name=name, email=email, is_admin=is_admin, created_at=self.clock())
        with self._writing(f"Email '{email}' is already registered"):
            self.db.add(row)
        self.db.refresh(row)
        return to_user(row)

    def update(self, user_id, **fields):
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update user fields: {sorted(unknown)}")
        with self._reading():
            row = self._row(user_id)
        if row is None:
            return None
        with self._writing(f"Email '{fields.get('email')}' is already registered"):
            for key, value in fields.items():
                setattr(row, key, value)
        return to_user(row)

    def delete(self, user_id):
        with self._reading():
            row = self._row(user_id)
        if row is None:
            return False
        with self._writing():
            row.deleted_at = self.clock()
        return True
