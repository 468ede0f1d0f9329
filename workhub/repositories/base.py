import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from workhub.core.clock import Clock, utcnow
from workhub.core.errors import ConflictError, PersistenceError

logger = logging.getLogger(__name__)


class SqlRepository:
    """Shared plumbing for the SQLAlchemy repositories.

    Every write goes through ``_writing()``, which commits on success and
    translates driver errors into the domain taxonomy after rolling back.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    @contextmanager
    def _writing(self, conflict_message: str = "Resource already exists"):
        try:
            yield
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error: {e.orig}")
            raise ConflictError(conflict_message)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database write failed: {str(e)}")
            raise PersistenceError("Database write failed")

    @contextmanager
    def _reading(self):
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(f"Database read failed: {str(e)}")
            raise PersistenceError("Database read failed")
