from fastapi import Depends
from sqlalchemy.orm import Session

from workhub.core.db.session import SessionLocal


def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def services_dependency(container, db_dependency=get_db):
    """Build a FastAPI dependency that yields request-scoped services.

    Hosts mount it with ``Depends(services_dependency(container))``.
    """

    def get_services(db: Session = Depends(db_dependency)):
        return container.services(db)

    return get_services
