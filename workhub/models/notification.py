from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from workhub.core.db.base import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    action_url = Column(String(1000), nullable=True)
    # one row per (job, recipient); retried deliveries hit the constraint
    dedup_key = Column(String(100), unique=True, nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
