from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func

from juku_admin.database import Base, new_id

RECIPIENT_TYPES = ("TEACHER", "STUDENT")
NOTIFICATION_STATUSES = ("PENDING", "PROCESSING", "SENT", "FAILED")


class Notification(Base):
    __tablename__ = "notifications"

    notification_id = Column(String(50), primary_key=True, default=new_id)
    recipient_type = Column(String(20), nullable=False)
    recipient_id = Column(String(50), nullable=False, index=True)
    notification_type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)

    related_class_id = Column(String(50), ForeignKey("class_sessions.class_id", ondelete="SET NULL"), nullable=True)
    branch_id = Column(String(50), ForeignKey("branches.branch_id", ondelete="SET NULL"), nullable=True)

    status = Column(String(20), nullable=False, default="PENDING", index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    processing_attempts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
