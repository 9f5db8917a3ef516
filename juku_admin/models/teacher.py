from sqlalchemy import Column, String, Integer, Text, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from juku_admin.database import Base, new_id


class Teacher(Base):
    __tablename__ = "teachers"

    teacher_id = Column(String(50), primary_key=True, default=new_id)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    name = Column(String(100), nullable=False)
    kana_name = Column(String(100))
    email = Column(String(100))
    evaluation_id = Column(String(50), ForeignKey("evaluations.evaluation_id"), nullable=True)
    birth_date = Column(Date)
    mobile_number = Column(String(20))
    university = Column(String(100))
    line_id = Column(String(50))
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User")
