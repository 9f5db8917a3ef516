from sqlalchemy import Column, String, Integer, Text, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from juku_admin.database import Base, new_id

# 在籍 / 休会 / 退会
STUDENT_STATUSES = ("ACTIVE", "SICK", "PERMANENTLY_LEFT")
SCHOOL_TYPES = ("PUBLIC", "PRIVATE")


class Student(Base):
    __tablename__ = "students"

    student_id = Column(String(50), primary_key=True, default=new_id)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    name = Column(String(100), nullable=False)
    kana_name = Column(String(100))
    grade_id = Column(String(50), ForeignKey("grades.grade_id"), nullable=True)
    grade_year = Column(Integer)
    school_name = Column(String(100))
    school_type = Column(String(20))
    birth_date = Column(Date)
    parent_email = Column(String(100))
    status = Column(String(20), nullable=False, default="ACTIVE")
    line_id = Column(String(50))
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User")
