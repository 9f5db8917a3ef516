from sqlalchemy import Column, String, Text, Boolean, Date, Time, DateTime, ForeignKey
from sqlalchemy.sql import func

from juku_admin.database import Base, new_id


class ClassSession(Base):
    __tablename__ = "class_sessions"

    class_id = Column(String(50), primary_key=True, default=new_id)
    branch_id = Column(String(50), ForeignKey("branches.branch_id"), nullable=False, index=True)

    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    teacher_id = Column(String(50), ForeignKey("teachers.teacher_id"), nullable=True)
    student_id = Column(String(50), ForeignKey("students.student_id"), nullable=True)
    subject_id = Column(String(50), ForeignKey("subjects.subject_id"), nullable=True)
    booth_id = Column(String(50), ForeignKey("booths.booth_id"), nullable=True)
    class_type_id = Column(String(50), ForeignKey("class_types.class_type_id"), nullable=True)

    is_cancelled = Column(Boolean, nullable=False, default=False)
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
