from sqlalchemy import Column, String, Text, Date, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from juku_admin.database import Base, new_id


class Course(Base):
    """Intensive / seasonal course a student can enroll in."""

    __tablename__ = "courses"

    course_id = Column(String(50), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    subject_id = Column(String(50), ForeignKey("subjects.subject_id"), nullable=True)
    grade_id = Column(String(50), ForeignKey("grades.grade_id"), nullable=True)
    class_duration = Column(String(20))
    class_sessions = Column(String(20))
    session_type = Column(String(50))

    enrollments = relationship("CourseEnrollment", back_populates="course")


class CourseEnrollment(Base):
    __tablename__ = "course_enrollments"
    __table_args__ = (
        UniqueConstraint("course_id", "student_id", name="uq_course_enrollments_course_student"),
    )

    enrollment_id = Column(String(50), primary_key=True, default=new_id)
    course_id = Column(String(50), ForeignKey("courses.course_id", ondelete="CASCADE"), nullable=False)
    student_id = Column(String(50), ForeignKey("students.student_id", ondelete="CASCADE"), nullable=False)
    enrollment_date = Column(Date)
    status = Column(String(20))
    notes = Column(Text)

    course = relationship("Course", back_populates="enrollments")
