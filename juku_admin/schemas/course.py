from datetime import date
from typing import Optional
from pydantic import BaseModel, Field


class CourseCreate(BaseModel):
    course_id: Optional[str] = Field(None, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    subject_id: Optional[str] = None
    grade_id: Optional[str] = None
    class_duration: Optional[str] = Field(None, max_length=20)
    class_sessions: Optional[str] = Field(None, max_length=20)
    session_type: Optional[str] = Field(None, max_length=50)


class EnrollmentCreate(BaseModel):
    enrollment_id: Optional[str] = Field(None, max_length=50)
    course_id: str
    student_id: str
    enrollment_date: Optional[date] = None
    status: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None
